from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from schedcord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml`` and exposes
    typed shortcuts with defaults for every tunable the bot reads. Uses fcntl
    file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # Schedule sync
    # --------------------------
    @property
    def sync_interval(self) -> float:
        """Seconds between two synchronization cycles. Default is 60."""
        return float(self._section("sync").get("interval_seconds", 60.0))

    @property
    def concurrency_limit(self) -> int:
        """Maximum number of synchronization units in flight at once.

        The ``CONCURRENCY_LIMIT`` environment variable wins over the YAML value.
        Default is 3.
        """
        env_value = os.getenv("CONCURRENCY_LIMIT")
        if env_value:
            try:
                return max(1, int(env_value))
            except ValueError:
                logger.warning("[APP CONFIGURATION] Ignoring invalid CONCURRENCY_LIMIT=%r", env_value)
        return max(1, int(self._section("sync").get("concurrency_limit", 3)))

    @property
    def schedule_days_ahead(self) -> int:
        """Length of the upstream fetch window in days. Default is 90."""
        return int(self._section("sync").get("schedule_days_ahead", 90))

    # --------------------------
    # Admission control
    # --------------------------
    @property
    def command_cooldown(self) -> float:
        """Minimum seconds between two uses of the same slash command."""
        return float(self._section("rate_limiter").get("command_cooldown_seconds", 3.0))

    @property
    def interaction_cooldown(self) -> float:
        """Minimum seconds between two component interactions of one kind."""
        return float(self._section("rate_limiter").get("interaction_cooldown_seconds", 1.0))

    @property
    def request_window(self) -> float:
        """Length of the per-user sliding window in seconds."""
        return float(self._section("rate_limiter").get("request_window_seconds", 60.0))

    @property
    def max_requests_per_window(self) -> int:
        """Maximum actions one user may take inside the sliding window."""
        return int(self._section("rate_limiter").get("max_requests_per_window", 30))

    @property
    def rate_limiter_sweep_interval(self) -> float:
        return float(self._section("rate_limiter").get("sweep_interval_seconds", 300.0))

    # --------------------------
    # Setup wizard
    # --------------------------
    @property
    def setup_session_ttl(self) -> float:
        """Seconds an idle setup session survives. 0 disables expiry."""
        return float(self._section("setup").get("session_ttl_seconds", 1800.0))

    @property
    def setup_advance_delay(self) -> float:
        """Pause before the wizard moves on after a confirmation message."""
        return float(self._section("setup").get("advance_delay_seconds", 2.0))

    # --------------------------
    # Storage
    # --------------------------
    @property
    def config_db_path(self) -> Path:
        return Path(self._section("database").get("config_path", "./data/schedcord.db")).resolve()

    @property
    def runs_db_path(self) -> Path:
        return Path(self._section("database").get("runs_path", "./data/runs.db")).resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
