"""
Data structures flowing through the schedule engine.

- Run: one upstream occurrence, immutable, lives for a single sync pass.
- CategoryConfig: a tenant's settings and publish state for one category.
- TenantConfig: everything stored for one guild.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from schedcord.datatypes.categories import ALL_CATEGORY_KEYS
from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID

# Runs created more recently than this carry the "new" badge
NEW_RUN_WINDOW = timedelta(hours=30)


@dataclass(frozen=True, slots=True)
class Run:
    """One scheduled occurrence announced by a host server.

    Attributes:
        run_id: Upstream identifier, unique per host.
        source: Name of the host server that announced the run.
        run_type: Sub-type label (e.g. ``"Reclear"``).
        start: Start instant, timezone aware (UTC).
        created_at: When the run was first recorded upstream.
        data_center: Optional data-centre label.
        reference_link: Optional link to the original announcement.
    """

    run_id: str
    source: str
    run_type: str
    start: datetime
    created_at: Optional[datetime] = None
    data_center: Optional[str] = None
    reference_link: Optional[str] = None

    @property
    def start_ms(self) -> int:
        return int(round(self.start.timestamp() * 1000))

    def is_new(self, now: datetime) -> bool:
        """True while the run is younger than :data:`NEW_RUN_WINDOW`."""
        if self.created_at is None:
            return False
        return (now - self.created_at) < NEW_RUN_WINDOW


@dataclass(slots=True)
class CategoryConfig:
    """Per-category settings of a tenant plus the engine's publish state."""

    channel_id: Optional[ChannelID] = None
    hosts: List[str] = field(default_factory=list)
    color: Optional[int] = None
    last_hash: Optional[str] = None
    message_id: Optional[MessageID] = None

    @property
    def is_configured(self) -> bool:
        """A category counts only when both a channel and a host are set."""
        return self.channel_id is not None and bool(self.hosts)

    def copy(self) -> "CategoryConfig":
        return replace(self, hosts=list(self.hosts))


@dataclass(slots=True)
class TenantConfig:
    """Persistent configuration of one guild."""

    guild_id: GuildID
    guild_name: str = ""
    auto_update: bool = True
    setup_complete: bool = False
    categories: Dict[str, CategoryConfig] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def category(self, key: str) -> CategoryConfig:
        """Return the config for ``key``, creating an empty one on first access."""
        config = self.categories.get(key)
        if config is None:
            config = CategoryConfig()
            self.categories[key] = config
        return config

    def configured_categories(self) -> List[str]:
        """Configured category keys in registry order."""
        return [
            key for key in ALL_CATEGORY_KEYS
            if key in self.categories and self.categories[key].is_configured
        ]

    def copy(self) -> "TenantConfig":
        return replace(self, categories={key: cfg.copy() for key, cfg in self.categories.items()})
