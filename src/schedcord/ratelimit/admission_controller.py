"""
Per-user admission control for slash commands and component interactions.

Two gates are combined:

- a sliding window capping how many actions one user may take overall, and
- a per-(user, action) cooldown enforcing a minimum interval between repeats.

Every cooldown check consults the window first; a user blocked by the window
is not charged against the cooldown. Nothing here raises: a denial is an
:class:`AdmissionResult` with the number of seconds the user has to wait.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Hashable, Tuple

from schedcord.util.logger import get_logger

logger = get_logger("admission_controller")


@dataclass(frozen=True, slots=True)
class AdmissionResult:
    """Outcome of an admission check."""

    allowed: bool
    seconds_remaining: int = 0

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = AdmissionResult(True)


class AdmissionController:
    """
    Thread-safe sliding-window plus cooldown rate limiter.

    Args:
        window: Length of the per-user sliding window in seconds.
        max_per_window: Actions allowed per user inside the window.
        command_cooldown: Default interval for :meth:`check_command`.
        interaction_cooldown: Default interval for :meth:`check_interaction`.
        clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        *,
        window: float = 60.0,
        max_per_window: int = 30,
        command_cooldown: float = 3.0,
        interaction_cooldown: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self.max_per_window = max_per_window
        self.command_cooldown = command_cooldown
        self.interaction_cooldown = interaction_cooldown
        self._clock = clock
        self._lock = threading.Lock()
        # (actor, action) -> (last invocation, interval it was checked with)
        self._cooldowns: Dict[Tuple[Hashable, str], Tuple[float, float]] = {}
        self._windows: Dict[Hashable, Deque[float]] = {}
        # longest window any check has used; sweep must not prune hits it still counts
        self._longest_window = window

    # ------------------------------------------------------------------
    # Core checks
    # ------------------------------------------------------------------

    def check_window(self, actor_id: Hashable, window: float, max_count: int) -> AdmissionResult:
        """
        Allow and record the action unless ``max_count`` already happened within ``window``.

        Args:
            actor_id: User being checked.
            window: Window length in seconds.
            max_count: Actions allowed inside the window.

        Returns:
            ALLOWED, or a denial carrying the seconds until the oldest hit leaves the window.
        """
        with self._lock:
            now = self._clock()
            self._longest_window = max(self._longest_window, window)
            result = self._window_denial(actor_id, now, window, max_count)
            if result is None:
                self._record_window_hit(actor_id, now)
                return ALLOWED
            return result

    def check_cooldown(self, actor_id: Hashable, action_key: str, min_interval: float) -> AdmissionResult:
        """Allow the action if ``min_interval`` seconds passed since the last allowed one.

        The sliding window is consulted first using the controller's own
        window settings. An allowed call is recorded against both gates.
        """
        with self._lock:
            now = self._clock()
            denial = self._window_denial(actor_id, now, self.window, self.max_per_window)
            if denial is not None:
                return denial

            key = (actor_id, action_key)
            previous = self._cooldowns.get(key)
            if previous is not None:
                elapsed = now - previous[0]
                if elapsed < min_interval:
                    return AdmissionResult(False, max(1, math.ceil(min_interval - elapsed)))

            self._cooldowns[key] = (now, min_interval)
            self._record_window_hit(actor_id, now)
            return ALLOWED

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    def check_command(self, actor_id: Hashable, command_name: str) -> AdmissionResult:
        """
        Admit a slash command under the default command cooldown.

        Args:
            actor_id: Invoking user.
            command_name: Command name; each command has its own cooldown.

        Returns:
            The combined window and cooldown verdict.
        """
        return self.check_cooldown(actor_id, f"command:{command_name}", self.command_cooldown)

    def check_interaction(self, actor_id: Hashable, interaction_kind: str) -> AdmissionResult:
        """Admit a component interaction under the default interaction cooldown."""
        return self.check_cooldown(actor_id, f"interaction:{interaction_kind}", self.interaction_cooldown)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def clear(self, actor_id: Hashable) -> None:
        """Forget everything recorded for one user."""
        with self._lock:
            for key in [key for key in self._cooldowns if key[0] == actor_id]:
                del self._cooldowns[key]
            self._windows.pop(actor_id, None)

    def sweep(self) -> None:
        """Drop stale cooldowns and empty windows to keep memory bounded.

        A cooldown is stale once it is older than ten times its own interval,
        long after it could deny anything.
        """
        with self._lock:
            now = self._clock()
            stale = [
                key for key, (last, interval) in self._cooldowns.items()
                if now - last > interval * 10
            ]
            for key in stale:
                del self._cooldowns[key]

            for actor_id in list(self._windows):
                hits = self._windows[actor_id]
                self._prune(hits, now, self._longest_window)
                if not hits:
                    del self._windows[actor_id]

            logger.debug(
                "[ADMISSION] Sweep removed %d cooldowns; tracking %d cooldowns, %d users",
                len(stale), len(self._cooldowns), len(self._windows),
            )

    def stats(self) -> Dict[str, int]:
        """
        Snapshot of what is being tracked.

        Returns:
            Counts of live cooldowns, users with window entries and recorded hits.
        """
        with self._lock:
            return {
                "cooldowns": len(self._cooldowns),
                "tracked_users": len(self._windows),
                "total_requests": sum(len(hits) for hits in self._windows.values()),
            }

    # ------------------------------------------------------------------
    # Internal (callers hold the lock)
    # ------------------------------------------------------------------

    @staticmethod
    def _prune(hits: Deque[float], now: float, window: float) -> None:
        while hits and now - hits[0] >= window:
            hits.popleft()

    def _window_denial(
        self, actor_id: Hashable, now: float, window: float, max_count: int
    ) -> AdmissionResult | None:
        hits = self._windows.get(actor_id)
        if not hits:
            return None
        self._prune(hits, now, window)
        if len(hits) < max_count:
            return None

        seconds = max(1, math.ceil(window - (now - hits[0])))
        logger.warning(
            "[ADMISSION] Rate limit exceeded for %s (%d requests, %ds left)",
            actor_id, len(hits), seconds,
        )
        return AdmissionResult(False, seconds)

    def _record_window_hit(self, actor_id: Hashable, now: float) -> None:
        self._windows.setdefault(actor_id, deque()).append(now)
