"""Content hashing used to skip republishing unchanged schedules.

The hash covers exactly what the rendered schedule shows that can change:
run identity, sub-type, start time and the "new" badge. The badge depends on
the current time, so a run crossing the 30 hour mark changes the hash and
causes one republish even though its data did not change.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence

from schedcord.datatypes.schedule_datatypes import Run, TenantConfig

EMPTY_SENTINEL = "__empty__"


def canonical_string(category: str, runs_by_source: Mapping[str, Sequence[Run]], now: datetime) -> str:
    """Build the string that is hashed, sources and runs in fetch order."""
    parts = [f"{category}|"]
    has_runs = False
    for source, runs in runs_by_source.items():
        if not runs:
            continue
        has_runs = True
        parts.append(f"{source}:")
        for run in runs:
            parts.append(
                f"{run.run_id}|{run.run_type}|{run.start_ms}|{'NEW' if run.is_new(now) else ''}|"
            )
    if not has_runs:
        parts.append(EMPTY_SENTINEL)
    return "".join(parts)


class ChangeDetector:
    """
    Decides whether a tenant/category needs to be republished.

    Args:
        clock: Source of the current UTC time, injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self._clock = clock

    def now(self) -> datetime:
        """Current time as seen by this detector; render with the same value that is hashed."""
        return self._clock()

    def compute_hash(
        self,
        category: str,
        runs_by_source: Mapping[str, Sequence[Run]],
        now: Optional[datetime] = None,
    ) -> str:
        """
        Return a stable 64-bit hex digest of the schedule content.

        Args:
            category: Category key the runs belong to.
            runs_by_source: Runs per host server, in fetch order.
            now: Reference time for the NEW badge; the detector's clock when omitted.

        Returns:
            16 lowercase hex characters.
        """
        content = canonical_string(category, runs_by_source, now or self._clock())
        return hashlib.blake2b(content.encode("utf-8"), digest_size=8).hexdigest()

    @staticmethod
    def has_changed(tenant: TenantConfig, category: str, new_hash: str) -> bool:
        """
        Compare ``new_hash`` against the last published hash.

        Args:
            tenant: Tenant holding the category's stored state.
            category: Category key to check.
            new_hash: Hash of the content that would be published now.

        Returns:
            True when nothing was published yet or the content moved.
        """
        config = tenant.categories.get(category)
        if config is None or config.last_hash is None:
            return True
        return config.last_hash != new_hash

    @staticmethod
    def commit(tenant: TenantConfig, category: str, new_hash: str) -> None:
        """Record ``new_hash`` as published. Call only after a successful publish."""
        tenant.category(category).last_hash = new_hash
