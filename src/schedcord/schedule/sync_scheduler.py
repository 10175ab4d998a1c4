"""Periodic, concurrency-bounded synchronization of every guild's schedules.

One synchronization unit is one (guild, category) pair: fetch runs, render,
hash, and publish only if the hash moved. Units from the regular cycle and
from forced updates share one semaphore, so at most ``concurrency_limit``
units talk to the feed and to Discord at any instant. A per-pair lock keeps a
pair from being re-entered while a previous unit for it is still running;
the lock is taken before the semaphore so a queued duplicate does not hold a
slot.

Cycles never overlap. A tick that fires while the previous cycle is still
draining is skipped and logged.

Anything else that rewrites a pair's stored channel, hosts or hash (a setup
commit, a colour change) does so under :meth:`SyncScheduler.hold_pairs`, so it
never interleaves with a unit's write-back.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from schedcord.datatypes.discord_datatypes import GuildID, MessageID
from schedcord.datatypes.schedule_datatypes import CategoryConfig
from schedcord.errors import MissingCapabilityError, NotFoundError, TransientInfraError
from schedcord.schedule.change_detector import ChangeDetector
from schedcord.schedule.ports import ConfigStore, RenderedSchedule, Renderer, Transport, UpstreamFeed
from schedcord.util.logger import get_logger

logger = get_logger("sync_scheduler")


class UnitOutcome(Enum):
    PUBLISHED = "published"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class CycleReport:
    """Counts of unit outcomes for one cycle or forced update."""

    published: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0

    def add(self, outcome: UnitOutcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    @property
    def total(self) -> int:
        return self.published + self.unchanged + self.skipped + self.failed


class _PairLock:
    """A pair lock plus the number of tasks holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class SyncScheduler:
    """
    Keeps published schedules in line with upstream data.

    Args:
        store: Tenant configuration store.
        feed: Upstream run source.
        renderer: Turns runs into a transport payload.
        transport: Outbound Discord operations.
        detector: Change detector deciding whether to publish.
        concurrency_limit: Units allowed in flight at once.
        interval: Seconds between cycle ticks.
        window_days: Length of the upstream fetch window.
    """

    def __init__(
        self,
        store: ConfigStore,
        feed: UpstreamFeed,
        renderer: Renderer,
        transport: Transport,
        detector: ChangeDetector,
        *,
        concurrency_limit: int = 3,
        interval: float = 60.0,
        window_days: int = 90,
    ) -> None:
        self._store = store
        self._feed = feed
        self._renderer = renderer
        self._transport = transport
        self._detector = detector
        self.concurrency_limit = concurrency_limit
        self.interval = interval
        self.window_days = window_days

        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._pair_locks: Dict[Tuple[GuildID, str], _PairLock] = {}
        self._driver_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._cycle_started: float = 0.0
        self._background: Set[asyncio.Task] = set()
        self.skipped_ticks = 0

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """Synchronize every configured category of every auto-updating guild."""
        tenants = await self._store.all_tenants()
        units = [
            (tenant.guild_id, category)
            for tenant in tenants
            if tenant.auto_update and tenant.setup_complete
            for category in tenant.configured_categories()
        ]
        logger.debug("[SYNC SCHEDULER] Cycle started: %d units across %d guilds", len(units), len(tenants))

        report = await self._drain(units)
        logger.info(
            "[SYNC SCHEDULER] Cycle finished: %d published, %d unchanged, %d failed",
            report.published, report.unchanged, report.failed,
        )
        return report

    async def force_update(self, guild_id: GuildID) -> CycleReport:
        """Synchronize one guild now, outside the timer but inside the shared bound."""
        tenant = await self._store.get(guild_id)
        if tenant is None:
            logger.warning("[SYNC SCHEDULER] Forced update for unknown guild %s", guild_id)
            return CycleReport()

        units = [(guild_id, category) for category in tenant.configured_categories()]
        logger.info("[SYNC SCHEDULER] Forced update for guild %s (%d categories)", guild_id, len(units))
        return await self._drain(units)

    def force_update_in_background(self, guild_id: GuildID) -> asyncio.Task:
        """Schedule :meth:`force_update` without waiting for it."""
        task = asyncio.create_task(self.force_update(guild_id))
        self._background.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._background.discard(completed)
            if not completed.cancelled() and completed.exception() is not None:
                logger.error(
                    "[SYNC SCHEDULER] Forced update for guild %s failed: %s",
                    guild_id, completed.exception(),
                )

        task.add_done_callback(_cleanup)
        return task

    async def regenerate(self, guild_id: GuildID, category: str) -> UnitOutcome:
        """Delete the current message of one category and publish a fresh one."""
        async with self._pair_lock(guild_id, category):
            async with self._semaphore:
                try:
                    tenant = await self._store.get(guild_id)
                    config = tenant.categories.get(category) if tenant else None
                    if config is None or not config.is_configured:
                        return UnitOutcome.SKIPPED

                    if config.message_id is not None:
                        try:
                            await self._transport.delete(config.channel_id, config.message_id)
                        except NotFoundError:
                            logger.debug("[SYNC SCHEDULER] Message for %s/%s already gone", guild_id, category)
                    await self._store.upsert(
                        guild_id, categories={category: {"last_hash": None, "message_id": None}}
                    )
                    return await self.sync_unit(guild_id, category)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[SYNC SCHEDULER] Regenerate failed for guild %s/%s: %s", guild_id, category, exc)
                    return UnitOutcome.FAILED

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    async def _drain(self, units: Iterable[Tuple[GuildID, str]]) -> CycleReport:
        report = CycleReport()
        outcomes = await asyncio.gather(*(self._run_unit(guild_id, category) for guild_id, category in units))
        for outcome in outcomes:
            report.add(outcome)
        return report

    async def _run_unit(self, guild_id: GuildID, category: str) -> UnitOutcome:
        async with self._pair_lock(guild_id, category):
            async with self._semaphore:
                try:
                    return await self.sync_unit(guild_id, category)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error(
                        "[SYNC SCHEDULER] Failed to sync guild %s category %s: %s",
                        guild_id, category, exc,
                    )
                    return UnitOutcome.FAILED

    async def sync_unit(self, guild_id: GuildID, category: str) -> UnitOutcome:
        """Fetch, render, compare and publish one (guild, category) pair.

        The caller holds the pair lock and a semaphore slot. Exceptions
        propagate; the hash is only committed after a successful publish.
        """
        tenant = await self._store.get(guild_id)
        config = tenant.categories.get(category) if tenant else None
        if tenant is None or config is None or not config.is_configured:
            return UnitOutcome.SKIPPED

        runs = await self._feed.list_runs(category, config.hosts, self.window_days)
        now = self._detector.now()
        rendered = self._renderer.render(tenant, category, runs, now)
        new_hash = self._detector.compute_hash(category, runs, now)

        if not self._detector.has_changed(tenant, category, new_hash):
            return UnitOutcome.UNCHANGED

        previous_message_id = config.message_id
        message_id = await self._publish(guild_id, category, config, rendered)
        try:
            await self._store.upsert(
                guild_id, categories={category: {"last_hash": new_hash, "message_id": message_id}}
            )
        except Exception:
            if message_id != previous_message_id:
                await self._discard(config, message_id)
            raise

        self._detector.commit(tenant, category, new_hash)
        config.message_id = message_id
        logger.debug("[SYNC SCHEDULER] Published %s for guild %s (hash=%s)", category, guild_id, new_hash)
        return UnitOutcome.PUBLISHED

    async def _discard(self, config: CategoryConfig, message_id: MessageID) -> None:
        """Remove a message whose id could not be stored, so it is not duplicated later."""
        try:
            await self._transport.delete(config.channel_id, message_id)
        except (MissingCapabilityError, NotFoundError, TransientInfraError) as exc:
            logger.warning(
                "[SYNC SCHEDULER] Could not remove unrecorded message %s in channel %s: %s",
                message_id, config.channel_id, exc,
            )

    async def _publish(
        self, guild_id: GuildID, category: str, config: CategoryConfig, rendered: RenderedSchedule
    ) -> MessageID:
        if config.message_id is not None:
            try:
                await self._transport.edit(config.channel_id, config.message_id, rendered)
                return config.message_id
            except NotFoundError:
                logger.info(
                    "[SYNC SCHEDULER] Schedule message for guild %s/%s was deleted; recreating",
                    guild_id, category,
                )
        return await self._transport.publish(config.channel_id, rendered)

    @asynccontextmanager
    async def _pair_lock(self, guild_id: GuildID, category: str) -> AsyncIterator[None]:
        key = (guild_id, category)
        entry = self._pair_locks.get(key)
        if entry is None:
            entry = _PairLock()
            self._pair_locks[key] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1

    @asynccontextmanager
    async def hold_pairs(self, guild_id: GuildID, categories: Iterable[str]) -> AsyncIterator[None]:
        """
        Hold the pair locks of ``categories`` in ``guild_id``.

        Units for those pairs neither start nor write back while the caller is
        inside the block. Locks are taken in sorted order so two holders never
        deadlock each other.

        Args:
            guild_id: Guild whose pairs are held.
            categories: Category keys to hold; duplicates are ignored.
        """
        async with AsyncExitStack() as stack:
            for category in sorted(set(categories)):
                await stack.enter_async_context(self._pair_lock(guild_id, category))
            yield

    def prune_locks(self) -> int:
        """Forget pair locks nobody holds or waits on, returning how many were dropped."""
        idle = [key for key, entry in self._pair_locks.items() if entry.users == 0]
        for key in idle:
            del self._pair_locks[key]
        if idle:
            logger.debug("[SYNC SCHEDULER] Pruned %d idle pair locks", len(idle))
        return len(idle)

    # ------------------------------------------------------------------
    # Periodic driver
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._driver_task is not None and not self._driver_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    def tick(self) -> bool:
        """Start a cycle unless the previous one is still draining."""
        if self.cycle_in_progress:
            self.skipped_ticks += 1
            logger.warning(
                "[SYNC SCHEDULER] Previous cycle still running after %.1fs; skipping tick (%d skipped so far)",
                time.monotonic() - self._cycle_started, self.skipped_ticks,
            )
            return False

        self._cycle_started = time.monotonic()
        self._cycle_task = asyncio.create_task(self._guarded_cycle())
        return True

    async def _guarded_cycle(self) -> Optional[CycleReport]:
        try:
            return await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[SYNC SCHEDULER] Unexpected error during cycle: %s", exc)
            return None

    async def _run_loop(self) -> None:
        logger.info("[SYNC SCHEDULER] Starting periodic sync (interval=%.1fs, concurrency=%d)", self.interval, self.concurrency_limit)
        try:
            while True:
                self.tick()
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.info("[SYNC SCHEDULER] Periodic sync cancelled")
            raise

    def start(self) -> None:
        """Start the periodic driver if it is not already running."""
        if self.is_running:
            logger.warning("[SYNC SCHEDULER] Sync task already running")
            return
        self._driver_task = asyncio.create_task(self._run_loop())

    async def shutdown(self) -> None:
        """Stop the driver and wait for in-flight work to be cancelled."""
        tasks: List[asyncio.Task] = [
            task for task in (self._driver_task, self._cycle_task, *self._background)
            if task is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._driver_task = None
        self._cycle_task = None
        self._background.clear()
        logger.info("[SYNC SCHEDULER] Scheduler shutdown complete")
