"""Background cogs for Schedcord.

Contains two cogs:
- SchedulerCog   – starts the schedule sync loop once the bot is ready
- MaintenanceCog – periodically sweeps admission records, stale setup sessions and idle sync locks
"""

from __future__ import annotations

import discord
from discord.ext import commands, tasks

from schedcord.configuration.app_configuration import app_config
from schedcord.services import Services
from schedcord.util.logger import get_logger

logger = get_logger("scheduler_cog")


class SchedulerCog(commands.Cog):
    """Owns the lifecycle of the :class:`~schedcord.schedule.sync_scheduler.SyncScheduler`."""

    def __init__(self, bot: discord.Bot, services: Services) -> None:
        self.bot = bot
        self.scheduler = services.scheduler

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        # on_ready fires again after reconnects; start() ignores repeats
        if not self.scheduler.is_running:
            self.scheduler.start()
            logger.info("[SCHEDULER COG] Started (interval=%.1fs)", self.scheduler.interval)

    def cog_unload(self) -> None:
        self.bot.loop.create_task(self.scheduler.shutdown())
        logger.info("[SCHEDULER COG] Stopped")


class MaintenanceCog(commands.Cog):
    """Keeps in-memory admission records and setup sessions bounded."""

    def __init__(self, bot: discord.Bot, services: Services) -> None:
        self.bot = bot
        self.admission = services.admission
        self.sessions = services.sessions
        self.scheduler = services.scheduler

    @tasks.loop(seconds=300)  # real interval set in on_ready
    async def _sweep_task(self) -> None:
        self.admission.sweep()
        self.sessions.sweep()
        self.scheduler.prune_locks()

    @_sweep_task.before_loop
    async def _before_sweep(self) -> None:
        await self.bot.wait_until_ready()

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        interval = app_config.rate_limiter_sweep_interval
        self._sweep_task.change_interval(seconds=interval)
        if not self._sweep_task.is_running():
            self._sweep_task.start()
            logger.info("[MAINTENANCE] Started (interval=%.1fs)", interval)

    def cog_unload(self) -> None:
        self._sweep_task.cancel()
        logger.info("[MAINTENANCE] Stopped")


def setup(bot: discord.Bot, services: Services) -> None:
    bot.add_cog(SchedulerCog(bot, services))
    bot.add_cog(MaintenanceCog(bot, services))
