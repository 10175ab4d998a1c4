"""
Schedcord
=========

A Discord bot that posts upcoming run schedules from a set of host servers
into any number of guilds and keeps every posted schedule current.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. SCHEDCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("SCHEDCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio

import discord
from dotenv import load_dotenv

from schedcord.adapters.discord_transport import DiscordTransport
from schedcord.configuration.app_configuration import AppConfig, app_config
from schedcord.database.db_connection import ConnectionManager
from schedcord.database.db_schema import SchemaManager
from schedcord.feed.run_feed import SqliteRunFeed
from schedcord.ratelimit.admission_controller import AdmissionController
from schedcord.schedule.change_detector import ChangeDetector
from schedcord.schedule.sync_scheduler import SyncScheduler
from schedcord.services import Services
from schedcord.settings.tenant_config_store import TenantConfigStore
from schedcord.setup.session_store import SetupSessionStore
from schedcord.setup.setup_flow import SetupFlow
from schedcord.ui.schedule_embed import EmbedScheduleRenderer
from schedcord.util.logger import get_logger, handle_exception

logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Schedcord only needs guild events; it never reads message content."""
    intents = discord.Intents.default()
    intents.guilds = True
    return intents


async def build_services(bot: discord.Bot, config: AppConfig = app_config) -> Services:
    """Open the databases and construct every component with its collaborators."""
    config_db = ConnectionManager()
    await config_db.open(config.config_db_path)
    runs_db = ConnectionManager()
    await runs_db.open(config.runs_db_path)
    await SchemaManager.initialize_runs_schema(runs_db.connection)

    store = TenantConfigStore(config_db)
    await store.async_init()
    transport = DiscordTransport(bot)

    scheduler = SyncScheduler(
        store,
        SqliteRunFeed(runs_db),
        EmbedScheduleRenderer(window_days=config.schedule_days_ahead, interval=config.sync_interval),
        transport,
        ChangeDetector(),
        concurrency_limit=config.concurrency_limit,
        interval=config.sync_interval,
        window_days=config.schedule_days_ahead,
    )
    admission = AdmissionController(
        window=config.request_window,
        max_per_window=config.max_requests_per_window,
        command_cooldown=config.command_cooldown,
        interaction_cooldown=config.interaction_cooldown,
    )
    sessions = SetupSessionStore(ttl=config.setup_session_ttl)
    flow = SetupFlow(sessions, store, transport, scheduler, advance_delay=config.setup_advance_delay)

    return Services(
        config_db=config_db,
        runs_db=runs_db,
        store=store,
        scheduler=scheduler,
        admission=admission,
        sessions=sessions,
        flow=flow,
    )


def load_cogs(bot: discord.Bot, services: Services) -> None:
    """Register all cogs with the bot."""
    from schedcord.cog.commands import schedule_cmds
    from schedcord.cog.listener import events_listener, scheduler_cog

    events_listener.setup(bot)
    scheduler_cog.setup(bot, services)
    schedule_cmds.setup(bot, services)

    logger.info("All cogs loaded successfully.")


async def shutdown_runtime(bot: discord.Bot, services: Services | None) -> None:
    """Stop the scheduler, close the databases and disconnect the bot."""
    if services is not None:
        try:
            await services.close()
        except Exception as exc:
            logger.exception("Error during service shutdown: %s", exc)

    if not bot.is_closed():
        await bot.close()

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the bot and its services, returning an exit code."""
    token = load_environment()
    bot = discord.Bot(intents=build_intents())

    try:
        logger.info("Initializing databases and loading tenant configuration...")
        services = await build_services(bot)
    except Exception as exc:
        logger.critical("Failed to initialize services: %s", exc)
        return 1

    load_cogs(bot, services)

    exit_code = 0
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, services)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    logger.info("Starting Schedcord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
