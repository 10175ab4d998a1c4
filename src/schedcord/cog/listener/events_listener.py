"""Event listener Cog for Schedcord.

Handles bot lifecycle events: presence on ready and the welcome message when
the bot joins a server.
"""

import discord
from discord.ext import commands

from schedcord.util.logger import get_logger

logger = get_logger("events_listener")

WELCOME_MESSAGE = (
    "👋 Welcome to **Schedcord**!\n\n"
    "I post upcoming run schedules from multiple host servers and keep them up to date.\n\n"
    "**To get started:**\n"
    "1. Run `/schedule` in your server\n"
    "2. Choose which categories to display (BA/FT/DRS)\n"
    "3. Select a channel for each category\n"
    "4. Choose which host servers to include\n\n"
    "Schedules update automatically every 60 seconds."
)


async def send_welcome(guild: discord.Guild) -> bool:
    """DM the owner, falling back to the system channel. Returns whether a message was sent."""
    try:
        owner = guild.owner or await guild.fetch_member(guild.owner_id)
        await owner.send(WELCOME_MESSAGE)
        return True
    except discord.HTTPException as exc:
        logger.debug("[EVENTS LISTENER] Could not DM owner of guild %s: %s", guild.id, exc)

    if guild.system_channel is not None:
        try:
            await guild.system_channel.send(WELCOME_MESSAGE)
            return True
        except discord.HTTPException as exc:
            logger.debug("[EVENTS LISTENER] Could not post in system channel of guild %s: %s", guild.id, exc)

    logger.warning("[EVENTS LISTENER] Could not send welcome message to guild %s", guild.id)
    return False


class EventsListenerCog(commands.Cog):
    """Handles Discord bot lifecycle events."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        if not self.bot.user:
            logger.warning("[EVENTS LISTENER] Bot partially connected; user info not yet available.")
            return

        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="the run schedules"),
        )
        logger.info("Bot connected as %s (ID: %s) in %d guilds", self.bot.user, self.bot.user.id, len(self.bot.guilds))

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info(
            "[EVENTS LISTENER] Bot added to guild: %s (ID: %s, %s members)",
            guild.name, guild.id, guild.member_count,
        )
        await send_welcome(guild)

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        # Tenant configuration is kept so a re-invite restores the setup.
        logger.info("[EVENTS LISTENER] Bot removed from guild: %s (ID: %s)", guild.name, guild.id)


def setup(bot: discord.Bot) -> None:
    """Register the EventsListenerCog with the bot."""
    bot.add_cog(EventsListenerCog(bot))
