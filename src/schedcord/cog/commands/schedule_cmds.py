"""
Schedule cog: slash commands for configuring and maintaining schedules.

- /schedule: Open the setup wizard (amends an existing setup)
- /schedule_refresh: Update this server's schedules right now
- /schedule_autoupdate: Turn automatic updates on or off
- /schedule_regenerate: Delete and re-post one category's schedule
- /schedule_color: Override or reset one category's embed colour

All commands require the Manage Server permission and pass the per-user
command cooldown before doing any work. Responses are ephemeral.
"""
import re
from typing import Optional

import discord
from discord import Option
from discord.ext import commands

from schedcord.datatypes.categories import CATEGORIES, get_category
from schedcord.datatypes.discord_datatypes import GuildID, UserID
from schedcord.errors import TransientInfraError
from schedcord.schedule.sync_scheduler import UnitOutcome
from schedcord.services import Services
from schedcord.ui.setup_ui import SetupWizardView
from schedcord.util.logger import get_logger

logger = get_logger("schedule_commands")

CATEGORY_CHOICES = [discord.OptionChoice(name=category.name, value=key) for key, category in CATEGORIES.items()]
HEX_COLOR = re.compile(r"#?([0-9a-fA-F]{6})")
DEFAULT_COLOR_WORDS = frozenset({"default", "reset", "none"})


def parse_color(value: str) -> Optional[int]:
    """
    Parse a colour option.

    Args:
        value: ``#RRGGBB``, ``RRGGBB`` or one of ``default``, ``reset``, ``none``.

    Returns:
        The colour as a 24-bit integer, or ``None`` to fall back to the category default.

    Raises:
        ValueError: The value is neither a hex colour nor a reset word.
    """
    text = value.strip()
    if text.lower() in DEFAULT_COLOR_WORDS:
        return None
    match = HEX_COLOR.fullmatch(text)
    if match is None:
        raise ValueError(f"{value!r} is not a hex colour")
    return int(match.group(1), 16)


class ScheduleCog(commands.Cog):
    """Server-level schedule configuration."""

    def __init__(self, bot: discord.Bot, services: Services):
        self.bot = bot
        self.services = services
        logger.info("[SCHEDULE CMDS] Schedule cog loaded")

    async def _ensure_guild_context(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        return True

    def _has_manage_permission(self, ctx: discord.ApplicationContext) -> bool:
        permissions = getattr(ctx.user, "guild_permissions", None)
        return bool(getattr(permissions, "manage_guild", False))

    async def _check_permissions(self, ctx: discord.ApplicationContext, command_name: str) -> bool:
        """Guild context, Manage Server and the command cooldown, in that order."""
        if not await self._ensure_guild_context(ctx):
            return False
        if not self._has_manage_permission(ctx):
            await ctx.respond("You need Manage Server permission.", ephemeral=True)
            return False

        result = self.services.admission.check_command(UserID(ctx.user.id), command_name)
        if not result:
            await ctx.respond(
                f"⏳ This command is on cooldown. Try again in {result.seconds_remaining}s.", ephemeral=True
            )
            return False
        return True

    async def _configured_tenant(self, ctx: discord.ApplicationContext):
        tenant = await self.services.store.get(GuildID(ctx.guild_id))
        if tenant is None or not tenant.setup_complete:
            await ctx.respond("This server has no schedules yet. Run `/schedule` first.", ephemeral=True)
            return None
        return tenant

    @commands.slash_command(
        name="schedule",
        description="Set up or change the run schedules posted in this server.",
    )
    async def schedule(self, ctx: discord.ApplicationContext):
        if not await self._check_permissions(ctx, "schedule"):
            return

        actor_id = UserID(ctx.user.id)
        guild_id = GuildID(ctx.guild_id)
        outcome = await self.services.flow.start(actor_id, guild_id)

        view = SetupWizardView(
            self.services.flow, self.services.admission, actor_id, guild_id, ctx.guild.name if ctx.guild else ""
        )
        await view.refresh_items(outcome)

        intro = "Updating your existing schedule setup.\n" if outcome.session and outcome.session.amending else ""
        await ctx.respond(f"{intro}{outcome.message}", view=view, ephemeral=True)
        view.message = await ctx.interaction.original_response()

    @commands.slash_command(
        name="schedule_refresh",
        description="Update this server's schedules right now.",
    )
    async def schedule_refresh(self, ctx: discord.ApplicationContext):
        if not await self._check_permissions(ctx, "schedule_refresh"):
            return
        if await self._configured_tenant(ctx) is None:
            return

        await ctx.defer(ephemeral=True)
        report = await self.services.scheduler.force_update(GuildID(ctx.guild_id))
        if report.failed:
            await ctx.send_followup(
                f"⚠️ Refreshed with problems: {report.published} updated, {report.unchanged} unchanged, "
                f"{report.failed} failed. Check that I can still post in the schedule channels.",
                ephemeral=True,
            )
            return
        await ctx.send_followup(
            f"✅ Schedules refreshed: {report.published} updated, {report.unchanged} already current.",
            ephemeral=True,
        )

    @commands.slash_command(
        name="schedule_autoupdate",
        description="Turn automatic schedule updates on or off.",
    )
    async def schedule_autoupdate(
        self,
        ctx: discord.ApplicationContext,
        enabled: Option(bool, "Whether schedules update automatically.", required=True),
    ):
        if not await self._check_permissions(ctx, "schedule_autoupdate"):
            return
        if await self._configured_tenant(ctx) is None:
            return

        await self.services.store.upsert(GuildID(ctx.guild_id), auto_update=enabled)
        logger.info("[SCHEDULE CMDS] Auto-update %s for guild %s", "enabled" if enabled else "disabled", ctx.guild_id)
        await ctx.respond(
            f"Automatic updates are now **{'enabled' if enabled else 'disabled'}**.", ephemeral=True
        )

    @commands.slash_command(
        name="schedule_regenerate",
        description="Delete and re-post the schedule of one category.",
    )
    async def schedule_regenerate(
        self,
        ctx: discord.ApplicationContext,
        category: Option(str, "Category to regenerate.", choices=CATEGORY_CHOICES, required=True),
    ):
        if not await self._check_permissions(ctx, "schedule_regenerate"):
            return
        tenant = await self._configured_tenant(ctx)
        if tenant is None:
            return

        name = get_category(category).name
        if category not in tenant.configured_categories():
            await ctx.respond(f"**{name}** is not configured in this server.", ephemeral=True)
            return

        await ctx.defer(ephemeral=True)
        outcome = await self.services.scheduler.regenerate(GuildID(ctx.guild_id), category)
        if outcome is UnitOutcome.FAILED:
            await ctx.send_followup(f"❌ Could not regenerate the **{name}** schedule.", ephemeral=True)
            return
        await ctx.send_followup(f"✅ The **{name}** schedule was re-posted.", ephemeral=True)

    @commands.slash_command(
        name="schedule_color",
        description="Set the embed colour of one category's schedule.",
    )
    async def schedule_color(
        self,
        ctx: discord.ApplicationContext,
        category: Option(str, "Category to recolour.", choices=CATEGORY_CHOICES, required=True),
        color: Option(str, "Hex colour such as #5865F2, or 'default' to reset.", required=True),
    ):
        if not await self._check_permissions(ctx, "schedule_color"):
            return
        tenant = await self._configured_tenant(ctx)
        if tenant is None:
            return

        name = get_category(category).name
        if category not in tenant.configured_categories():
            await ctx.respond(f"**{name}** is not configured in this server.", ephemeral=True)
            return
        try:
            value = parse_color(color)
        except ValueError:
            await ctx.respond(
                f"❌ `{color}` is not a colour. Use a hex value like `#5865F2`, or `default`.", ephemeral=True
            )
            return

        await ctx.defer(ephemeral=True)
        guild_id = GuildID(ctx.guild_id)
        try:
            # the hash ignores colour, so clear it to force a repost
            async with self.services.scheduler.hold_pairs(guild_id, [category]):
                await self.services.store.upsert(
                    guild_id, categories={category: {"color": value, "last_hash": None}}
                )
        except TransientInfraError as exc:
            logger.error("[SCHEDULE CMDS] Failed to save colour for guild %s/%s: %s", guild_id, category, exc)
            await ctx.send_followup("❌ Saving the colour failed. Please try again.", ephemeral=True)
            return

        logger.info("[SCHEDULE CMDS] Colour of %s in guild %s set to %s", category, guild_id, color)
        await self.services.scheduler.force_update(guild_id)
        shown = "the default colour" if value is None else f"`#{value:06X}`"
        await ctx.send_followup(f"🎨 The **{name}** schedule now uses {shown}.", ephemeral=True)


def setup(bot: discord.Bot, services: Services) -> None:
    bot.add_cog(ScheduleCog(bot, services))
