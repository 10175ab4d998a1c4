"""
Discord implementation of the engine's transport port, built on py-cord.

Every call is wrapped by :func:`translate_errors`, which turns py-cord and
aiohttp failures into :mod:`schedcord.errors` classes.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, FrozenSet, Optional

import aiohttp
import discord

from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID
from schedcord.errors import MissingCapabilityError, NotFoundError, TransientInfraError
from schedcord.schedule.ports import REQUIRED_CAPABILITIES, BotStanding, ChannelPolicy, RenderedSchedule
from schedcord.util.logger import get_logger

logger = get_logger("discord_transport")

AUDIT_REASON = "Schedcord: schedule channel configuration"


@asynccontextmanager
async def translate_errors(action: str) -> AsyncIterator[None]:
    """Re-raise py-cord and network failures of ``action`` as engine errors."""
    try:
        yield
    except discord.NotFound as exc:
        raise NotFoundError(f"{action}: {exc.text or 'not found'}") from exc
    except discord.Forbidden as exc:
        raise MissingCapabilityError(f"{action}: {exc.text or 'missing permissions'}") from exc
    except (discord.HTTPException, aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise TransientInfraError(f"{action}: {exc}") from exc


class DiscordTransport:
    """Sends, edits and deletes schedule messages and manages schedule channels."""

    def __init__(self, bot: discord.Bot) -> None:
        self._bot = bot

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self._bot.get_guild(int(guild_id))
        if guild is None:
            raise NotFoundError(f"Guild {guild_id} is not available")
        return guild

    async def _channel(self, channel_id: ChannelID) -> discord.TextChannel:
        channel = self._bot.get_channel(int(channel_id))
        if channel is None:
            async with translate_errors(f"fetch channel {channel_id}"):
                channel = await self._bot.fetch_channel(int(channel_id))
        if not isinstance(channel, discord.TextChannel):
            raise NotFoundError(f"Channel {channel_id} is not a text channel")
        return channel

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def publish(self, channel_id: ChannelID, content: RenderedSchedule) -> MessageID:
        channel = await self._channel(channel_id)
        async with translate_errors(f"send to channel {channel_id}"):
            message = await channel.send(embeds=list(content.payload))
        logger.debug("[DISCORD TRANSPORT] Sent message %s to channel %s", message.id, channel_id)
        return MessageID(message.id)

    async def edit(self, channel_id: ChannelID, message_id: MessageID, content: RenderedSchedule) -> None:
        channel = await self._channel(channel_id)
        async with translate_errors(f"edit message {message_id}"):
            await channel.get_partial_message(int(message_id)).edit(embeds=list(content.payload))

    async def delete(self, channel_id: ChannelID, message_id: MessageID) -> None:
        channel = await self._channel(channel_id)
        async with translate_errors(f"delete message {message_id}"):
            await channel.get_partial_message(int(message_id)).delete()

    # ------------------------------------------------------------------
    # Channels and permissions
    # ------------------------------------------------------------------

    async def create_channel(self, guild_id: GuildID, name: str, policy: ChannelPolicy) -> ChannelID:
        """Create a text channel; read-only for @everyone when the policy says so."""
        guild = self._guild(guild_id)
        overwrites = {
            guild.me: discord.PermissionOverwrite(**{capability: True for capability in policy.bot_capabilities}),
        }
        if policy.read_only:
            overwrites[guild.default_role] = discord.PermissionOverwrite(
                send_messages=False,
                send_messages_in_threads=False,
                create_public_threads=False,
                create_private_threads=False,
            )

        async with translate_errors(f"create channel #{name}"):
            channel = await guild.create_text_channel(
                name, overwrites=overwrites, topic=policy.topic or None, reason=AUDIT_REASON
            )
        logger.info("[DISCORD TRANSPORT] Created #%s (%s) in guild %s", name, channel.id, guild_id)
        return ChannelID(channel.id)

    async def grant_capabilities(
        self, channel_id: ChannelID, role_id: RoleID, capabilities: FrozenSet[str]
    ) -> None:
        channel = await self._channel(channel_id)
        role = channel.guild.get_role(int(role_id))
        if role is None:
            raise NotFoundError(f"Role {role_id} not found in guild {channel.guild.id}")

        overwrite = channel.overwrites_for(role)
        overwrite.update(**{capability: True for capability in capabilities})
        async with translate_errors(f"set permissions in channel {channel_id}"):
            await channel.set_permissions(role, overwrite=overwrite, reason=AUDIT_REASON)

    async def check_capabilities(
        self, channel_id: ChannelID, role_id: Optional[RoleID] = None
    ) -> FrozenSet[str]:
        channel = await self._channel(channel_id)
        target: Optional[discord.abc.Snowflake]
        if role_id is None:
            target = channel.guild.me
        else:
            target = channel.guild.get_role(int(role_id))
        if target is None:
            return frozenset()

        permissions = channel.permissions_for(target)
        return frozenset(capability for capability in REQUIRED_CAPABILITIES if getattr(permissions, capability, False))

    async def can_manage_permissions(self, channel_id: ChannelID) -> bool:
        channel = await self._channel(channel_id)
        return channel.permissions_for(channel.guild.me).manage_channels

    async def bot_standing(self, guild_id: GuildID) -> BotStanding:
        guild = self._guild(guild_id)
        me = guild.me
        role = guild.self_role or me.top_role
        return BotStanding(
            role_id=RoleID(role.id) if role is not None else None,
            role_name=role.name if role is not None else "",
            role_position=me.top_role.position,
            manage_channels=me.guild_permissions.manage_channels,
            manage_roles=me.guild_permissions.manage_roles,
        )
