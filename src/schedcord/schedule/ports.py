"""Ports (interfaces) the schedule engine depends on.

The engine only talks to storage, the upstream feed, the renderer and Discord
through these contracts, so each can be replaced by a fake in tests. Every
port may fail; adapters raise the classes in :mod:`schedcord.errors`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Protocol, Sequence

from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID
from schedcord.datatypes.schedule_datatypes import Run, TenantConfig

# Capabilities the bot needs in a schedule channel
VIEW = "view_channel"
SEND = "send_messages"
EMBED_LINKS = "embed_links"
ATTACH_FILES = "attach_files"
READ_HISTORY = "read_message_history"

REQUIRED_CAPABILITIES: FrozenSet[str] = frozenset({VIEW, SEND, EMBED_LINKS, ATTACH_FILES, READ_HISTORY})

CAPABILITY_LABELS: Dict[str, str] = {
    VIEW: "View Channel",
    SEND: "Send Messages",
    EMBED_LINKS: "Embed Links",
    ATTACH_FILES: "Attach Files",
    READ_HISTORY: "Read Message History",
}


@dataclass(frozen=True, slots=True)
class RenderedSchedule:
    """Opaque transport payload plus a key identifying its content."""

    payload: Any
    content_key: str


@dataclass(frozen=True, slots=True)
class BotStanding:
    """What the bot is allowed to do in a guild."""

    role_id: Optional[RoleID]
    role_name: str = ""
    role_position: int = 0
    manage_channels: bool = False
    manage_roles: bool = False

    @property
    def role_high_enough(self) -> bool:
        return self.role_position > 1


@dataclass(frozen=True, slots=True)
class ChannelPolicy:
    """Permission policy applied when the bot creates a channel."""

    read_only: bool = True
    topic: str = ""
    bot_capabilities: FrozenSet[str] = field(default_factory=lambda: REQUIRED_CAPABILITIES)


class ConfigStore(Protocol):
    """Persistent tenant configuration."""

    async def get(self, guild_id: GuildID) -> Optional[TenantConfig]:
        ...

    async def upsert(self, guild_id: GuildID, **fields: Any) -> TenantConfig:
        """Merge ``fields`` into the stored tenant, creating it if missing.

        ``categories`` maps a category key to a dict of the
        :class:`CategoryConfig` fields to change; other fields are kept.
        """
        ...

    async def save(self, tenant: TenantConfig) -> None:
        ...

    async def all_tenants(self) -> List[TenantConfig]:
        ...


class UpstreamFeed(Protocol):
    """Source of truth for raw runs."""

    async def list_runs(
        self, category: str, sources: Sequence[str], window_days: int
    ) -> Dict[str, List[Run]]:
        ...


class Renderer(Protocol):
    """Pure function from runs to a transport payload."""

    def render(
        self,
        tenant: TenantConfig,
        category: str,
        runs_by_source: Mapping[str, Sequence[Run]],
        now: Optional[datetime] = None,
    ) -> RenderedSchedule:
        ...


class Transport(Protocol):
    """Outbound Discord operations used by the engine and the setup flow."""

    async def publish(self, channel_id: ChannelID, content: RenderedSchedule) -> MessageID:
        ...

    async def edit(self, channel_id: ChannelID, message_id: MessageID, content: RenderedSchedule) -> None:
        ...

    async def delete(self, channel_id: ChannelID, message_id: MessageID) -> None:
        ...

    async def create_channel(self, guild_id: GuildID, name: str, policy: ChannelPolicy) -> ChannelID:
        ...

    async def grant_capabilities(
        self, channel_id: ChannelID, role_id: RoleID, capabilities: FrozenSet[str]
    ) -> None:
        ...

    async def check_capabilities(
        self, channel_id: ChannelID, role_id: Optional[RoleID] = None
    ) -> FrozenSet[str]:
        """Capabilities held in the channel by ``role_id``, or by the bot when None."""
        ...

    async def can_manage_permissions(self, channel_id: ChannelID) -> bool:
        ...

    async def bot_standing(self, guild_id: GuildID) -> BotStanding:
        ...
