"""In-memory stand-ins for the engine's ports, shared by the tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID
from schedcord.datatypes.schedule_datatypes import CategoryConfig, Run, TenantConfig
from schedcord.errors import MissingCapabilityError, NotFoundError, TransientInfraError
from schedcord.schedule.ports import REQUIRED_CAPABILITIES, BotStanding, ChannelPolicy, RenderedSchedule

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_run(run_id: str, source: str = "CAFE", run_type: str = "Fresh", hours_ahead: float = 24,
             created_hours_ago: Optional[float] = 48, now: datetime = NOW) -> Run:
    return Run(
        run_id=run_id,
        source=source,
        run_type=run_type,
        start=now + timedelta(hours=hours_ahead),
        created_at=now - timedelta(hours=created_hours_ago) if created_hours_ago is not None else None,
    )


def make_tenant(guild_id: int = 1, categories: Optional[Dict[str, Tuple[int, Sequence[str]]]] = None,
                auto_update: bool = True, setup_complete: bool = True) -> TenantConfig:
    tenant = TenantConfig(guild_id=GuildID(guild_id), auto_update=auto_update, setup_complete=setup_complete)
    for key, (channel_id, hosts) in (categories or {}).items():
        tenant.categories[key] = CategoryConfig(channel_id=ChannelID(channel_id), hosts=list(hosts))
    return tenant


class FakeStore:
    def __init__(self, *tenants: TenantConfig) -> None:
        self.tenants: Dict[GuildID, TenantConfig] = {t.guild_id: t.copy() for t in tenants}
        self.fail_writes = False
        self.upserts: List[Tuple[GuildID, dict]] = []
        self.saves: List[TenantConfig] = []

    async def get(self, guild_id):
        tenant = self.tenants.get(guild_id)
        return tenant.copy() if tenant is not None else None

    async def all_tenants(self):
        return [tenant.copy() for tenant in self.tenants.values()]

    async def save(self, tenant):
        if self.fail_writes:
            raise TransientInfraError("database is locked")
        self.saves.append(tenant.copy())
        self.tenants[tenant.guild_id] = tenant.copy()

    async def upsert(self, guild_id, **fields):
        if self.fail_writes:
            raise TransientInfraError("database is locked")
        self.upserts.append((guild_id, fields))
        tenant = self.tenants.get(guild_id) or TenantConfig(guild_id=guild_id)
        for name, value in fields.items():
            if name == "categories":
                for key, changes in value.items():
                    config = tenant.category(key)
                    for field_name, field_value in changes.items():
                        setattr(config, field_name, field_value)
            else:
                setattr(tenant, name, value)
        self.tenants[guild_id] = tenant
        return tenant.copy()


class FakeFeed:
    """Returns canned runs and records how many fetches overlap."""

    def __init__(self, runs: Optional[Dict[str, List[Run]]] = None, delay: float = 0.0) -> None:
        self.runs = runs or {}
        self.delay = delay
        self.fail_categories: Set[str] = set()
        self.active = 0
        self.max_active = 0
        self.calls: List[Tuple[str, Tuple[str, ...]]] = []

    async def list_runs(self, category, sources, window_days):
        self.calls.append((category, tuple(sources)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if category in self.fail_categories:
                raise TransientInfraError("feed timed out")
            return {
                source: [run for run in self.runs.get(category, []) if run.source == source]
                for source in sources
            }
        finally:
            self.active -= 1


class FakeRenderer:
    def render(self, tenant, category, runs_by_source, now=None):
        ids = tuple(run.run_id for runs in runs_by_source.values() for run in runs)
        return RenderedSchedule(payload=ids, content_key="|".join(ids))


class FakeTransport:
    """Records every outbound call; behaviour is tuned through attributes."""

    def __init__(self) -> None:
        self.messages: Dict[Tuple[ChannelID, MessageID], object] = {}
        self.published: List[ChannelID] = []
        self.edited: List[Tuple[ChannelID, MessageID]] = []
        self.deleted: List[Tuple[ChannelID, MessageID]] = []
        self.created_channels: List[Tuple[GuildID, str, ChannelPolicy]] = []
        self.grants: List[Tuple[ChannelID, RoleID, FrozenSet[str]]] = []
        self.capabilities: Dict[ChannelID, FrozenSet[str]] = {}
        self.manageable: Set[ChannelID] = set()
        self.standing = BotStanding(role_id=RoleID(900), role_name="Schedcord", role_position=5,
                                    manage_channels=True, manage_roles=True)
        self.fail_publish_channels: Set[ChannelID] = set()
        self.fail_create = False
        self.fail_grant = False
        self.standing_error: Optional[Exception] = None
        self.manage_check_error: Optional[Exception] = None
        self._next_id = 1000

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def publish(self, channel_id, content):
        if channel_id in self.fail_publish_channels:
            raise MissingCapabilityError("cannot send", missing=("send_messages",))
        message_id = MessageID(self._new_id())
        self.messages[(channel_id, message_id)] = content.payload
        self.published.append(channel_id)
        return message_id

    async def edit(self, channel_id, message_id, content):
        if (channel_id, message_id) not in self.messages:
            raise NotFoundError("Unknown Message")
        self.messages[(channel_id, message_id)] = content.payload
        self.edited.append((channel_id, message_id))

    async def delete(self, channel_id, message_id):
        if self.messages.pop((channel_id, message_id), None) is None:
            raise NotFoundError("Unknown Message")
        self.deleted.append((channel_id, message_id))

    async def create_channel(self, guild_id, name, policy):
        if self.fail_create:
            raise MissingCapabilityError("Missing Permissions")
        self.created_channels.append((guild_id, name, policy))
        channel_id = ChannelID(self._new_id())
        self.capabilities[channel_id] = REQUIRED_CAPABILITIES
        return channel_id

    async def grant_capabilities(self, channel_id, role_id, capabilities):
        if self.fail_grant:
            raise MissingCapabilityError("Missing Access")
        self.grants.append((channel_id, role_id, frozenset(capabilities)))
        self.capabilities[channel_id] = self.capabilities.get(channel_id, frozenset()) | frozenset(capabilities)

    async def check_capabilities(self, channel_id, role_id=None):
        return self.capabilities.get(channel_id, frozenset())

    async def can_manage_permissions(self, channel_id):
        if self.manage_check_error is not None:
            raise self.manage_check_error
        return channel_id in self.manageable

    async def bot_standing(self, guild_id):
        if self.standing_error is not None:
            raise self.standing_error
        return self.standing
