"""
Persistent per-guild schedule configuration.

Provides the engine's configuration store:
- get(guild_id) -> TenantConfig | None
- upsert(guild_id, **fields): merge partial fields and persist
- save(tenant): persist a complete record
- all_tenants(): every stored tenant

Everything is cached in memory after :meth:`TenantConfigStore.async_init`;
writes go to SQLite first and only reach the cache once committed. Callers
always receive copies, so mutating a returned record has no effect until it is
saved.
"""

from __future__ import annotations

import asyncio
from dataclasses import fields as dataclass_fields
from typing import Any, Dict, List, Mapping, Optional

import aiosqlite

from schedcord.database.db_connection import ConnectionManager
from schedcord.database.db_schema import SchemaManager
from schedcord.datatypes.categories import get_category
from schedcord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID
from schedcord.datatypes.schedule_datatypes import CategoryConfig, TenantConfig
from schedcord.errors import TransientInfraError, ValidationError
from schedcord.settings.repositories.tenant_repo import CategoryRow, TenantRepository, TenantRow
from schedcord.util.logger import get_logger

logger = get_logger("tenant_config_store")

TENANT_FIELDS = frozenset({"guild_name", "auto_update", "setup_complete"})
CATEGORY_FIELDS = frozenset(f.name for f in dataclass_fields(CategoryConfig))


class TenantConfigStore:
    """
    SQLite-backed tenant configuration with a write-through cache.

    Args:
        db: Connection manager for the configuration database.
        repo: Row access; a default repository is created when omitted.
    """

    def __init__(self, db: ConnectionManager, repo: Optional[TenantRepository] = None) -> None:
        self._db = db
        self._repo = repo or TenantRepository()
        self._tenants: Dict[GuildID, TenantConfig] = {}
        self._locks: Dict[GuildID, asyncio.Lock] = {}
        self._initialized = False

    async def async_init(self) -> None:
        """Create the schema and load every tenant into memory."""
        if self._initialized:
            return
        try:
            await SchemaManager.initialize_schema(self._db.connection)
            async with self._db.read() as conn:
                tenant_rows = await self._repo.get_all_tenants(conn)
                category_rows = await self._repo.get_all_categories(conn)
        except aiosqlite.Error as exc:
            raise TransientInfraError(f"Failed to load tenant configuration: {exc}") from exc

        for guild_id, row in tenant_rows.items():
            self._tenants[GuildID(guild_id)] = self._to_tenant(row, category_rows.get(guild_id, []))
        self._initialized = True
        logger.info("[TENANT STORE] Loaded %d tenants", len(self._tenants))

    # ========== Core API ==========

    async def get(self, guild_id: GuildID) -> Optional[TenantConfig]:
        tenant = self._tenants.get(guild_id)
        return tenant.copy() if tenant is not None else None

    async def all_tenants(self) -> List[TenantConfig]:
        return [tenant.copy() for tenant in self._tenants.values()]

    async def save(self, tenant: TenantConfig) -> None:
        """
        Persist a complete tenant record.

        Raises:
            ValidationError: A category has a channel without hosts or the
                other way round.
            TransientInfraError: The database write failed.
        """
        async with self._lock(tenant.guild_id):
            await self._write(tenant)

    async def upsert(self, guild_id: GuildID, **fields: Any) -> TenantConfig:
        """
        Merge ``fields`` into the stored tenant and persist it.

        Top-level fields are ``guild_name``, ``auto_update`` and
        ``setup_complete``. ``categories`` maps a category key to the
        :class:`CategoryConfig` fields to change for it.

        Returns:
            A copy of the updated tenant.
        """
        async with self._lock(guild_id):
            current = self._tenants.get(guild_id)
            tenant = current.copy() if current is not None else TenantConfig(guild_id=guild_id)

            for name, value in fields.items():
                if name == "categories":
                    self._merge_categories(tenant, value)
                elif name in TENANT_FIELDS:
                    setattr(tenant, name, value)
                else:
                    raise ValidationError(f"Unknown tenant field {name!r}")

            await self._write(tenant)
            return tenant.copy()

    # ========== Internals ==========

    def _lock(self, guild_id: GuildID) -> asyncio.Lock:
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[guild_id] = lock
        return lock

    @staticmethod
    def _merge_categories(tenant: TenantConfig, changes: Mapping[str, Mapping[str, Any]]) -> None:
        for key, category_fields in changes.items():
            get_category(key)
            config = tenant.category(key)
            for field_name, value in category_fields.items():
                if field_name not in CATEGORY_FIELDS:
                    raise ValidationError(f"Unknown category field {field_name!r}")
                setattr(config, field_name, list(value) if field_name == "hosts" else value)

    @staticmethod
    def _check_complete(tenant: TenantConfig) -> None:
        for key, config in tenant.categories.items():
            has_channel = config.channel_id is not None
            if has_channel != bool(config.hosts):
                raise ValidationError(
                    f"Category {key} for guild {tenant.guild_id} needs both a channel and at least one host"
                )

    async def _write(self, tenant: TenantConfig) -> None:
        self._check_complete(tenant)
        guild_id = tenant.guild_id
        try:
            async with self._db.transaction() as conn:
                await self._repo.upsert_tenant(
                    conn,
                    TenantRow(
                        guild_id=int(guild_id),
                        guild_name=tenant.guild_name,
                        auto_update=tenant.auto_update,
                        setup_complete=tenant.setup_complete,
                    ),
                )
                for key, config in tenant.categories.items():
                    if not config.is_configured:
                        await self._repo.delete_category(conn, guild_id, key)
                        continue
                    await self._repo.upsert_category(
                        conn,
                        CategoryRow(
                            guild_id=int(guild_id),
                            category=key,
                            channel_id=int(config.channel_id),
                            hosts=list(config.hosts),
                            color=config.color,
                            last_hash=config.last_hash,
                            message_id=config.message_id,
                        ),
                    )
        except aiosqlite.Error as exc:
            logger.error("[TENANT STORE] Failed to persist guild %s: %s", guild_id, exc)
            raise TransientInfraError(f"Failed to persist configuration for guild {guild_id}: {exc}") from exc

        self._tenants[guild_id] = tenant.copy()
        logger.debug("[TENANT STORE] Persisted guild %s", guild_id)

    @staticmethod
    def _to_tenant(row: TenantRow, category_rows: List[CategoryRow]) -> TenantConfig:
        tenant = TenantConfig(
            guild_id=GuildID(row.guild_id),
            guild_name=row.guild_name,
            auto_update=row.auto_update,
            setup_complete=row.setup_complete,
        )
        for category_row in category_rows:
            tenant.categories[category_row.category] = CategoryConfig(
                channel_id=ChannelID(category_row.channel_id),
                hosts=list(category_row.hosts),
                color=category_row.color,
                last_hash=category_row.last_hash,
                message_id=MessageID(category_row.message_id) if category_row.message_id is not None else None,
            )
        return tenant
