"""
Repository for the ``tenants`` and ``tenant_categories`` tables.

Plain row access only; merging and caching live in
:class:`~schedcord.settings.tenant_config_store.TenantConfigStore`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiosqlite

from schedcord.datatypes.discord_datatypes import GuildID
from schedcord.util.logger import get_logger

logger = get_logger("tenant_repo")


@dataclass
class TenantRow:
    """Raw DB row for one guild."""
    guild_id: int
    guild_name: str
    auto_update: bool
    setup_complete: bool


@dataclass
class CategoryRow:
    """Raw DB row for one configured category of a guild."""
    guild_id: int
    category: str
    channel_id: int
    hosts: List[str] = field(default_factory=list)
    color: Optional[int] = None
    last_hash: Optional[str] = None
    message_id: Optional[int] = None


def _category_from_row(row) -> CategoryRow:
    return CategoryRow(
        guild_id=row[0],
        category=row[1],
        channel_id=row[2],
        hosts=list(json.loads(row[3] or "[]")),
        color=row[4],
        last_hash=row[5],
        message_id=row[6],
    )


_CATEGORY_COLUMNS = "guild_id, category, channel_id, hosts, color, last_hash, message_id"


class TenantRepository:
    """CRUD for tenant rows and their category rows."""

    async def get_tenant(self, conn: aiosqlite.Connection, guild_id: GuildID) -> TenantRow | None:
        async with conn.execute(
            "SELECT guild_id, guild_name, auto_update, setup_complete FROM tenants WHERE guild_id = ?",
            (int(guild_id),),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        return TenantRow(guild_id=row[0], guild_name=row[1] or "", auto_update=bool(row[2]), setup_complete=bool(row[3]))

    async def get_all_tenants(self, conn: aiosqlite.Connection) -> Dict[int, TenantRow]:
        """Fetch every tenant row keyed by guild_id int."""
        async with conn.execute(
            "SELECT guild_id, guild_name, auto_update, setup_complete FROM tenants"
        ) as cursor:
            rows = await cursor.fetchall()

        return {
            row[0]: TenantRow(guild_id=row[0], guild_name=row[1] or "", auto_update=bool(row[2]), setup_complete=bool(row[3]))
            for row in rows
        }

    async def get_categories(self, conn: aiosqlite.Connection, guild_id: GuildID) -> List[CategoryRow]:
        async with conn.execute(
            f"SELECT {_CATEGORY_COLUMNS} FROM tenant_categories WHERE guild_id = ?",
            (int(guild_id),),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_category_from_row(row) for row in rows]

    async def get_all_categories(self, conn: aiosqlite.Connection) -> Dict[int, List[CategoryRow]]:
        """Fetch every category row grouped by guild_id int."""
        async with conn.execute(f"SELECT {_CATEGORY_COLUMNS} FROM tenant_categories") as cursor:
            rows = await cursor.fetchall()

        result: Dict[int, List[CategoryRow]] = {}
        for row in rows:
            result.setdefault(row[0], []).append(_category_from_row(row))
        return result

    async def upsert_tenant(self, conn: aiosqlite.Connection, row: TenantRow) -> None:
        await conn.execute(
            """
            INSERT INTO tenants (guild_id, guild_name, auto_update, setup_complete)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                guild_name     = excluded.guild_name,
                auto_update    = excluded.auto_update,
                setup_complete = excluded.setup_complete
            """,
            (int(row.guild_id), row.guild_name, 1 if row.auto_update else 0, 1 if row.setup_complete else 0),
        )

    async def upsert_category(self, conn: aiosqlite.Connection, row: CategoryRow) -> None:
        await conn.execute(
            """
            INSERT INTO tenant_categories (guild_id, category, channel_id, hosts, color, last_hash, message_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, category) DO UPDATE SET
                channel_id = excluded.channel_id,
                hosts      = excluded.hosts,
                color      = excluded.color,
                last_hash  = excluded.last_hash,
                message_id = excluded.message_id
            """,
            (
                int(row.guild_id),
                row.category,
                int(row.channel_id),
                json.dumps(list(row.hosts)),
                row.color,
                row.last_hash,
                int(row.message_id) if row.message_id is not None else None,
            ),
        )

    async def delete_category(self, conn: aiosqlite.Connection, guild_id: GuildID, category: str) -> None:
        await conn.execute(
            "DELETE FROM tenant_categories WHERE guild_id = ? AND category = ?",
            (int(guild_id), category),
        )

