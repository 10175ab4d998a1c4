"""
Schema creation for the tenant configuration and runs databases.

One row per guild in ``tenants`` and one row per configured category in
``tenant_categories``. Host lists are stored as JSON arrays.
"""

import aiosqlite

from schedcord.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables, indexes and triggers for tenant configuration."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create or update all tables, indexes and triggers.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS tenants (
                guild_id INTEGER PRIMARY KEY,
                guild_name TEXT NOT NULL DEFAULT '',
                auto_update INTEGER NOT NULL DEFAULT 1,
                setup_complete INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS tenant_categories (
                guild_id INTEGER NOT NULL,
                category TEXT NOT NULL,
                channel_id INTEGER NOT NULL,
                hosts TEXT NOT NULL DEFAULT '[]',
                color INTEGER,
                last_hash TEXT,
                message_id INTEGER,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (guild_id, category),
                FOREIGN KEY (guild_id) REFERENCES tenants(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_tenant_categories_guild ON tenant_categories(guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_tenants_auto_update ON tenants(auto_update, setup_complete)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Keep ``updated_at`` current on every update."""
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_tenants_timestamp
            AFTER UPDATE ON tenants
            FOR EACH ROW
            BEGIN
                UPDATE tenants SET updated_at = CURRENT_TIMESTAMP
                WHERE guild_id = NEW.guild_id;
            END
        """)

        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_tenant_categories_timestamp
            AFTER UPDATE ON tenant_categories
            FOR EACH ROW
            BEGIN
                UPDATE tenant_categories SET updated_at = CURRENT_TIMESTAMP
                WHERE guild_id = NEW.guild_id AND category = NEW.category;
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    @staticmethod
    async def initialize_runs_schema(db: aiosqlite.Connection) -> None:
        """
        Create the ``runs`` table if the announcement scraper has not yet.

        ``Start`` and ``TimeStamp`` are epoch milliseconds.
        """
        await db.execute("""
            CREATE TABLE IF NOT EXISTS runs (
                ID TEXT NOT NULL,
                ServerName TEXT NOT NULL,
                Type TEXT,
                Start INTEGER NOT NULL,
                RunDC TEXT,
                ReferenceLink TEXT,
                TimeStamp INTEGER,
                DRS INTEGER NOT NULL DEFAULT 0,
                FT INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (ServerName, ID)
            )
        """)
        await db.execute("CREATE INDEX IF NOT EXISTS idx_runs_start ON runs(Start)")
        await db.commit()
