"""
Single long-lived aiosqlite connection per database file.

Reads go straight through the shared connection (WAL lets them run next to a
writer). Writes go through :meth:`ConnectionManager.transaction`, which
serialises writers with a semaphore and commits or rolls back as a unit.

Usage
-----
    manager = ConnectionManager()
    await manager.open(path)

    async with manager.read() as conn:
        cursor = await conn.execute("SELECT ...")

    async with manager.transaction() as conn:
        await conn.execute("INSERT ...")

    await manager.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable

import aiosqlite

from schedcord.util.logger import get_logger

logger = get_logger("database_connection")

# Pragmas applied once when the connection is opened
DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA temp_store = MEMORY",
    "PRAGMA busy_timeout = 5000",
)


class ConnectionManager:
    """
    Owns one aiosqlite connection for the lifetime of the bot.

    The tenant store and the run feed each get their own manager, created in
    :func:`schedcord.main.build_services`.
    """

    def __init__(self, pragmas: Iterable[str] = DEFAULT_PRAGMAS) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None
        self._pragmas = tuple(pragmas)

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, path: Path) -> None:
        """Open ``path`` (creating parent directories) and apply the pragmas."""
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection to %s already exists; ignoring", self._path)
            return

        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._path)
        self._conn.row_factory = aiosqlite.Row

        for pragma in self._pragmas:
            await self._conn.execute(pragma)
        await self._conn.commit()

        logger.info("[DB CONNECTION] Opened connection to %s", self._path)

    async def close(self) -> None:
        """Checkpoint the WAL and close the connection."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except aiosqlite.Error:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection to %s closed", self._path)

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw connection.

        Raises:
            RuntimeError: If :meth:`open` has not been awaited yet.
        """
        if self._conn is None:
            raise RuntimeError("ConnectionManager: connection is not open. Call await manager.open(path) first.")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialised write transaction; commits on clean exit, rolls back on error."""
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Symmetric counterpart of :meth:`transaction` for reads; takes no lock."""
        yield self.connection
