"""
Upstream run feed backed by the runs database the announcement scraper fills.

Expected table (one row per announced run)::

    runs(ID TEXT, ServerName TEXT, Type TEXT, Start INTEGER,  -- epoch ms
         RunDC TEXT, ReferenceLink TEXT, TimeStamp INTEGER,    -- epoch ms
         DRS INTEGER, FT INTEGER)

Each category's filter predicate is applied in SQL.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

import aiosqlite

from schedcord.database.db_connection import ConnectionManager
from schedcord.datatypes.categories import get_category
from schedcord.datatypes.schedule_datatypes import Run
from schedcord.errors import TransientInfraError
from schedcord.util.logger import get_logger

logger = get_logger("run_feed")


def _from_epoch_ms(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class SqliteRunFeed:
    """
    Reads upcoming runs for a category from SQLite.

    Args:
        db: Connection manager for the runs database.
        clock: Current UTC time, injectable for tests.
    """

    def __init__(
        self,
        db: ConnectionManager,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._db = db
        self._clock = clock

    async def list_runs(self, category: str, sources: Sequence[str], window_days: int) -> Dict[str, List[Run]]:
        """
        Runs starting between now and ``window_days`` from now.

        Returns:
            Runs keyed by source in the order of ``sources``, each list sorted
            by start time. Sources without runs map to an empty list.
        """
        query_filter = get_category(category).query_filter
        result: Dict[str, List[Run]] = {source: [] for source in sources}
        if not result:
            return result

        now = self._clock()
        start_ms = int(now.timestamp() * 1000)
        end_ms = int((now + timedelta(days=window_days)).timestamp() * 1000)
        placeholders = ", ".join("?" for _ in result)

        try:
            async with self._db.read() as conn:
                async with conn.execute(
                    f"""
                    SELECT ID, ServerName, Type, Start, RunDC, ReferenceLink, TimeStamp
                    FROM runs
                    WHERE ({query_filter})
                      AND ServerName IN ({placeholders})
                      AND Start >= ? AND Start < ?
                    ORDER BY Start ASC, ID ASC
                    """,
                    (*result, start_ms, end_ms),
                ) as cursor:
                    rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            logger.error("[RUN FEED] Query for %s failed: %s", category, exc)
            raise TransientInfraError(f"Failed to read {category} runs: {exc}") from exc

        for row in rows:
            result[row[1]].append(
                Run(
                    run_id=str(row[0]),
                    source=row[1],
                    run_type=row[2] or "Unknown",
                    start=_from_epoch_ms(row[3]),
                    data_center=row[4] or None,
                    reference_link=row[5] or None,
                    created_at=_from_epoch_ms(row[6]),
                )
            )

        logger.debug("[RUN FEED] %d %s runs across %d sources", len(rows), category, len(result))
        return result
