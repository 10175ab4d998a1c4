"""In-memory store for setup sessions, one per actor."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from schedcord.datatypes.discord_datatypes import GuildID, UserID
from schedcord.setup.state_machine import SetupSession
from schedcord.util.logger import get_logger

logger = get_logger("setup_session_store")


class SetupSessionStore:
    """
    Owns every live :class:`SetupSession`.

    Sessions are not durable. ``ttl`` seconds after their last update they are
    treated as absent and removed by :meth:`sweep`; a ttl of 0 keeps them
    until commit or cancel.
    """

    def __init__(
        self,
        ttl: float = 1800.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[UserID, SetupSession] = {}
        self._locks: Dict[UserID, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def lock(self, actor_id: UserID) -> asyncio.Lock:
        """Lock serialising mutation of ``actor_id``'s session."""
        lock = self._locks.get(actor_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[actor_id] = lock
        return lock

    def create(self, actor_id: UserID, guild_id: GuildID, amending: bool = False) -> SetupSession:
        """Start a fresh session, replacing any previous one for the actor."""
        now = self._clock()
        session = SetupSession(
            actor_id=actor_id, guild_id=guild_id, amending=amending, created_at=now, updated_at=now
        )
        if actor_id in self._sessions:
            logger.debug("[SETUP SESSIONS] Replacing existing session for user %s", actor_id)
        self._sessions[actor_id] = session
        return session

    def get(self, actor_id: UserID) -> Optional[SetupSession]:
        session = self._sessions.get(actor_id)
        if session is not None and self._is_expired(session, self._clock()):
            logger.debug("[SETUP SESSIONS] Session for user %s expired", actor_id)
            self.delete(actor_id)
            return None
        return session

    def put(self, session: SetupSession) -> None:
        self._sessions[session.actor_id] = session

    def delete(self, actor_id: UserID) -> None:
        self._sessions.pop(actor_id, None)
        lock = self._locks.get(actor_id)
        if lock is not None and not lock.locked():
            del self._locks[actor_id]

    def sweep(self) -> int:
        """
        Remove expired sessions and the idle locks of actors without a session.

        Locks left behind by a delete that ran while the lock was held are
        collected here.

        Returns:
            Number of sessions dropped.
        """
        now = self._clock()
        expired = [actor for actor, session in self._sessions.items() if self._is_expired(session, now)]
        for actor_id in expired:
            self.delete(actor_id)

        orphaned = [
            actor_id for actor_id, lock in self._locks.items()
            if actor_id not in self._sessions and not lock.locked()
        ]
        for actor_id in orphaned:
            del self._locks[actor_id]

        if expired:
            logger.info("[SETUP SESSIONS] Swept %d abandoned setup sessions", len(expired))
        return len(expired)

    def lock_count(self) -> int:
        return len(self._locks)

    def _is_expired(self, session: SetupSession, now: datetime) -> bool:
        if self.ttl <= 0:
            return False
        return now - session.updated_at > timedelta(seconds=self.ttl)
