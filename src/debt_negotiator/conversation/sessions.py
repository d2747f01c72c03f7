from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

from loguru import logger

from debt_negotiator.conversation.store import ConversationStore
from debt_negotiator.errors import SessionNotFoundError, TurnInProgressError


class NegotiationSession:
    """One conversation: its history, its debt amount and its turn lock.

    Sessions with expires=True have no connection that ends them and are
    reclaimed by the registry once idle for longer than its TTL.
    """

    def __init__(self, session_id: str, *, max_messages: int = 0, expires: bool = False):
        self.id = session_id
        self.store = ConversationStore(max_messages=max_messages)
        self.debt_amount: str | None = None
        self.payment_link: str | None = None
        self.expires = expires
        self.last_activity = time.monotonic()
        self._turn_lock = asyncio.Lock()

    @property
    def seeded(self) -> bool:
        return self.store.seeded

    @property
    def turn_in_flight(self) -> bool:
        return self._turn_lock.locked()

    def start(self, debt_amount: str) -> bool:
        """Seed the conversation. The debt amount is fixed after the first call."""
        if self.debt_amount is not None:
            logger.bind(session=self.id).warning(
                f"Ignoring start({debt_amount}); session already seeded with {self.debt_amount}"
            )
            return False
        self.debt_amount = str(debt_amount)
        self.store.seed(self.debt_amount)
        logger.bind(session=self.id).info(f"Session seeded with debt amount {self.debt_amount}")
        return True

    @asynccontextmanager
    async def turn(self, policy: str = "reject") -> AsyncIterator[None]:
        if policy == "reject" and self._turn_lock.locked():
            raise TurnInProgressError(self.id)
        async with self._turn_lock:
            self.touch()
            try:
                yield
            finally:
                self.touch()

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_for(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_activity


class SessionRegistry:
    def __init__(self, *, default_debt_amount: str = "2000", max_messages: int = 0, idle_ttl_s: float = 0):
        self._default_debt_amount = default_debt_amount
        self._max_messages = max_messages
        self._idle_ttl_s = idle_ttl_s
        self._sessions: dict[str, NegotiationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def default_debt_amount(self) -> str:
        return self._default_debt_amount

    def create(
        self,
        session_id: str | None = None,
        *,
        debt_amount: str | None = None,
        expires: bool = False,
    ) -> NegotiationSession:
        self.evict_idle()
        sid = session_id or str(uuid4())
        if sid in self._sessions:
            raise ValueError(f"Session already exists: {sid}")
        session = NegotiationSession(sid, max_messages=self._max_messages, expires=expires)
        self._sessions[sid] = session
        if debt_amount is not None:
            session.start(debt_amount)
        logger.debug(f"Session created: {sid} (open sessions: {len(self._sessions)})")
        return session

    def get(self, session_id: str) -> NegotiationSession | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> NegotiationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def ensure_seeded(self, session: NegotiationSession) -> None:
        if session.seeded:
            return
        logger.bind(session=session.id).warning(
            f"Turn submitted before start; seeding default debt amount {self._default_debt_amount}"
        )
        session.start(self._default_debt_amount)

    def evict_idle(self, now: float | None = None) -> list[str]:
        """Drop expiring sessions idle past the TTL. Sessions mid-turn are kept."""
        if self._idle_ttl_s <= 0:
            return []
        evicted = [
            sid
            for sid, session in self._sessions.items()
            if session.expires
            and not session.turn_in_flight
            and session.idle_for(now) > self._idle_ttl_s
        ]
        for sid in evicted:
            self._sessions.pop(sid)
            logger.bind(session=sid).info(f"Session expired after {self._idle_ttl_s:g}s idle")
        return evicted

    def drop(self, session_id: str) -> NegotiationSession | None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.debug(f"Session closed: {session_id} (open sessions: {len(self._sessions)})")
        return session
