from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

from loguru import logger

from debt_negotiator.conversation.sessions import NegotiationSession, SessionRegistry
from debt_negotiator.negotiator_config import NegotiatorConfig
from debt_negotiator.provider import LLMProvider, create_provider
from debt_negotiator.turn_engine import TurnEngine, TurnEvent


class Negotiator:
    """Entry point shared by the transports: session lifecycle plus turn submission."""

    def __init__(self, config: NegotiatorConfig, *, provider: LLMProvider | None = None):
        self._provider = provider or create_provider(
            config.provider,
            config.api_key,
            timeout=config.turn_timeout_seconds,
        )
        self._concurrent_turn_policy = config.concurrent_turn_policy
        self._sessions = SessionRegistry(
            default_debt_amount=config.default_debt_amount,
            max_messages=config.max_conversation_messages,
            idle_ttl_s=config.session_idle_timeout_seconds,
        )
        self._turn_engine = TurnEngine(
            provider=self._provider,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            partial_reply_policy=config.partial_reply_policy,
            idle_timeout_s=config.turn_timeout_seconds,
            fallback_message=config.fallback_message,
        )

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def concurrent_turn_policy(self) -> str:
        return self._concurrent_turn_policy

    def open_session(
        self,
        session_id: str | None = None,
        *,
        debt_amount: str | None = None,
        expires: bool = False,
    ) -> NegotiationSession:
        return self._sessions.create(session_id, debt_amount=debt_amount, expires=expires)

    def start(self, session_id: str, debt_amount: str | None) -> NegotiationSession:
        session = self._sessions.require(session_id)
        session.start(debt_amount if debt_amount else self._sessions.default_debt_amount)
        return session

    def close_session(self, session_id: str) -> None:
        self._sessions.drop(session_id)

    async def submit(self, session_id: str, user_message: str) -> AsyncIterator[TurnEvent]:
        """Stream one turn for a session.

        Raises TurnInProgressError under the "reject" policy when the session
        already has a turn open; under "queue" the turn waits for it instead.
        """
        session = self._sessions.require(session_id)
        self._sessions.ensure_seeded(session)
        async with session.turn(self._concurrent_turn_policy):
            async with aclosing(self._turn_engine.run(session, user_message)) as events:
                async for event in events:
                    yield event
        logger.bind(session=session_id).debug("Turn lock released")
