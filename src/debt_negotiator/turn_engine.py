from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from loguru import logger

from debt_negotiator.conversation.models import Message
from debt_negotiator.conversation.sessions import NegotiationSession
from debt_negotiator.errors import StreamInterruptedError, UpstreamUnavailableError
from debt_negotiator.link_extractor import extract_payment_link, parse_payment_terms
from debt_negotiator.provider import LLMProvider
from debt_negotiator.relay import CompletionRelay

FRAGMENT = "fragment"
COMPLETE = "complete"
ERROR = "error"


@dataclass(frozen=True)
class TurnEvent:
    type: str
    text: str
    payment_link: str | None = None
    partial_text: str | None = None

    @classmethod
    def fragment(cls, text: str) -> "TurnEvent":
        return cls(FRAGMENT, text)

    @classmethod
    def complete(cls, text: str, payment_link: str | None) -> "TurnEvent":
        return cls(COMPLETE, text, payment_link=payment_link)

    @classmethod
    def error(cls, text: str, partial_text: str | None = None) -> "TurnEvent":
        return cls(ERROR, text, partial_text=partial_text)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "text": self.text}
        if self.type == COMPLETE:
            data["payment_link"] = self.payment_link
        if self.partial_text is not None:
            data["partial_text"] = self.partial_text
        return data


class TurnEngine:
    def __init__(
        self,
        *,
        provider: LLMProvider,
        model: str,
        max_tokens: int,
        temperature: float,
        partial_reply_policy: str,
        idle_timeout_s: float,
        fallback_message: str,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._partial_reply_policy = partial_reply_policy
        self._idle_timeout_s = idle_timeout_s
        self._fallback_message = fallback_message

    async def run(self, session: NegotiationSession, user_message: str) -> AsyncIterator[TurnEvent]:
        """Run one turn: fragment events as they arrive, then one complete or error event."""
        log = logger.bind(session=session.id)
        session.store.append(Message("user", user_message))
        log.info(f"Turn started (history={session.store.message_count} messages)")

        relay = CompletionRelay(
            provider=self._provider,
            store=session.store,
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            partial_reply_policy=self._partial_reply_policy,
            idle_timeout_s=self._idle_timeout_s,
        )

        try:
            async with aclosing(relay.send(session.store.messages)) as fragments:
                async for fragment in fragments:
                    yield TurnEvent.fragment(fragment)
        except UpstreamUnavailableError as ex:
            log.error(f"Completion provider unavailable: {ex}")
            yield TurnEvent.error(self._fallback_message)
            return
        except StreamInterruptedError as ex:
            log.error(f"Completion stream interrupted after {len(ex.partial_text)} chars: {ex}")
            yield TurnEvent.error(
                self._fallback_message,
                partial_text=ex.partial_text if relay.kept_partial else None,
            )
            return

        text = relay.text
        payment_link = extract_payment_link(text)
        if payment_link:
            session.payment_link = payment_link
            self._check_terms(session, payment_link)
            log.info(f"Payment link surfaced: {payment_link}")
        log.info(f"Turn completed (reply={len(text)} chars)")
        yield TurnEvent.complete(text, payment_link)

    def _check_terms(self, session: NegotiationSession, payment_link: str) -> None:
        terms = parse_payment_terms(payment_link)
        if terms is None or terms.total_debt_amount is None or session.debt_amount is None:
            return
        try:
            seeded = float(session.debt_amount)
        except ValueError:
            return
        if abs(terms.total_debt_amount - seeded) > 0.005:
            logger.bind(session=session.id).warning(
                f"Payment link totalDebtAmount={terms.total_debt_amount:g} "
                f"does not match seeded debt {session.debt_amount}"
            )
