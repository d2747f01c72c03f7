from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from debt_negotiator.conversation.models import Message
from debt_negotiator.conversation.store import ConversationStore
from debt_negotiator.errors import StreamInterruptedError, UpstreamUnavailableError
from debt_negotiator.provider import LLMProvider


async def _close_iterator(iterator: AsyncIterator[str]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class CompletionRelay:
    """Single-use pipe from a provider stream to the caller.

    send() yields each fragment as it arrives. Once the stream is exhausted,
    text holds the whole reply and exactly one assistant message has been
    appended to the store. Nothing is appended if the stream fails before the
    first fragment or the caller stops iterating. A mid-stream failure
    follows partial_reply_policy: "discard" appends nothing, "keep" appends
    the partial text.
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        store: ConversationStore,
        model: str,
        max_tokens: int,
        temperature: float,
        partial_reply_policy: str = "discard",
        idle_timeout_s: float = 60.0,
    ):
        self._provider = provider
        self._store = store
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._partial_reply_policy = partial_reply_policy
        self._idle_timeout_s = idle_timeout_s
        self._parts: list[str] = []
        self._used = False
        self._completed = False
        self._kept_partial = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def kept_partial(self) -> bool:
        return self._kept_partial

    async def send(self, history: list[Message]) -> AsyncIterator[str]:
        if self._used:
            raise RuntimeError("CompletionRelay.send() can only be consumed once")
        self._used = True

        upstream = aiter(self._provider.stream_text(
            self._model,
            self._max_tokens,
            self._temperature,
            [m.to_dict() for m in history],
        ))
        try:
            while True:
                try:
                    fragment = await asyncio.wait_for(anext(upstream), timeout=self._idle_timeout_s)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as ex:
                    raise StreamInterruptedError(
                        f"No response from provider within {self._idle_timeout_s:g}s"
                    ) from ex
                self._parts.append(fragment)
                yield fragment
        except StreamInterruptedError as ex:
            if not self._parts:
                raise UpstreamUnavailableError(str(ex)) from ex
            ex.partial_text = self.text
            ex.details = {"partial_length": len(ex.partial_text)}
            self._apply_partial_policy()
            raise
        finally:
            await _close_iterator(upstream)

        if not self.text:
            raise UpstreamUnavailableError("Provider finished without any reply text")
        self._store.append(Message("assistant", self.text))
        self._completed = True

    def _apply_partial_policy(self) -> None:
        if self._partial_reply_policy != "keep":
            logger.warning(f"Discarding {len(self.text)} chars of interrupted reply")
            return
        self._store.append(Message("assistant", self.text))
        self._kept_partial = True
        logger.warning(f"Kept {len(self.text)} chars of interrupted reply in history")
