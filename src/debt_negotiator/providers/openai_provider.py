from collections.abc import AsyncIterator

import httpx
import openai
from loguru import logger

from debt_negotiator.errors import StreamInterruptedError, UpstreamUnavailableError

_UPSTREAM_ERRORS = (openai.APIError, httpx.HTTPError)


class OpenAIProvider:
    def __init__(self, api_key: str, *, timeout: float = 60.0):
        # Retries are left to the user: a failed turn surfaces the fallback message.
        self._client = openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def stream_text(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
    ) -> AsyncIterator[str]:
        """Yield content deltas from a streamed chat completion until finish_reason is set."""
        logger.debug(f"API request: model={model}, max_tokens={max_tokens}, messages={len(messages)}")

        try:
            stream = await self._client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=messages,
                stream=True,
            )
        except _UPSTREAM_ERRORS as ex:
            raise UpstreamUnavailableError(f"OpenAI request failed: {ex}") from ex

        finish_reason: str | None = None
        try:
            async for chunk in stream:
                choice = chunk.choices[0] if chunk.choices else None
                if choice is None:
                    continue

                delta = choice.delta
                if delta is not None and delta.content:
                    yield delta.content

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                    break
        except _UPSTREAM_ERRORS as ex:
            raise StreamInterruptedError(f"OpenAI stream interrupted: {ex}") from ex
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                await close()

        logger.debug(f"API response: finish_reason={finish_reason}")
