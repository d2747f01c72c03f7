from collections.abc import AsyncIterator

import anthropic
import httpx
from loguru import logger

from debt_negotiator.errors import StreamInterruptedError, UpstreamUnavailableError

_UPSTREAM_ERRORS = (anthropic.APIError, httpx.HTTPError)


def _split_system(messages: list[dict]) -> tuple[str, list[dict]]:
    """Anthropic takes the system instruction as a separate parameter."""
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    chat = [{"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"]
    return "\n\n".join(system_parts), chat


class AnthropicProvider:
    def __init__(self, api_key: str, *, timeout: float = 60.0):
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def stream_text(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
    ) -> AsyncIterator[str]:
        system_prompt, chat = _split_system(messages)
        logger.debug(f"API request: model={model}, max_tokens={max_tokens}, messages={len(chat)}")

        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=chat,
        )
        if system_prompt:
            kwargs["system"] = system_prompt

        opened = False
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                opened = True
                async for event in stream:
                    if event.type == "content_block_delta" and event.delta.type == "text_delta":
                        if event.delta.text:
                            yield event.delta.text
                    elif event.type == "message_stop":
                        break
        except _UPSTREAM_ERRORS as ex:
            if not opened:
                raise UpstreamUnavailableError(f"Anthropic request failed: {ex}") from ex
            raise StreamInterruptedError(f"Anthropic stream interrupted: {ex}") from ex

        logger.debug("API response: message_stop")
