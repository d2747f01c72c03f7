from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable


@runtime_checkable
class LLMProvider(Protocol):
    def stream_text(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
    ) -> AsyncIterator[str]:
        """Stream a completion for an ordered chat history as text deltas.

        Raises UpstreamUnavailableError when the call fails before the stream
        opens and StreamInterruptedError when it breaks while streaming.
        """
        ...


def create_provider(provider_name: str, api_key: str, *, timeout: float = 60.0) -> LLMProvider:
    """Factory: create an LLMProvider by name."""
    name = provider_name.strip().lower()
    if name == "openai":
        from debt_negotiator.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, timeout=timeout)
    if name == "anthropic":
        from debt_negotiator.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key, timeout=timeout)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'openai', 'anthropic'")
