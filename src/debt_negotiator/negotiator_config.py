from dataclasses import dataclass

from debt_negotiator.app_config import DEFAULT_FALLBACK_MESSAGE


@dataclass
class NegotiatorConfig:
    provider: str = "openai"
    model: str = "gpt-4"
    max_tokens: int = 1024
    temperature: float = 0.7
    api_key: str = ""
    default_debt_amount: str = "2000"
    partial_reply_policy: str = "discard"
    concurrent_turn_policy: str = "reject"
    turn_timeout_seconds: float = 60.0
    max_conversation_messages: int = 0
    session_idle_timeout_seconds: float = 1800.0
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE
