from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from debt_negotiator.errors import ConfigError

PARTIAL_REPLY_POLICIES = ("discard", "keep")
CONCURRENT_TURN_POLICIES = ("reject", "queue")
TRANSPORTS = ("socketio", "http", "both")

DEFAULT_FALLBACK_MESSAGE = (
    "Sorry, I'm having trouble reaching the negotiation service right now. "
    "Please try sending your message again."
)


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str
    host: str | None
    port: int | None
    cors_allowed_origins: list[str] | None


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    default_debt_amount: str
    partial_reply_policy: str
    concurrent_turn_policy: str
    turn_timeout_seconds: float
    max_conversation_messages: int
    session_idle_timeout_seconds: float
    fallback_message: str
    transport: str
    host: str
    port: int
    cors_allowed_origins: list[str]
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _choice(config: dict, key: str, default: str, allowed: tuple[str, ...]) -> str:
    value = str(config.get(key, default)).strip().lower()
    if value not in allowed:
        raise ConfigError(f"{key} must be one of {', '.join(allowed)}; got {value!r}")
    return value


def _origins(value: object) -> list[str]:
    if value is None:
        return ["*"]
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def parse_app_config(config: dict) -> AppConfig:
    provider_name = config.get("Provider", "openai").strip().lower()
    default_model = "gpt-4" if provider_name == "openai" else "claude-sonnet-4-5-20250929"
    return AppConfig(
        provider_name=provider_name,
        model=config.get("Model", default_model),
        max_tokens=int(config.get("MaxTokens", 1024)),
        temperature=float(config.get("Temperature", 0.7)),
        default_debt_amount=str(config.get("DefaultDebtAmount", "2000")),
        partial_reply_policy=_choice(config, "PartialReplyPolicy", "discard", PARTIAL_REPLY_POLICIES),
        concurrent_turn_policy=_choice(config, "ConcurrentTurnPolicy", "reject", CONCURRENT_TURN_POLICIES),
        turn_timeout_seconds=float(config.get("TurnTimeoutSeconds", 60)),
        max_conversation_messages=int(config.get("MaxConversationMessages", 0)),
        session_idle_timeout_seconds=float(config.get("SessionIdleTimeoutSeconds", 1800)),
        fallback_message=config.get("FallbackMessage", DEFAULT_FALLBACK_MESSAGE),
        transport=_choice(config, "Transport", "both", TRANSPORTS),
        host=config.get("Host", "127.0.0.1"),
        port=int(config.get("Port", 8000)),
        cors_allowed_origins=_origins(config.get("CorsAllowedOrigins")),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    if provider_name == "anthropic":
        provider_env_var = "ANTHROPIC_API_KEY"
    else:
        provider_env_var = "OPENAI_API_KEY"

    port = os.environ.get("NEGOTIATOR_PORT")
    origins = os.environ.get("NEGOTIATOR_CORS_ORIGINS")
    return RuntimeEnv(
        provider_api_key=os.environ.get(provider_env_var, ""),
        provider_env_var=provider_env_var,
        host=os.environ.get("NEGOTIATOR_HOST") or None,
        port=int(port) if port else None,
        cors_allowed_origins=_origins(origins) if origins else None,
    )


def apply_runtime_env(app: AppConfig, env: RuntimeEnv) -> AppConfig:
    """Environment values win over config.json for deployment settings."""
    if env.host:
        app.host = env.host
    if env.port:
        app.port = env.port
    if env.cors_allowed_origins:
        app.cors_allowed_origins = env.cors_allowed_origins
    return app
