from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from debt_negotiator.app_config import AppConfig, RuntimeEnv
from debt_negotiator.logging_config import setup_logging
from debt_negotiator.negotiator import Negotiator
from debt_negotiator.negotiator_config import NegotiatorConfig
from debt_negotiator.provider import LLMProvider
from debt_negotiator.transport.server import build_asgi_app


@dataclass
class AppRuntime:
    negotiator: Negotiator
    asgi_app: Any
    log_descriptions: list[str]


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv, *, provider: LLMProvider | None = None) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    negotiator = Negotiator(
        NegotiatorConfig(
            provider=app.provider_name,
            model=app.model,
            max_tokens=app.max_tokens,
            temperature=app.temperature,
            api_key=env.provider_api_key,
            default_debt_amount=app.default_debt_amount,
            partial_reply_policy=app.partial_reply_policy,
            concurrent_turn_policy=app.concurrent_turn_policy,
            turn_timeout_seconds=app.turn_timeout_seconds,
            max_conversation_messages=app.max_conversation_messages,
            session_idle_timeout_seconds=app.session_idle_timeout_seconds,
            fallback_message=app.fallback_message,
        ),
        provider=provider,
    )

    asgi_app = build_asgi_app(
        negotiator,
        transport=app.transport,
        cors_allowed_origins=app.cors_allowed_origins,
    )

    return AppRuntime(
        negotiator=negotiator,
        asgi_app=asgi_app,
        log_descriptions=log_descriptions,
    )
