"""
Negotiator error types.

UpstreamUnavailable and StreamInterrupted come from the completion relay,
SeedOmitted and TurnInProgress from the session layer. A missing payment
link is not an error.
"""

from __future__ import annotations

from typing import Any


class NegotiatorError(Exception):
    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = details


class UpstreamUnavailableError(NegotiatorError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__("upstream_unavailable", message, details)


class StreamInterruptedError(NegotiatorError):
    def __init__(self, message: str, partial_text: str = ""):
        super().__init__("stream_interrupted", message, {"partial_length": len(partial_text)})
        self.partial_text = partial_text


class SeedOmittedError(NegotiatorError):
    def __init__(self, message: str = "conversation has not been seeded"):
        super().__init__("seed_omitted", message)


class TurnInProgressError(NegotiatorError):
    def __init__(self, session_id: str):
        super().__init__(
            "turn_in_progress",
            f"session {session_id} already has a turn in flight",
            {"session_id": session_id},
        )


class SessionNotFoundError(NegotiatorError):
    def __init__(self, session_id: str):
        super().__init__("session_not_found", f"unknown session: {session_id}", {"session_id": session_id})


class ConfigError(NegotiatorError):
    def __init__(self, message: str):
        super().__init__("config_error", message)
