"""
Request/response streaming transport over HTTP.

One POST /api/chat per turn. The body is NDJSON: one `fragment` line per
delta, then exactly one terminator line of type `complete` or `error`.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from debt_negotiator.conversation.sessions import NegotiationSession
from debt_negotiator.errors import SessionNotFoundError, TurnInProgressError
from debt_negotiator.negotiator import Negotiator
from debt_negotiator.turn_engine import TurnEvent

SESSION_HEADER = "X-Session-Id"


class SessionCreateRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    debt_amount: Optional[str] = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    message: str = Field(min_length=1)
    session_id: Optional[str] = None
    debt_amount: Optional[str] = None

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


def _ndjson(event: TurnEvent) -> str:
    return json.dumps(event.to_dict(), ensure_ascii=False) + "\n"


def _session_view(session: NegotiationSession) -> dict:
    return {
        "session_id": session.id,
        "debt_amount": session.debt_amount,
        "payment_link": session.payment_link,
        "turn_in_flight": session.turn_in_flight,
        "messages": [m.to_dict() for m in session.store.messages],
    }


def create_http_app(negotiator: Negotiator, *, cors_allowed_origins: list[str] | None = None) -> FastAPI:
    app = FastAPI(title="debt-negotiator", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allowed_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "sessions": len(negotiator.sessions)}

    @app.post("/api/sessions")
    async def create_session(req: SessionCreateRequest):
        session = negotiator.open_session(
            debt_amount=req.debt_amount or negotiator.sessions.default_debt_amount,
            expires=True,
        )
        return {"session_id": session.id, "debt_amount": session.debt_amount}

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str):
        session = negotiator.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"unknown session: {session_id}")
        session.touch()
        return _session_view(session)

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str):
        if negotiator.sessions.get(session_id) is None:
            raise HTTPException(status_code=404, detail=f"unknown session: {session_id}")
        negotiator.close_session(session_id)
        return {"status": "closed", "session_id": session_id}

    @app.post("/api/chat")
    async def chat(req: ChatRequest):
        session = negotiator.sessions.get(req.session_id) if req.session_id else None
        if session is None:
            session = negotiator.open_session(
                req.session_id,
                debt_amount=req.debt_amount or negotiator.sessions.default_debt_amount,
                expires=True,
            )
        elif req.debt_amount and req.debt_amount != session.debt_amount:
            logger.bind(session=session.id).warning(
                f"Ignoring debt_amount={req.debt_amount}; session already seeded"
            )

        if negotiator.concurrent_turn_policy == "reject" and session.turn_in_flight:
            raise HTTPException(status_code=409, detail=f"session {session.id} already has a turn in flight")

        async def stream() -> AsyncIterator[str]:
            try:
                async for event in negotiator.submit(session.id, req.message):
                    yield _ndjson(event)
            except (TurnInProgressError, SessionNotFoundError) as ex:
                yield json.dumps({"type": "error", "text": str(ex)}) + "\n"

        return StreamingResponse(
            stream(),
            media_type="application/x-ndjson",
            headers={
                SESSION_HEADER: session.id,
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    return app
