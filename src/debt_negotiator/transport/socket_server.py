"""
Persistent-channel transport over Socket.IO.

Client events: `start(debt_amount)` once, then `send-message(text)` per turn.
Server events per turn: `message(fragment)`..., then `stop-message(full_text)`,
then `payment-link(url)` when the reply carried one. Upstream failures emit
`turn-error(fallback_text)`; a turn sent while another is open gets
`turn-rejected(reason)`. The Socket.IO sid is the session id.

`send-message` is acknowledged once every event of the turn has been
emitted, with `{"status": ...}` set to complete, error, rejected or ignored.
Clients that need to know when a turn is over wait for the ack.
"""

from __future__ import annotations

import asyncio
from typing import Any

import socketio
from loguru import logger

from debt_negotiator.errors import SessionNotFoundError, TurnInProgressError
from debt_negotiator.negotiator import Negotiator
from debt_negotiator.turn_engine import COMPLETE, ERROR, FRAGMENT, TurnEvent

START = "start"
SEND_MESSAGE = "send-message"
MESSAGE = "message"
STOP_MESSAGE = "stop-message"
PAYMENT_LINK = "payment-link"
ERROR_EVENT = "turn-error"
TURN_REJECTED = "turn-rejected"

ACK_REJECTED = "rejected"
ACK_IGNORED = "ignored"


class SocketSessionServer:
    def __init__(self, negotiator: Negotiator, *, cors_allowed_origins: list[str] | str = "*"):
        self._negotiator = negotiator
        self._turn_tasks: dict[str, set[asyncio.Task]] = {}
        self.sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=cors_allowed_origins,
        )
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on(START, self.on_start)
        self.sio.on(SEND_MESSAGE, self.on_send_message)

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        self._negotiator.open_session(sid)
        logger.bind(session=sid).info("Socket connected")

    async def on_disconnect(self, sid: str, *_args: Any) -> None:
        for task in self._turn_tasks.pop(sid, set()):
            task.cancel()
        self._negotiator.close_session(sid)
        logger.bind(session=sid).info("Socket disconnected")

    async def on_start(self, sid: str, debt_amount: Any = None) -> None:
        try:
            self._negotiator.start(sid, str(debt_amount) if debt_amount else None)
        except SessionNotFoundError as ex:
            logger.warning(str(ex))

    async def on_send_message(self, sid: str, text: Any) -> dict[str, str]:
        if not isinstance(text, str) or not text.strip():
            return {"status": ACK_IGNORED}
        task = asyncio.current_task()
        tasks = self._turn_tasks.setdefault(sid, set())
        if task is not None:
            tasks.add(task)
        status = ACK_IGNORED
        try:
            async for event in self._negotiator.submit(sid, text):
                await self._emit_turn_event(sid, event)
                if event.type != FRAGMENT:
                    status = event.type
        except TurnInProgressError as ex:
            logger.bind(session=sid).warning(str(ex))
            await self.sio.emit(TURN_REJECTED, str(ex), to=sid)
            status = ACK_REJECTED
        except SessionNotFoundError as ex:
            logger.warning(str(ex))
        except asyncio.CancelledError:
            logger.bind(session=sid).info("Turn cancelled by disconnect")
            raise
        finally:
            if task is not None:
                tasks.discard(task)
        return {"status": status}

    async def _emit_turn_event(self, sid: str, event: TurnEvent) -> None:
        if event.type == FRAGMENT:
            await self.sio.emit(MESSAGE, event.text, to=sid)
        elif event.type == COMPLETE:
            await self.sio.emit(STOP_MESSAGE, event.text, to=sid)
            if event.payment_link:
                await self.sio.emit(PAYMENT_LINK, event.payment_link, to=sid)
        elif event.type == ERROR:
            if event.partial_text:
                await self.sio.emit(STOP_MESSAGE, event.partial_text, to=sid)
            await self.sio.emit(ERROR_EVENT, event.text, to=sid)
