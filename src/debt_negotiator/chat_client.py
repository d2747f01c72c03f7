"""
Terminal chat client for the Socket.IO transport.

Usage: python -m debt_negotiator.chat_client [url] [debt_amount]
"""

import asyncio
import sys

import socketio
from loguru import logger

from debt_negotiator.chat_view import ChatView
from debt_negotiator.link_extractor import extract_payment_link
from debt_negotiator.logging_config import setup_logging
from debt_negotiator.transport.socket_server import (
    ERROR_EVENT,
    MESSAGE,
    PAYMENT_LINK,
    SEND_MESSAGE,
    START,
    STOP_MESSAGE,
    TURN_REJECTED,
)
from debt_negotiator.turn_engine import TurnEvent

_LINE_PREFIX = "negotiator> "
_USER_PROMPT = "you> "
_GREETING = "Hi"


class NegotiationClient:
    def __init__(
        self,
        url: str,
        *,
        debt_amount: str,
        view: ChatView | None = None,
        sio: socketio.AsyncClient | None = None,
    ):
        self._url = url
        self._debt_amount = debt_amount
        self.view = view or ChatView()
        self._sio = sio or socketio.AsyncClient()
        self._register_handlers()

    def _register_handlers(self) -> None:
        self._sio.on(MESSAGE, self._on_fragment)
        self._sio.on(STOP_MESSAGE, self._on_stop_message)
        self._sio.on(PAYMENT_LINK, self._on_payment_link)
        self._sio.on(ERROR_EVENT, self._on_turn_error)
        self._sio.on(TURN_REJECTED, self._on_turn_rejected)

    async def _on_fragment(self, text: str) -> None:
        if not self.view.answer:
            print(_LINE_PREFIX, end="", flush=True)
        self.view.apply(TurnEvent.fragment(text))
        print(text, end="", flush=True)

    async def _on_stop_message(self, text: str) -> None:
        self.view.apply(TurnEvent.complete(text, extract_payment_link(text)))
        print("\n")
        if self.view.payment_link:
            print(f"Payment link: {self.view.payment_link}\n")

    async def _on_payment_link(self, url: str) -> None:
        self.view.show_payment_link(url)

    async def _on_turn_error(self, text: str) -> None:
        self.view.apply(TurnEvent.error(text))
        print(f"\n[{text}]\n")

    async def _on_turn_rejected(self, reason: str) -> None:
        logger.warning(f"Turn rejected: {reason}")
        self.view.reject_turn()

    async def connect(self) -> None:
        await self._sio.connect(self._url, transports=["websocket", "polling"])
        await self._sio.emit(START, self._debt_amount)

    async def disconnect(self) -> None:
        await self._sio.disconnect()

    async def send(self, text: str, *, show_in_transcript: bool = True) -> str | None:
        """Send one message and wait for the server to acknowledge the whole turn.

        Returns the ack status, or None when the view refused the input.
        """
        if show_in_transcript:
            if not self.view.submit(text):
                return None
        else:
            self.view.begin_turn()
        ack = await self._sio.call(SEND_MESSAGE, text, timeout=None)
        status = (ack or {}).get("status")
        if self.view.turn_open:
            # Ignored and unknown-session turns emit no events before the ack.
            self.view.reject_turn()
        return status

    async def run(self) -> None:
        await self.connect()
        try:
            await self.send(_GREETING, show_in_transcript=False)
            while self.view.input_enabled:
                try:
                    user_input = await asyncio.to_thread(input, _USER_PROMPT)
                except (EOFError, KeyboardInterrupt):
                    break

                trimmed = user_input.strip()
                if trimmed in ("exit", "quit"):
                    break
                if not trimmed:
                    continue

                print()
                await self.send(trimmed)
        finally:
            await self.disconnect()


async def main(argv: list[str]) -> None:
    setup_logging(level="WARNING")
    url = argv[0] if argv else "http://127.0.0.1:8000"
    debt_amount = argv[1] if len(argv) > 1 else "2000"
    print(f"debt-negotiator chat ({url}, debt ${debt_amount}; type 'exit' to quit)\n")
    await NegotiationClient(url, debt_amount=debt_amount).run()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
