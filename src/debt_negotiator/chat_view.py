from __future__ import annotations

from dataclasses import dataclass

from debt_negotiator.turn_engine import COMPLETE, ERROR, FRAGMENT, TurnEvent

USER = "User"
ASSISTANT = "Negotiator"


@dataclass(frozen=True)
class ChatLine:
    sender: str
    content: str


class ChatView:
    """Client-side state of one conversation.

    Tracks the transcript, the partial answer of the open turn, the surfaced
    payment link and whether the input box accepts submissions. Input is
    closed while a turn is open and, with disable_input_on_link, for good
    once a payment link has been shown.
    """

    def __init__(self, *, disable_input_on_link: bool = True):
        self._disable_input_on_link = disable_input_on_link
        self.lines: list[ChatLine] = []
        self.answer = ""
        self.payment_link: str | None = None
        self.error: str | None = None
        self._turn_open = False

    @property
    def turn_open(self) -> bool:
        return self._turn_open

    @property
    def typing(self) -> bool:
        return self._turn_open and bool(self.answer)

    @property
    def input_enabled(self) -> bool:
        if self._turn_open:
            return False
        return not (self._disable_input_on_link and self.payment_link)

    def submit(self, text: str) -> bool:
        """Record a user message. Returns False when the input is closed or text is blank."""
        if not text.strip() or not self.input_enabled:
            return False
        self.lines.append(ChatLine(USER, text))
        self.error = None
        self._turn_open = True
        return True

    def begin_turn(self) -> None:
        """Open a turn the client did not submit itself, like the greeting."""
        self._turn_open = True

    def apply(self, event: TurnEvent) -> None:
        if event.type == FRAGMENT:
            self._turn_open = True
            self.answer += event.text
        elif event.type == COMPLETE:
            self._finish(event.text)
            if event.payment_link:
                self.show_payment_link(event.payment_link)
        elif event.type == ERROR:
            if event.partial_text:
                self._finish(event.partial_text)
            else:
                self.answer = ""
                self._turn_open = False
            self.error = event.text

    def show_payment_link(self, url: str) -> None:
        if self.payment_link is None:
            self.payment_link = url

    def reject_turn(self) -> None:
        """Server refused the turn; the user line stays, the turn closes."""
        self._turn_open = False

    def _finish(self, text: str) -> None:
        self.lines.append(ChatLine(ASSISTANT, text))
        self.answer = ""
        self._turn_open = False
