from __future__ import annotations

from loguru import logger

from debt_negotiator.conversation.models import Message
from debt_negotiator.errors import SeedOmittedError
from debt_negotiator.system_prompt import build_system_prompt


class ConversationStore:
    """Append-only message history for one session.

    The first message is always the system instruction produced by seed().
    append() is the only other mutator.
    """

    def __init__(self, *, max_messages: int = 0):
        self._messages: list[Message] = []
        self._max_messages = max_messages

    @property
    def seeded(self) -> bool:
        return bool(self._messages) and self._messages[0].role == "system"

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def seed(self, debt_amount: str) -> list[Message]:
        if self._messages:
            logger.warning(f"Re-seeding conversation, dropping {len(self._messages)} message(s)")
        self._messages = [Message("system", build_system_prompt(str(debt_amount)))]
        return self.messages

    def append(self, message: Message) -> None:
        if not self.seeded:
            raise SeedOmittedError()
        if message.role == "system":
            raise ValueError("System instruction is set by seed(), not append()")
        self._messages.append(message)
        self._trim()

    def last_assistant_text(self) -> str | None:
        for message in reversed(self._messages):
            if message.role == "assistant":
                return message.content
        return None

    def to_provider_messages(self) -> list[dict]:
        return [m.to_dict() for m in self._messages]

    def _trim(self) -> None:
        if self._max_messages <= 0 or len(self._messages) <= self._max_messages:
            return
        # Keep the system instruction and drop whole turns after it, so the
        # history always resumes on a user message. The latest user message
        # is never dropped, even when that leaves the history above the cap.
        cut = 1 + len(self._messages) - self._max_messages
        while cut < len(self._messages) and self._messages[cut].role != "user":
            cut += 1
        last_user = max(
            (i for i, m in enumerate(self._messages) if m.role == "user"),
            default=0,
        )
        cut = min(cut, last_user)
        if cut <= 1:
            return
        remove_count = cut - 1
        del self._messages[1:cut]
        logger.info(
            f"Conversation history trimmed - removed {remove_count} oldest message(s) "
            f"to stay within the {self._max_messages} message limit"
        )
