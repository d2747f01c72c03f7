from debt_negotiator.conversation.models import Message
from debt_negotiator.conversation.sessions import NegotiationSession, SessionRegistry
from debt_negotiator.conversation.store import ConversationStore

__all__ = [
    "ConversationStore",
    "Message",
    "NegotiationSession",
    "SessionRegistry",
]
