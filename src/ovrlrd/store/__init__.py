"""SQLite persistence for conversations and messages."""

from ovrlrd.store.database import MessageStore, StoreError
from ovrlrd.store.models import Conversation, Message, Role

__all__ = [
    "Conversation",
    "Message",
    "MessageStore",
    "Role",
    "StoreError",
]
