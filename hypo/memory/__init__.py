"""
Memory Package - Conversation history management.

Conversations are held in process memory only. The store is created by the
application factory and injected where needed; tests build their own.

Example:
    >>> from hypo.memory import ConversationStore
    >>> store = ConversationStore()
    >>> store.add_user_message("conv_1", "Hello!")
"""
from hypo.memory.conversation import Message, Conversation
from hypo.memory.store import ConversationStore

__all__ = [
    "Message",
    "Conversation",
    "ConversationStore",
]
