"""
Conversation Store - in-memory conversation lifecycle.

- Lazy creation on first reference
- Serialized appends (one lock per conversation)
- Idle sweep removing conversations untouched for ``idle_hours``

The map lock is held only for lookups, inserts and the sweep pass; appends
take the per-conversation lock so two requests on different conversations
never wait on each other.
"""
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from hypo.core.exceptions import InvalidArgument
from hypo.core.logging_config import get_logger
from hypo.memory.conversation import (
    DEFAULT_MAX_TURNS,
    Conversation,
    Message,
    utcnow,
)

logger = get_logger(__name__)


class ConversationStore:
    """
    Thread-safe map of conversation id -> Conversation.

    Example:
        >>> store = ConversationStore(max_turns=20)
        >>> store.add_user_message("conv_1", "Hello!")
        >>> store.to_prompt_context("conv_1")
        [{'role': 'user', 'content': 'Hello!'}]
    """

    def __init__(
        self,
        max_turns: int = DEFAULT_MAX_TURNS,
        idle_hours: float = 24,
        now: Callable[[], datetime] = utcnow,
    ):
        self.max_turns = max_turns
        self.idle_timeout = timedelta(hours=idle_hours)
        self._now = now

        self._conversations: Dict[str, Conversation] = {}
        self._lock = threading.RLock()

        logger.info(
            f"ConversationStore initialized: max_turns={max_turns}, "
            f"idle_timeout={idle_hours}h"
        )

    def get_or_create(self, conversation_id: str) -> Conversation:
        """
        Get an existing conversation or create a new one.

        Refreshes ``last_activity`` either way.

        Raises:
            InvalidArgument: if ``conversation_id`` is empty
        """
        if not conversation_id or not conversation_id.strip():
            raise InvalidArgument("conversation id cannot be empty")

        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                conversation = Conversation(
                    conversation_id=conversation_id,
                    max_turns=self.max_turns,
                    created_at=self._now(),
                )
                self._conversations[conversation_id] = conversation
                logger.info(f"Created conversation: {conversation_id}")
            else:
                conversation.last_activity = self._now()
            return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        """Return the conversation or None; never creates."""
        with self._lock:
            return self._conversations.get(conversation_id)

    def exists(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._conversations

    def append(self, conversation_id: str, message: Message) -> Conversation:
        """
        Append a message, assigning id/timestamp when missing.

        Returns:
            The updated Conversation
        """
        conversation = self.get_or_create(conversation_id)

        if message.id is None or message.timestamp is None:
            message = replace(
                message,
                id=message.id or uuid.uuid4().hex,
                timestamp=message.timestamp or self._now(),
            )

        with conversation.lock:
            conversation._append(message)

        logger.debug(
            f"Appended {message.sender} message to {conversation_id} "
            f"(count={conversation.message_count})"
        )
        return conversation

    def append_existing(self, conversation_id: str, message: Message) -> bool:
        """
        Append only if the conversation is still live.

        The map lock is held across the append so a concurrent delete or
        sweep cannot slip in between the lookup and the write.

        Returns:
            False when the conversation no longer exists (nothing written)
        """
        message = replace(
            message,
            id=message.id or uuid.uuid4().hex,
            timestamp=message.timestamp or self._now(),
        )
        with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.info(f"Dropped {message.sender} message for removed conversation {conversation_id}")
                return False
            with conversation.lock:
                conversation._append(message)
        return True

    def add_user_message(self, conversation_id: str, text: str) -> Conversation:
        return self.append(conversation_id, Message(sender="user", text=text))

    def add_assistant_message(self, conversation_id: str, text: str) -> Conversation:
        return self.append(conversation_id, Message(sender="assistant", text=text))

    def messages(self, conversation_id: str) -> List[Message]:
        """Snapshot of the conversation's messages (empty when unknown)."""
        conversation = self.get(conversation_id)
        if conversation is None:
            return []
        with conversation.lock:
            return list(conversation.messages)

    def to_prompt_context(self, conversation_id: str) -> List[Dict[str, str]]:
        """
        Ordered ``{role, content}`` list of the messages that carry text.
        """
        return [m.to_prompt() for m in self.messages(conversation_id) if m.text]

    def summarize(self, conversation_id: str) -> Optional[Dict]:
        """Counts, timestamps and elapsed duration; None when unknown."""
        conversation = self.get(conversation_id)
        if conversation is None:
            return None
        with conversation.lock:
            return conversation.get_summary(now=self._now())

    def history(self, conversation_id: str, limit: int = 20) -> Optional[Dict]:
        """
        Most recent ``limit`` messages, oldest first, plus paging info.
        """
        conversation = self.get(conversation_id)
        if conversation is None:
            return None

        messages = self.messages(conversation_id)
        window = messages[-limit:] if limit > 0 else []
        return {
            "messages": [m.to_dict() for m in window],
            "total_messages": len(messages),
            "has_more": len(messages) > len(window),
        }

    def delete(self, conversation_id: str) -> bool:
        """
        Remove a conversation.

        Returns:
            True if it existed
        """
        with self._lock:
            removed = self._conversations.pop(conversation_id, None)
        if removed is not None:
            logger.info(f"Deleted conversation: {conversation_id}")
        return removed is not None

    def sweep_idle(self) -> int:
        """
        Remove conversations idle longer than the idle timeout.

        Returns:
            Number of conversations removed
        """
        cutoff = self._now() - self.idle_timeout
        with self._lock:
            expired = [
                cid for cid, conv in self._conversations.items()
                if conv.last_activity < cutoff
            ]
            for conversation_id in expired:
                del self._conversations[conversation_id]

        if expired:
            logger.info(f"Swept {len(expired)} idle conversations")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._conversations.clear()

    def get_stats(self) -> Dict:
        with self._lock:
            conversations = list(self._conversations.values())
        return {
            "active_conversations": len(conversations),
            "total_messages": sum(c.message_count for c in conversations),
            "max_turns": self.max_turns,
            "idle_timeout_hours": self.idle_timeout.total_seconds() / 3600,
        }
