"""
Conversation Memory - Data structures for conversation history.

- Message: one immutable chat message
- Conversation: ordered messages for one conversation id, trimmed from the
  oldest end so it never holds more than ``2 * max_turns`` messages

Conversations live only in process memory; losing them on restart is
acceptable.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

Sender = Literal["user", "assistant"]

DEFAULT_MAX_TURNS = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """
    A single message in a conversation.

    ``id`` and ``timestamp`` may be left empty by callers; the store assigns
    them on append.

    Example:
        >>> Message(sender="user", text="Hello").to_prompt()
        {'role': 'user', 'content': 'Hello'}
    """
    sender: Sender
    text: str
    id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def role(self) -> str:
        return "user" if self.sender == "user" else "assistant"

    def to_prompt(self) -> Dict[str, str]:
        """Convert to the {role, content} shape backends consume."""
        return {"role": self.role, "content": self.text}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "text": self.text,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class Conversation:
    """
    Message history for a single conversation id.

    Mutated only through :class:`hypo.memory.store.ConversationStore`, which
    holds ``lock`` while appending.
    """
    conversation_id: str
    max_turns: int = DEFAULT_MAX_TURNS
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_activity: Optional[datetime] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.last_activity is None:
            self.last_activity = self.created_at

    @property
    def max_messages(self) -> int:
        return 2 * self.max_turns

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def _append(self, message: Message) -> None:
        """Append and trim from the oldest end (caller holds ``lock``)."""
        self.messages.append(message)
        self.last_activity = message.timestamp or utcnow()

        overflow = len(self.messages) - self.max_messages
        if overflow > 0:
            del self.messages[:overflow]

    def get_summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Counts and timestamps for this conversation."""
        now = now or utcnow()
        user_count = sum(1 for m in self.messages if m.sender == "user")

        return {
            "conversation_id": self.conversation_id,
            "message_count": self.message_count,
            "user_messages": user_count,
            "assistant_messages": self.message_count - user_count,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "duration_seconds": round((now - self.created_at).total_seconds(), 3),
        }
