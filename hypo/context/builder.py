"""
Context Builder - system prompt and prompt context for a conversation.

Prompt variant selection is a pure function of conversation state:

    prior messages == 0        -> first-time
    language is vi / en        -> language-focused (only when prior > 0)
    prior messages > 2         -> continuing
    otherwise                  -> default

"Prior messages" are the messages before the user turn being answered, so a
fresh conversation whose first message is "Hello" gets the first-time
prompt even though that message is already stored. A topic list is always
appended when topics were found, and a running count note once there are
more than five prior messages.
"""
from typing import Dict, List, Sequence

from hypo.context.extraction import extract_entities, extract_topics, top_topics
from hypo.context.language import Language, detect_primary_language
from hypo.core.logging_config import get_logger
from hypo.llm import prompts
from hypo.memory.conversation import Message
from hypo.memory.store import ConversationStore

logger = get_logger(__name__)

COUNT_NOTE_THRESHOLD = 5
CONTINUING_THRESHOLD = 2

VARIANT_PROMPTS = {
    "first_time": prompts.FIRST_TIME_PROMPT,
    "default": prompts.DEFAULT_PROMPT,
    "continuing": prompts.CONTINUING_PROMPT,
    "vietnamese": prompts.VIETNAMESE_PROMPT,
    "english": prompts.ENGLISH_PROMPT,
}


def prior_message_count(messages: Sequence[Message]) -> int:
    """Messages preceding the pending user turn (if the last one is from the user)."""
    if messages and messages[-1].sender == "user":
        return len(messages) - 1
    return len(messages)


def select_variant(prior_count: int, language: Language) -> str:
    if prior_count == 0:
        return "first_time"
    if language == Language.VIETNAMESE:
        return "vietnamese"
    if language == Language.ENGLISH:
        return "english"
    if prior_count > CONTINUING_THRESHOLD:
        return "continuing"
    return "default"


class ContextBuilder:
    """
    Builds what a backend sees for one conversation.

    Example:
        >>> builder = ContextBuilder(store)
        >>> builder.build_messages("conv_1")[0]["role"]
        'system'
    """

    def __init__(self, store: ConversationStore):
        self.store = store

    def build_system_prompt(self, conversation_id: str) -> str:
        messages = self.store.messages(conversation_id)
        prior_count = prior_message_count(messages)
        language = detect_primary_language(messages)
        variant = select_variant(prior_count, language)

        parts = [VARIANT_PROMPTS[variant]]

        topics = extract_topics(messages)
        if topics:
            parts.append(prompts.TOPICS_NOTE.format(topics=", ".join(topics)))

        if prior_count > COUNT_NOTE_THRESHOLD:
            parts.append(prompts.MESSAGE_COUNT_NOTE.format(count=prior_count))

        logger.debug(
            f"System prompt for {conversation_id}: variant={variant}, "
            f"language={language.value}, topics={topics}"
        )
        return "\n\n".join(parts)

    def build_messages(self, conversation_id: str) -> List[Dict[str, str]]:
        """System prompt followed by the stored prompt context."""
        system = {"role": "system", "content": self.build_system_prompt(conversation_id)}
        return [system] + self.store.to_prompt_context(conversation_id)

    def build_context_summary(self, conversation_id: str) -> Dict:
        """Language, topics and the entities of the latest user message."""
        messages = self.store.messages(conversation_id)
        user_messages = [m for m in messages if m.sender == "user"]
        latest = user_messages[-1].text if user_messages else ""

        return {
            "language": detect_primary_language(messages).value,
            "topics": extract_topics(messages),
            "top_topics": top_topics(messages),
            "entities": extract_entities(latest),
            "message_count": len(messages),
        }
