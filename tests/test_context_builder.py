from __future__ import annotations

import pytest

from hypo.context import ContextBuilder, Language, detect_language, extract_entities, extract_topics
from hypo.context.builder import prior_message_count, select_variant
from hypo.context.extraction import top_topics
from hypo.llm import prompts
from hypo.memory import ConversationStore, Message


def fill(store, conversation_id, *texts):
    """Alternate user/assistant messages, starting with the user."""
    for i, text in enumerate(texts):
        if i % 2 == 0:
            store.add_user_message(conversation_id, text)
        else:
            store.add_assistant_message(conversation_id, text)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Hello", Language.ENGLISH),
        ("Xin chào, bạn có thể giúp tôi không?", Language.VIETNAMESE),
        ("please review deployment checklist á", Language.MIXED),
        ("ok", Language.MIXED),
    ],
)
def test_detect_language(text, expected):
    assert detect_language([text]) == expected


def test_detect_language_without_text_is_mixed():
    assert detect_language([]) == Language.MIXED


def test_first_message_gets_first_time_prompt():
    store = ConversationStore()
    store.add_user_message("c", "Hello")

    prompt = ContextBuilder(store).build_system_prompt("c")

    assert prompt == prompts.FIRST_TIME_PROMPT


def test_english_conversation_gets_english_prompt_and_topics():
    store = ConversationStore()
    fill(store, "c", "Hello", "Hi! How can I help?", "Can you check the project deadline?")

    prompt = ContextBuilder(store).build_system_prompt("c")

    assert prompt.startswith(prompts.ENGLISH_PROMPT)
    assert "Topics discussed so far: project, deadline." in prompt


def test_vietnamese_conversation_gets_vietnamese_prompt():
    store = ConversationStore()
    fill(store, "c", "Xin chào, bạn có thể giúp tôi không?", "Chào bạn!", "Xin chào, bạn có thể giúp tôi không?")

    assert ContextBuilder(store).build_system_prompt("c").startswith(prompts.VIETNAMESE_PROMPT)


def test_mixed_language_uses_count_based_variant():
    short = ConversationStore()
    fill(short, "c", "ok", "Sure", "ok")
    assert ContextBuilder(short).build_system_prompt("c") == prompts.DEFAULT_PROMPT

    longer = ConversationStore()
    fill(longer, "c", "ok", "Sure", "ok", "Great", "ok")
    assert ContextBuilder(longer).build_system_prompt("c") == prompts.CONTINUING_PROMPT


def test_message_count_note_after_five_prior_messages():
    store = ConversationStore()
    fill(store, "c", "ok", "Sure", "ok", "Great", "ok", "Fine", "ok")

    prompt = ContextBuilder(store).build_system_prompt("c")

    assert prompt.startswith(prompts.CONTINUING_PROMPT)
    assert prompts.MESSAGE_COUNT_NOTE.format(count=6) in prompt


def test_prompt_is_deterministic():
    store = ConversationStore()
    fill(store, "c", "Hello", "Hi!", "What about the kanban board?")
    builder = ContextBuilder(store)

    assert builder.build_system_prompt("c") == builder.build_system_prompt("c")


def test_build_messages_puts_system_prompt_first():
    store = ConversationStore()
    fill(store, "c", "Hello", "Hi!", "Any meeting today?")

    messages = ContextBuilder(store).build_messages("c")

    assert messages[0]["role"] == "system"
    assert messages[1:] == store.to_prompt_context("c")


def test_prior_message_count_and_variant_table():
    assert prior_message_count([]) == 0
    assert prior_message_count([Message("user", "hi")]) == 0
    assert prior_message_count([Message("user", "hi"), Message("assistant", "hello")]) == 2

    assert select_variant(0, Language.VIETNAMESE) == "first_time"
    assert select_variant(1, Language.VIETNAMESE) == "vietnamese"
    assert select_variant(1, Language.ENGLISH) == "english"
    assert select_variant(2, Language.MIXED) == "default"
    assert select_variant(3, Language.MIXED) == "continuing"


def test_extract_topics_in_first_match_order():
    messages = [
        Message("user", "We have a meeting about the kanban board"),
        Message("assistant", "Sure, I can summarise the sprint backlog"),
        Message("user", "Also prepare the dự án report"),
    ]
    assert extract_topics(messages) == ["meeting", "kanban", "project", "report"]


def test_extract_topics_uses_word_boundaries():
    assert extract_topics([Message("user", "The teammates projected a taskforce")]) == []


def test_top_topics_counts_user_messages():
    messages = [
        Message("user", "Which task is next?"),
        Message("assistant", "The task about the report"),
        Message("user", "Move that task to the board"),
    ]
    assert top_topics(messages) == [
        {"topic": "task", "count": 2},
        {"topic": "kanban", "count": 1},
    ]


def test_extract_entities_shape_and_values():
    entities = extract_entities("Meet @linh at 9:30 tomorrow about task #12")

    assert set(entities) == {"dates", "times", "people", "projects", "tasks", "organizations"}
    assert entities["times"] == ["9:30"]
    assert entities["people"] == ["@linh"]
    assert entities["dates"] == ["tomorrow"]
    assert entities["tasks"] == ["task #12", "#12"]
    assert entities["projects"] == []
    assert entities["organizations"] == []


def test_extract_entities_empty_text():
    assert extract_entities("") == {
        "dates": [],
        "times": [],
        "people": [],
        "projects": [],
        "tasks": [],
        "organizations": [],
    }


def test_context_summary():
    store = ConversationStore()
    fill(store, "c", "Schedule a meeting with @minh on 2024-07-01")

    summary = ContextBuilder(store).build_context_summary("c")

    assert summary["topics"] == ["meeting"]
    assert summary["entities"]["people"] == ["@minh"]
    assert summary["entities"]["dates"] == ["2024-07-01"]
    assert summary["message_count"] == 1
