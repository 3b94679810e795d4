from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from hypo.core.exceptions import InvalidArgument
from hypo.memory import ConversationStore, Message


class MutableNow:
    def __init__(self):
        self.value = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.value


def test_get_or_create_rejects_empty_id():
    store = ConversationStore()
    with pytest.raises(InvalidArgument):
        store.get_or_create("")
    with pytest.raises(InvalidArgument):
        store.get_or_create("   ")


def test_conversation_created_lazily_on_first_append():
    store = ConversationStore()
    assert not store.exists("conv_a")
    assert store.messages("conv_a") == []

    store.add_user_message("conv_a", "Hello")

    assert store.exists("conv_a")
    messages = store.messages("conv_a")
    assert len(messages) == 1
    assert messages[0].sender == "user"
    assert messages[0].id is not None
    assert messages[0].timestamp is not None


def test_append_trims_oldest_messages():
    store = ConversationStore(max_turns=2)
    for i in range(6):
        store.add_user_message("conv_a", f"u{i}")

    texts = [m.text for m in store.messages("conv_a")]
    assert texts == ["u2", "u3", "u4", "u5"]


def test_prompt_context_maps_roles_and_skips_empty_text():
    store = ConversationStore()
    store.add_user_message("conv_a", "What is due today?")
    store.append("conv_a", Message(sender="assistant", text=""))
    store.add_assistant_message("conv_a", "Two tasks are due today.")

    assert store.to_prompt_context("conv_a") == [
        {"role": "user", "content": "What is due today?"},
        {"role": "assistant", "content": "Two tasks are due today."},
    ]


def test_summarize_counts_and_duration():
    now = MutableNow()
    store = ConversationStore(now=now)
    store.add_user_message("conv_a", "Hi")
    now.value += timedelta(seconds=30)
    store.add_assistant_message("conv_a", "Hello! How can I help?")

    summary = store.summarize("conv_a")
    assert summary["message_count"] == 2
    assert summary["user_messages"] == 1
    assert summary["assistant_messages"] == 1
    assert summary["duration_seconds"] == 30
    assert store.summarize("missing") is None


def test_history_pages_from_newest():
    store = ConversationStore()
    for i in range(5):
        store.add_user_message("conv_a", f"m{i}")

    page = store.history("conv_a", limit=2)
    assert [m["text"] for m in page["messages"]] == ["m3", "m4"]
    assert page["total_messages"] == 5
    assert page["has_more"] is True
    assert store.history("missing") is None


def test_delete_reports_whether_conversation_existed():
    store = ConversationStore()
    store.add_user_message("conv_a", "Hi")

    assert store.delete("conv_a") is True
    assert store.delete("conv_a") is False
    assert store.messages("conv_a") == []


def test_sweep_removes_only_idle_conversations():
    now = MutableNow()
    store = ConversationStore(idle_hours=24, now=now)
    store.add_user_message("old", "Hi")
    now.value += timedelta(hours=23)
    store.add_user_message("recent", "Hi")
    now.value += timedelta(hours=2)

    assert store.sweep_idle() == 1
    assert not store.exists("old")
    assert store.exists("recent")


def test_get_stats():
    store = ConversationStore(max_turns=5)
    store.add_user_message("a", "one")
    store.add_user_message("b", "two")
    store.add_assistant_message("b", "three")

    stats = store.get_stats()
    assert stats["active_conversations"] == 2
    assert stats["total_messages"] == 3
    assert stats["max_turns"] == 5


def test_append_existing_never_recreates_a_deleted_conversation():
    store = ConversationStore()
    store.add_user_message("conv_a", "Hello")

    assert store.append_existing("conv_a", Message(sender="assistant", text="Hi there")) is True
    assert [m.sender for m in store.messages("conv_a")] == ["user", "assistant"]
    assert store.messages("conv_a")[1].id is not None

    store.delete("conv_a")
    assert store.append_existing("conv_a", Message(sender="assistant", text="Late reply")) is False
    assert not store.exists("conv_a")


def test_concurrent_appends_to_one_conversation_stay_ordered():
    store = ConversationStore(max_turns=20)
    threads, per_thread = 8, 50
    barrier = threading.Barrier(threads)

    def writer(worker):
        barrier.wait()
        for i in range(per_thread):
            store.add_user_message("conv_shared", f"{worker}:{i}")

    pool = [threading.Thread(target=writer, args=(w,)) for w in range(threads)]
    for t in pool:
        t.start()
    for t in pool:
        t.join()

    messages = store.messages("conv_shared")
    assert len(messages) == min(threads * per_thread, 2 * store.max_turns)

    seen = {}
    for message in messages:
        worker, i = (int(part) for part in message.text.split(":"))
        assert i > seen.get(worker, -1)
        seen[worker] = i
