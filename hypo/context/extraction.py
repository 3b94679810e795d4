"""
Topic and entity extraction.

Both are table/regex driven so they are cheap enough to run on every
request:

- extract_topics: which entries of ``TOPIC_TERMS`` a set of messages touches
- extract_entities: dates, times, people, projects, tasks and organizations
  mentioned in one message, as raw matched substrings
"""
import re
from collections import Counter
from typing import Dict, List, Pattern, Sequence

from hypo.memory.conversation import Message

# topic -> terms (English and Vietnamese); order defines tie-breaking
TOPIC_TERMS: Dict[str, List[str]] = {
    "project": ["project", "projects", "dự án"],
    "task": ["task", "tasks", "todo", "công việc", "nhiệm vụ"],
    "deadline": ["deadline", "due date", "hạn chót", "thời hạn"],
    "meeting": ["meeting", "standup", "cuộc họp", "họp"],
    "team": ["team", "member", "members", "teammate", "nhóm", "thành viên"],
    "kanban": ["kanban", "board", "backlog", "sprint", "bảng"],
    "document": ["document", "documents", "docs", "file", "tài liệu"],
    "programming": ["code", "bug", "python", "javascript", "react", "api", "lập trình"],
    "planning": ["plan", "roadmap", "milestone", "kế hoạch", "lộ trình"],
    "report": ["report", "summary", "báo cáo", "tổng kết"],
}


def _term_pattern(terms: Sequence[str]) -> Pattern:
    alternatives = "|".join(re.escape(term) for term in terms)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)", re.IGNORECASE)


_TOPIC_PATTERNS: Dict[str, Pattern] = {
    topic: _term_pattern(terms) for topic, terms in TOPIC_TERMS.items()
}


def topics_in_text(text: str) -> List[str]:
    """Topics matched by one text, in table order."""
    return [topic for topic, pattern in _TOPIC_PATTERNS.items() if pattern.search(text)]


def extract_topics(messages: Sequence[Message]) -> List[str]:
    """
    Topics with at least one term match across ``messages``.

    Order is first-match order: messages are scanned oldest first, and within
    one message topics follow the table order.
    """
    found: List[str] = []
    for message in messages:
        for topic in topics_in_text(message.text):
            if topic not in found:
                found.append(topic)
    return found


def top_topics(messages: Sequence[Message], limit: int = 5) -> List[Dict[str, int]]:
    """How many user messages mention each topic, most frequent first."""
    counts: Counter = Counter()
    for message in messages:
        if message.sender == "user":
            counts.update(topics_in_text(message.text))
    # Counter.most_common keeps insertion order among equal counts
    return [{"topic": topic, "count": count} for topic, count in counts.most_common(limit)]


_WEEKDAYS = (
    "monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    "thứ hai|thứ ba|thứ tư|thứ năm|thứ sáu|thứ bảy|chủ nhật"
)

ENTITY_PATTERNS: Dict[str, List[Pattern]] = {
    "dates": [
        re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
        re.compile(r"(?<![\w/.-])\d{1,2}[/.-]\d{1,2}(?:[/.-]\d{2,4})?(?![\w/-])"),
        re.compile(
            rf"(?<!\w)(?:today|tomorrow|yesterday|next week|hôm nay|ngày mai|hôm qua|tuần sau|{_WEEKDAYS})(?!\w)",
            re.IGNORECASE,
        ),
    ],
    "times": [
        re.compile(r"\b\d{1,2}:\d{2}(?:\s?[ap]m)?\b", re.IGNORECASE),
        re.compile(r"\b\d{1,2}\s?(?:am|pm|giờ|h)(?!\w)", re.IGNORECASE),
    ],
    "people": [
        re.compile(r"@\w+"),
        re.compile(r"\b(?:Mr|Mrs|Ms|Dr)\.?\s+[A-Z]\w+"),
        re.compile(r"(?<!\w)(?:anh|chị|em|bạn)\s+[A-ZĐ][\w]+"),
    ],
    "projects": [
        re.compile(r"(?<!\w)(?:project|dự án)\s+[\"']?[\w-]+[\"']?", re.IGNORECASE),
    ],
    "tasks": [
        re.compile(r"(?<!\w)(?:task|ticket|công việc|nhiệm vụ)\s+#?[\w-]+", re.IGNORECASE),
        re.compile(r"(?<![\w&])#\d+\b"),
    ],
    "organizations": [
        re.compile(r"\b[A-Z][\w&]*(?:\s[A-Z][\w&]*)*\s(?:Inc|Corp|Ltd|LLC|JSC|Company|Co)\b\.?"),
        re.compile(r"(?<!\w)(?:công ty|tập đoàn)\s+[A-ZĐ][\w]*(?:\s[A-ZĐ][\w]*)*"),
    ],
}


def extract_entities(text: str) -> Dict[str, List[str]]:
    """
    Entities mentioned in one message.

    Always returns all six keys; a category without matches is an empty
    list. Values are the raw matched substrings, de-duplicated, in order of
    first appearance.

    Example:
        >>> extract_entities("Meet @linh at 9:30 tomorrow about task #12")["times"]
        ['9:30']
    """
    entities: Dict[str, List[str]] = {}
    for category, patterns in ENTITY_PATTERNS.items():
        matches: List[tuple] = []
        for pattern in patterns:
            matches.extend((m.start(), m.group(0).strip()) for m in pattern.finditer(text))
        values: List[str] = []
        for _, value in sorted(matches, key=lambda item: item[0]):
            if value not in values:
                values.append(value)
        entities[category] = values
    return entities
