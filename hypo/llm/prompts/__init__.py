"""
Prompts module - LLM prompt templates.

Prompts are stored as separate Python files so prompt changes show up as
plain diffs.
"""
from hypo.llm.prompts.system_prompts import (
    CONTINUING_PROMPT,
    DEFAULT_PROMPT,
    ENGLISH_PROMPT,
    FIRST_TIME_PROMPT,
    MESSAGE_COUNT_NOTE,
    TOPICS_NOTE,
    VIETNAMESE_PROMPT,
)

__all__ = [
    "CONTINUING_PROMPT",
    "DEFAULT_PROMPT",
    "ENGLISH_PROMPT",
    "FIRST_TIME_PROMPT",
    "MESSAGE_COUNT_NOTE",
    "TOPICS_NOTE",
    "VIETNAMESE_PROMPT",
]
