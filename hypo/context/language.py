"""
Language detection for prompt selection.

A scoring heuristic, not a classifier. Over the last three user messages:

- Vietnamese score: 3 points per Vietnamese diacritic character, plus
  2 x len(keyword) for every Vietnamese keyword
- English score: 1 point per other word longer than three characters

Both scores are divided by the total character count; one language wins
when its ratio is more than 1.5x the other's, otherwise the result is
"mixed". Keyword tables are tuning data; tests pin literal inputs.
"""
import re
from enum import Enum
from typing import Iterable, Sequence

from hypo.memory.conversation import Message


class Language(str, Enum):
    VIETNAMESE = "vi"
    ENGLISH = "en"
    MIXED = "mixed"


LANGUAGE_WINDOW = 3
DOMINANCE_FACTOR = 1.5
DIACRITIC_WEIGHT = 3
KEYWORD_WEIGHT = 2
MIN_CANDIDATE_WORD_LENGTH = 4

VIETNAMESE_DIACRITICS = frozenset(
    "àáảãạăằắẳẵặâầấẩẫậ"
    "èéẻẽẹêềếểễệ"
    "ìíỉĩị"
    "òóỏõọôồốổỗộơờớởỡợ"
    "ùúủũụưừứửữự"
    "ỳýỷỹỵ"
    "đ"
)

VIETNAMESE_KEYWORDS = frozenset({
    "không", "được", "của", "và", "là", "có", "bạn", "tôi", "mình",
    "này", "những", "cho", "với", "làm", "gì", "như", "thế", "nào",
    "xin", "chào", "cảm", "ơn", "giúp", "việc", "dự", "án", "nhóm",
    "hôm", "nay", "ngày", "mai", "họp", "cần", "muốn", "sao", "ạ",
})

_WORD = re.compile(r"\w+", re.UNICODE)


def score_text(text: str):
    """Return ``(vietnamese_score, english_score)`` for one text."""
    lowered = text.lower()
    vi_score = DIACRITIC_WEIGHT * sum(1 for ch in lowered if ch in VIETNAMESE_DIACRITICS)
    en_score = 0

    for word in _WORD.findall(lowered):
        if word in VIETNAMESE_KEYWORDS:
            vi_score += KEYWORD_WEIGHT * len(word)
        elif len(word) >= MIN_CANDIDATE_WORD_LENGTH:
            en_score += 1

    return vi_score, en_score


def detect_language(texts: Iterable[str]) -> Language:
    """Dominant language of ``texts`` (all of them are scored)."""
    vi_score = en_score = total_chars = 0
    for text in texts:
        vi, en = score_text(text)
        vi_score += vi
        en_score += en
        total_chars += len(text)

    if total_chars == 0:
        return Language.MIXED

    vi_ratio = vi_score / total_chars
    en_ratio = en_score / total_chars

    if vi_ratio > DOMINANCE_FACTOR * en_ratio:
        return Language.VIETNAMESE
    if en_ratio > DOMINANCE_FACTOR * vi_ratio:
        return Language.ENGLISH
    return Language.MIXED


def detect_primary_language(messages: Sequence[Message]) -> Language:
    """Dominant language of the last three user messages."""
    user_texts = [m.text for m in messages if m.sender == "user"]
    return detect_language(user_texts[-LANGUAGE_WINDOW:])
