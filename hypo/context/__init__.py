"""
Context Package - what the model sees.

- builder.py    : system prompt selection and prompt assembly
- language.py   : Vietnamese/English/mixed detection
- extraction.py : topic and entity extraction
"""
from hypo.context.builder import ContextBuilder
from hypo.context.extraction import extract_entities, extract_topics
from hypo.context.language import Language, detect_language, detect_primary_language

__all__ = [
    "ContextBuilder",
    "Language",
    "detect_language",
    "detect_primary_language",
    "extract_entities",
    "extract_topics",
]
