"""
Backends Package - one adapter per chat service.

- base.py          : ChatBackend interface and GenerationOptions
- openai_compat.py : shared retry and error mapping for OpenAI-compatible APIs
- openrouter.py    : OpenRouter (hosted router)
- groq_backend.py  : Groq (hosted)
- sonar.py         : Perplexity Sonar (search-augmented)
- ollama.py        : Ollama (local runtime)
"""
from hypo.llm.backends.base import ChatBackend, GenerationOptions
from hypo.llm.backends.groq_backend import GroqBackend
from hypo.llm.backends.ollama import OllamaBackend
from hypo.llm.backends.openrouter import OpenRouterBackend
from hypo.llm.backends.sonar import SONAR_MODELS, SonarBackend

__all__ = [
    "ChatBackend",
    "GenerationOptions",
    "GroqBackend",
    "OllamaBackend",
    "OpenRouterBackend",
    "SONAR_MODELS",
    "SonarBackend",
]
