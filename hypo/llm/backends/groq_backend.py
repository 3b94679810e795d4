"""
Groq backend (hosted, OpenAI-compatible).
"""
from typing import Any

import groq
from groq import AsyncGroq

from hypo.llm.backends.openai_compat import OpenAICompatibleBackend, SdkErrors

GROQ_ERRORS = SdkErrors(
    rate_limit=groq.RateLimitError,
    timeout=groq.APITimeoutError,
    connection=groq.APIConnectionError,
    status=groq.APIStatusError,
    base=groq.APIError,
)


class GroqBackend(OpenAICompatibleBackend):
    """Chat completions through the Groq API."""

    name = "groq"
    sdk_errors = GROQ_ERRORS

    def _build_client(self) -> Any:
        self.logger.info(f"Creating Groq client for model {self.model}")
        return AsyncGroq(api_key=self.api_key, timeout=self.timeout, max_retries=0)
