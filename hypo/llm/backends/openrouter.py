"""
OpenRouter backend (hosted, OpenAI-compatible).

Adds two things to the shared adapter:

- a hard daily-quota signal, recognised from the error body and reported
  as ``quota_exceeded`` without retries
- the quota reset time from the ``X-RateLimit-Reset`` header
"""
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from hypo.llm.backends.openai_compat import OpenAICompatibleBackend, SdkErrors

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

QUOTA_MARKERS = (
    "free-models-per-day",
    "daily limit",
    "daily quota",
    "quota exceeded",
    "quota_exceeded",
    "insufficient credits",
)

OPENAI_ERRORS = SdkErrors(
    rate_limit=openai.RateLimitError,
    timeout=openai.APITimeoutError,
    connection=openai.APIConnectionError,
    status=openai.APIStatusError,
    base=openai.APIError,
)


class OpenRouterBackend(OpenAICompatibleBackend):
    """Chat completions through openrouter.ai."""

    name = "openrouter"
    sdk_errors = OPENAI_ERRORS

    def __init__(self, api_key: str, model: str, base_url: str = OPENROUTER_BASE_URL, app_name: str = "Hypo", **kwargs: Any):
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url
        self.app_name = app_name

    def _build_client(self) -> AsyncOpenAI:
        self.logger.info(f"Creating OpenRouter client for model {self.model}")
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            default_headers={"X-Title": self.app_name},
        )

    def _is_quota_error(self, exc: Exception, text: str) -> bool:
        status = getattr(exc, "status_code", None)
        if status == 402:
            return True
        return any(marker in text for marker in QUOTA_MARKERS)

    def _quota_reset_hint(self, exc: Exception) -> Optional[int]:
        return self._reset_header_seconds(exc, "x-ratelimit-reset")
