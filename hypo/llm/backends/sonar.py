"""
Perplexity Sonar backend (hosted, OpenAI-compatible, web-search models).

Sonar exposes a small fixed set of model variants; the backend keeps a
current variant that can be switched at runtime. For the lightweight
``sonar`` variant citations, images and related questions are suppressed
so responses stay short.
"""
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from hypo.llm.backends.openai_compat import OpenAICompatibleBackend
from hypo.llm.backends.openrouter import OPENAI_ERRORS

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"

SONAR_MODELS: Dict[str, Dict[str, str]] = {
    "sonar": {
        "name": "Sonar",
        "description": "Lightweight search model, fastest responses",
    },
    "sonar-pro": {
        "name": "Sonar Pro",
        "description": "Advanced search with deeper answers",
    },
    "sonar-reasoning": {
        "name": "Sonar Reasoning",
        "description": "Multi-step reasoning with search",
    },
    "sonar-deep-research": {
        "name": "Sonar Deep Research",
        "description": "Exhaustive research reports",
    },
}

LIGHTWEIGHT_MODEL = "sonar"


class SonarBackend(OpenAICompatibleBackend):
    """Chat completions through Perplexity's Sonar models."""

    name = "sonar"
    sdk_errors = OPENAI_ERRORS

    def __init__(self, api_key: str, model: str = LIGHTWEIGHT_MODEL, base_url: str = PERPLEXITY_BASE_URL, **kwargs: Any):
        if model not in SONAR_MODELS:
            model = LIGHTWEIGHT_MODEL
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url

    def _build_client(self) -> AsyncOpenAI:
        self.logger.info(f"Creating Sonar client for model {self.model}")
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    def supports_model(self, model: str) -> bool:
        return model in SONAR_MODELS

    def _extra_params(self, model: str) -> Dict[str, Any]:
        if model != LIGHTWEIGHT_MODEL:
            return {}
        return {
            "extra_body": {
                "return_citations": False,
                "return_images": False,
                "return_related_questions": False,
            }
        }

    async def check_connection(self) -> bool:
        # Perplexity has no models listing; probe with a one-token completion
        if not self.is_configured:
            return False
        try:
            await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=1,
            )
            return True
        except Exception as exc:
            self.logger.warning(f"Sonar connection check failed: {exc}")
            return False

    # ------------------------------------------------------------------
    # Variant management
    # ------------------------------------------------------------------

    def switch_model(self, model: str) -> bool:
        """Make ``model`` the default variant. Returns False for unknown names."""
        if model not in SONAR_MODELS:
            self.logger.warning(f"Unknown Sonar model: {model}")
            return False
        self.logger.info(f"Switching Sonar model {self.model} -> {model}")
        self.model = model
        return True

    def get_current_model(self) -> Dict[str, str]:
        info = SONAR_MODELS[self.model]
        return {"id": self.model, "name": info["name"], "description": info["description"], "service": self.name}

    def available_models(self, current: Optional[str] = None) -> List[Dict[str, Any]]:
        current = current or self.model
        return [
            {"id": model_id, "name": info["name"], "description": info["description"], "current": model_id == current}
            for model_id, info in SONAR_MODELS.items()
        ]
