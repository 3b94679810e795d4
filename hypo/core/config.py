"""
Configuration management via environment variables.

This module loads configuration from a .env file using python-dotenv.
All configuration values are accessed through the Settings class.

Every backend key is optional: a backend without credentials is simply
reported as "not configured" and skipped when resolving the "auto" model.
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


# Load .env file from project root
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


DEFAULT_BACKEND_ORDER = ("openrouter", "groq", "sonar", "ollama")


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Application identifier for logging
        app_env: Environment name (development, staging, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        auto_backend_order: Priority order used to resolve model="auto"
        max_turns: Conversation turns kept per conversation (2 messages each)
        cache_ttl_seconds: Default response cache lifetime
        rate_limit_cooldown_seconds: Minimum gap between requests of one client
        retry_max_attempts: Rate-limit retries for hosted backends
    """
    # Application settings
    app_name: str
    app_env: str
    log_level: str
    log_to_file: bool

    # Hosted multi-model router
    openrouter_api_key: str
    openrouter_base_url: str
    openrouter_model: str

    # Hosted low-latency service
    groq_api_key: str
    groq_model: str

    # Local inference runtime
    ollama_url: str
    ollama_model: str
    ollama_timeout_seconds: float
    ollama_chat_api: bool

    # Search-augmented service
    perplexity_api_key: str
    perplexity_model: str

    # Generation
    auto_backend_order: Tuple[str, ...]
    llm_temperature: float
    llm_max_tokens: int

    # Conversation store
    max_turns: int
    conversation_idle_hours: int
    conversation_sweep_minutes: int

    # Response cache
    cache_max_size: int
    cache_ttl_seconds: int
    cache_cleanup_minutes: int
    cache_fuzzy_fallback: bool
    cache_similarity_threshold: float

    # Safety
    rate_limit_cooldown_seconds: float
    rate_limit_per_minute: int
    retry_max_attempts: int
    retry_base_delay_seconds: float
    enable_audit_logging: bool

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.

    Raises:
        ValueError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ValueError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).strip().lower() in ("1", "true", "yes", "on")


def _parse_backend_order(raw: str) -> Tuple[str, ...]:
    order = tuple(name.strip().lower() for name in raw.split(",") if name.strip())
    return order or DEFAULT_BACKEND_ORDER


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once; call ``get_settings.cache_clear()`` after changing
    the environment (tests do this through a fixture).

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    return Settings(
        # Application
        app_name=_get_env("APP_NAME", "HypoChatCore"),
        app_env=_get_env("APP_ENV", "development"),
        log_level=_get_env("LOG_LEVEL", "INFO"),
        log_to_file=_get_bool("LOG_TO_FILE", "false"),

        # Backends
        openrouter_api_key=_get_env("OPENROUTER_API_KEY", ""),
        openrouter_base_url=_get_env("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        openrouter_model=_get_env("OPENROUTER_MODEL", "google/gemini-2.0-flash-exp:free"),
        groq_api_key=_get_env("GROQ_API_KEY", ""),
        groq_model=_get_env("GROQ_MODEL", "llama-3.1-8b-instant"),
        ollama_url=_get_env("OLLAMA_URL", "http://localhost:11434"),
        ollama_model=_get_env("OLLAMA_MODEL", "llama3.2:3b"),
        ollama_timeout_seconds=float(_get_env("OLLAMA_TIMEOUT_SECONDS", "30")),
        ollama_chat_api=_get_bool("OLLAMA_CHAT_API", "false"),
        perplexity_api_key=_get_env("PERPLEXITY_API_KEY", ""),
        perplexity_model=_get_env("PERPLEXITY_MODEL", "sonar"),

        # Generation
        auto_backend_order=_parse_backend_order(
            _get_env("AUTO_BACKEND_ORDER", ",".join(DEFAULT_BACKEND_ORDER))
        ),
        llm_temperature=float(_get_env("LLM_TEMPERATURE", "0.7")),
        llm_max_tokens=int(_get_env("LLM_MAX_TOKENS", "1000")),

        # Conversation store
        max_turns=int(_get_env("MAX_TURNS", "20")),
        conversation_idle_hours=int(_get_env("CONVERSATION_IDLE_HOURS", "24")),
        conversation_sweep_minutes=int(_get_env("CONVERSATION_SWEEP_MINUTES", "60")),

        # Response cache
        cache_max_size=int(_get_env("CACHE_MAX_SIZE", "100")),
        cache_ttl_seconds=int(_get_env("CACHE_TTL_SECONDS", "300")),
        cache_cleanup_minutes=int(_get_env("CACHE_CLEANUP_MINUTES", "10")),
        cache_fuzzy_fallback=_get_bool("CACHE_FUZZY_FALLBACK", "false"),
        cache_similarity_threshold=float(_get_env("CACHE_SIMILARITY_THRESHOLD", "0.7")),

        # Safety
        rate_limit_cooldown_seconds=float(_get_env("RATE_LIMIT_COOLDOWN_SECONDS", "3")),
        rate_limit_per_minute=int(_get_env("RATE_LIMIT_PER_MINUTE", "20")),
        retry_max_attempts=int(_get_env("RETRY_MAX_ATTEMPTS", "3")),
        retry_base_delay_seconds=float(_get_env("RETRY_BASE_DELAY_SECONDS", "2")),
        enable_audit_logging=_get_bool("ENABLE_AUDIT_LOGGING", "true"),
    )
