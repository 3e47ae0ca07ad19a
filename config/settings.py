from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


class ConfigError(RuntimeError):
    """Raised when the environment cannot produce a usable configuration."""


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()

        self.llm_provider: str = os.getenv("LLM_PROVIDER", "google").lower()
        self.google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o")
        self.temperature: float = _float_env("MODEL_TEMPERATURE", 0.0)
        self.top_p: float = _float_env("MODEL_TOP_P", 0.9)

        self.history_backend: str = os.getenv("HISTORY_BACKEND", "redis").lower()
        self.redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.redis_key_prefix: str = os.getenv("REDIS_KEY_PREFIX", "message_store:")
        self.session_ttl: int = _int_env("SESSION_TTL", 300)
        self.session_id: Optional[str] = os.getenv("CHAT_SESSION_ID") or None

    @property
    def model_name(self) -> str:
        if self.llm_provider == "openai":
            return self.openai_model
        return self.gemini_model

    def missing_credentials(self) -> List[str]:
        if self.llm_provider == "openai":
            return [] if self.openai_api_key else ["OPENAI_API_KEY"]
        if self.llm_provider == "google":
            return [] if self.google_api_key else ["GOOGLE_API_KEY"]
        return []

    def require_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigError(
                f"{', '.join(missing)} not set. Please configure it in environment or .env"
            )

    def validate(self) -> None:
        if self.llm_provider not in {"google", "openai"}:
            raise ConfigError(
                f"Unknown LLM_PROVIDER {self.llm_provider!r}; expected 'google' or 'openai'"
            )
        if self.history_backend not in {"redis", "memory"}:
            raise ConfigError(
                f"Unknown HISTORY_BACKEND {self.history_backend!r}; expected 'redis' or 'memory'"
            )
        self.require_credentials()
        if self.session_ttl <= 0:
            raise ConfigError("SESSION_TTL must be a positive number of seconds")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
