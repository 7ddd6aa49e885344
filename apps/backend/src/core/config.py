"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "EDEN"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Upstream providers
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_CONNECT_TIMEOUT_SECONDS: float = 10.0
    # Maximum silence between two NDJSON lines, not the total response time
    OLLAMA_READ_TIMEOUT_SECONDS: float = 120.0
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MAX_TOKENS: int = 16_384
    ANTHROPIC_TIMEOUT_SECONDS: float = 300.0
    # 0 disables extended thinking
    ANTHROPIC_THINKING_BUDGET_TOKENS: int = 0

    # Model routing
    DEFAULT_CHAT_MODEL: str = "gpt-oss"
    BUILD_ARTIFACT_MODEL: str = "claude-opus-4-5-20251101"

    # Conversation
    MAX_HISTORY_MESSAGES: int = 50
    CONTEXT_SUMMARY_MAX_CHARS: int = 800

    # Deliverables and artifacts
    DELIVERABLES_DIR: str = "temp"
    PDF_BRAND_NAME: str = "EDEN Framework"
    ARTIFACT_CACHE_TTL_SECONDS: int = 3600
    ARTIFACT_CACHE_MAX_ENTRIES: int = 256

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @field_validator("OLLAMA_BASE_URL")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # A claude-backed build phase cannot work without credentials in production.
    if env == "production" and not os.getenv("ANTHROPIC_API_KEY"):
        if not (env_file and os.path.exists(env_file)):
            raise RuntimeError("ANTHROPIC_API_KEY must be set in production")

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
