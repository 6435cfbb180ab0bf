"""Runtime configuration for the Minerva services."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from minerva.errors import ConfigurationError


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="minerva_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Review index (Chroma collection)
    index_name: str = "aar-reviews"
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False
    chroma_api_key: SecretStr | None = None

    embedding_provider: Literal["hash", "huggingface", "openai"] = "hash"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 384

    generator_backend: Literal["openai", "template"] = "openai"
    generator_model: str = "gpt-4o-mini"
    generator_max_tokens: int = 1500
    generator_temperature: float = 0.1
    generator_request_timeout: float = 45.0
    openai_api_key: SecretStr | None = None

    # Retrieval / prompt shaping
    retrieval_max_top_k: int = 10
    history_window: int = 3
    min_descriptive_fields: int = 1

    # Relay
    stream_timeout_seconds: float = 30.0
    stream_update_interval: float = 0.1

    # CORS
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "DELETE", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("*",)

    # Per-user fixed window
    rate_limit_requests: int = 30
    rate_limit_window_seconds: int = 60

    log_level: str = "INFO"
    log_json: bool = True

    def missing_credentials(self) -> list[str]:
        missing: list[str] = []
        if not self.index_name.strip():
            missing.append("MINERVA_INDEX_NAME")
        if self.chroma_host and not _secret_value(self.chroma_api_key):
            missing.append("MINERVA_CHROMA_API_KEY")
        if self.generator_backend == "openai" and not _secret_value(self.openai_api_key):
            missing.append("MINERVA_OPENAI_API_KEY")
        if self.embedding_provider == "openai" and not _secret_value(self.openai_api_key):
            if "MINERVA_OPENAI_API_KEY" not in missing:
                missing.append("MINERVA_OPENAI_API_KEY")
        return missing

    def validate_credentials(self) -> None:
        """Raise ``ConfigurationError`` when a required credential is absent."""

        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")


def _secret_value(secret: SecretStr | None) -> str:
    if secret is None:
        return ""
    return secret.get_secret_value().strip()


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
