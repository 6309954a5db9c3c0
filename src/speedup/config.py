"""Process configuration, read once at startup and never mutated."""
from __future__ import annotations
from functools import lru_cache
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_FILE_BYTES = 100 * 1024 * 1024
DEFAULT_MAX_LOG_BYTES = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    API_KEY: SecretStr | None = None
    JWT_SECRET: SecretStr | None = None
    # When false and neither API_KEY nor JWT_SECRET is set, requests are let through.
    AUTH_REQUIRED: bool = True

    MAX_FILE_BYTES: int = Field(default=DEFAULT_MAX_FILE_BYTES, ge=0)
    MAX_LOG_BYTES: int = Field(default=DEFAULT_MAX_LOG_BYTES, ge=0)

    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    @property
    def api_key(self) -> str | None:
        if self.API_KEY is None:
            return None
        return self.API_KEY.get_secret_value() or None

    @property
    def signing_secret(self) -> str | None:
        if self.JWT_SECRET is None:
            return None
        return self.JWT_SECRET.get_secret_value() or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
