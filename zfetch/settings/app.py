"""Client settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from zfetch.constants import DEFAULT_TOKEN_SCHEME


class ClientSettings(BaseSettings):
    """Environment configuration for the default client."""

    model_config = SettingsConfigDict(
        env_prefix="ZFETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = ""
    timeout_ms: int = Field(default=0, ge=0)
    max_concurrent: int | None = Field(default=None, ge=1)
    api_token: str | None = None
    token_scheme: str = DEFAULT_TOKEN_SCHEME


def get_settings() -> ClientSettings:
    """Get a settings instance."""
    return ClientSettings()
