"""Configuration model for the HTTP client."""

import re
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from zfetch.constants import (
    AUTHORIZATION_HEADER,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_RETRY_ON,
    DEFAULT_TOKEN_SCHEME,
    MAX_RETRY_DELAY_MS,
)
from zfetch.env import EnvChain


if TYPE_CHECKING:
    from zfetch.settings import ClientSettings


_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


class ClientConfig(BaseModel):
    """Client-wide defaults applied to every request.

    Immutable: the client swaps in a new instance when defaults change
    (for example on ``set_token``), so later calls see the update.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = ""
    timeout_ms: Annotated[int, Field(ge=0, description="0 disables the timeout")] = 0
    headers: dict[str, str] = Field(default_factory=dict)
    max_concurrent: Annotated[int, Field(ge=1)] | None = Field(
        default=None, description="None means unbounded"
    )
    retry_delay_ms: Annotated[int, Field(ge=0, le=MAX_RETRY_DELAY_MS)] = DEFAULT_RETRY_DELAY_MS
    retry_on: frozenset[int] = DEFAULT_RETRY_ON

    @field_validator("base_url", mode="before")
    @classmethod
    def resolve_env_chain(cls, v: Any) -> Any:
        """Resolve an EnvChain to its URL at construction."""
        if isinstance(v, EnvChain):
            return v.resolve()
        if v is None:
            return ""
        return v

    @classmethod
    def from_settings(cls, settings: "ClientSettings") -> "ClientConfig":
        """Build a config from environment settings.

        Args:
            settings: Loaded settings.

        Returns:
            ClientConfig with the token applied, if any.
        """
        config = cls(
            base_url=settings.base_url,
            timeout_ms=settings.timeout_ms,
            max_concurrent=settings.max_concurrent,
        )
        if settings.api_token:
            config = config.with_token(settings.api_token, settings.token_scheme)
        return config

    def resolve_url(self, path: str | None) -> str:
        """Join a request path onto the base URL.

        Absolute ``http(s)://`` paths bypass the base.

        Args:
            path: Path or absolute URL.

        Returns:
            Full request URL.
        """
        if not path:
            return self.base_url
        if _ABSOLUTE_URL.match(path):
            return path
        if not self.base_url:
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def with_headers(self, headers: dict[str, str]) -> "ClientConfig":
        """Return a copy with the default headers replaced."""
        return self.model_copy(update={"headers": dict(headers)})

    def with_token(
        self,
        token: str | None,
        scheme: str = DEFAULT_TOKEN_SCHEME,
    ) -> "ClientConfig":
        """Return a copy with the Authorization header set or removed.

        Args:
            token: Credential; a falsy value removes the header.
            scheme: Authorization scheme.

        Returns:
            Updated config.
        """
        headers = {
            key: value
            for key, value in self.headers.items()
            if key.lower() != AUTHORIZATION_HEADER.lower()
        }
        if token:
            headers[AUTHORIZATION_HEADER] = f"{scheme} {token}"
        return self.with_headers(headers)
