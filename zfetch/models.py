"""Data models for the request pipeline."""

import random
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from zfetch.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_RETRY_ON,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    MAX_RETRIES,
    MAX_RETRY_DELAY_MS,
    NO_RESPONSE_STATUS,
)
from zfetch.errors import ErrorKind, RequestError
from zfetch.signals import CancelGroup, CancelSignal


def is_ok_status(status_code: int) -> bool:
    """Check whether a status code denotes success (2xx)."""
    return HTTP_STATUS_OK_MIN <= status_code < HTTP_STATUS_OK_MAX


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Attempts are numbered from 1. Uses exponential backoff with additive
    jitter: delay = base_delay_ms * 2 ** (attempt - 1) + U[0, base_delay_ms)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_retries: Annotated[int, Field(ge=0, le=MAX_RETRIES)] = DEFAULT_MAX_RETRIES
    base_delay_ms: Annotated[int, Field(ge=0, le=MAX_RETRY_DELAY_MS)] = DEFAULT_RETRY_DELAY_MS
    retry_on: frozenset[int] = DEFAULT_RETRY_ON

    @property
    def max_attempts(self) -> int:
        """Get the upper bound on physical attempts."""
        return self.max_retries + 1

    def can_retry(self, attempt: int) -> bool:
        """Check whether another attempt may follow this one.

        Args:
            attempt: Number of the attempt that just failed (1-indexed).

        Returns:
            True if the retry budget is not exhausted.
        """
        return attempt <= self.max_retries

    def should_retry_status(self, status_code: int, attempt: int) -> bool:
        """Determine if a received response should be retried.

        Args:
            status_code: Status of the response.
            attempt: Number of the attempt that produced it (1-indexed).

        Returns:
            True if the status failed, is retryable and budget remains.
        """
        return (
            not is_ok_status(status_code)
            and status_code in self.retry_on
            and self.can_retry(attempt)
        )

    def get_backoff_ms(self, attempt: int) -> int:
        """Calculate the exponential part of the delay.

        Args:
            attempt: Number of the attempt that just failed (1-indexed).

        Returns:
            Backoff in milliseconds.
        """
        return self.base_delay_ms * 2 ** (attempt - 1)

    def get_jitter_ms(self) -> int:
        """Draw a jitter value uniformly from [0, base_delay_ms)."""
        return int(random.random() * self.base_delay_ms)  # noqa: S311

    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay before the next attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed).

        Returns:
            Delay in milliseconds.
        """
        return self.get_backoff_ms(attempt) + self.get_jitter_ms()


class RequestOptions(BaseModel):
    """Per-call overrides accepted by ``HttpClient.execute``.

    ``timeout`` and ``retry_delay`` are milliseconds; ``cache`` is a TTL in
    seconds where 0 disables caching. ``None`` falls back to client defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timeout: Annotated[int, Field(ge=0)] | None = None
    retry: Annotated[int, Field(ge=0, le=MAX_RETRIES)] = DEFAULT_MAX_RETRIES
    retry_delay: Annotated[int, Field(ge=0, le=MAX_RETRY_DELAY_MS)] | None = None
    retry_on: frozenset[int] | None = None
    cache: Annotated[float, Field(ge=0)] = 0
    signal: CancelSignal | None = None
    group: CancelGroup | None = None


class RequestConfig(BaseModel):
    """Fully resolved description of one logical request.

    Frozen: request interceptors return replacements built with
    ``model_copy(update=...)``; nothing changes once it is queued.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    url: str
    method: str
    path: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timeout_ms: Annotated[int, Field(ge=0)] = 0
    max_retries: Annotated[int, Field(ge=0, le=MAX_RETRIES)] = DEFAULT_MAX_RETRIES
    retry_base_delay_ms: Annotated[int, Field(ge=0, le=MAX_RETRY_DELAY_MS)] = (
        DEFAULT_RETRY_DELAY_MS
    )
    retryable_statuses: frozenset[int] = DEFAULT_RETRY_ON
    signal: CancelSignal | None = None
    group_signal: CancelSignal | None = None
    cache_ttl_seconds: Annotated[float, Field(ge=0)] = 0

    @property
    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy for this request."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.retry_base_delay_ms,
            retry_on=self.retryable_statuses,
        )

    @property
    def cancelled(self) -> bool:
        """Check whether the user or group signal has fired."""
        return any(
            signal is not None and signal.fired
            for signal in (self.signal, self.group_signal)
        )


class Response(BaseModel):
    """Final response of a request.

    ``ok`` is true iff the transport returned a 2xx status.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    ok: bool
    status_code: Annotated[int, Field(ge=0, le=999)]
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None
    config: RequestConfig
    elapsed_ms: Annotated[int, Field(ge=0)] = 0
    attempts: Annotated[int, Field(ge=0)] = 1
    from_cache: bool = False


class FailureResult(BaseModel):
    """Uniform failure value; returned, never raised."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    ok: Literal[False] = False
    status_code: Annotated[int, Field(ge=0, le=999)] = NO_RESPONSE_STATUS
    data: Any = None
    error: RequestError
    config: RequestConfig

    @property
    def kind(self) -> ErrorKind:
        """Get the classification of the failure."""
        return self.error.kind


Result = Response | FailureResult
