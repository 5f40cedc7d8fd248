"""Async HTTP request orchestration.

This package wraps a transport with:
- Request and response interceptors, plus body transforms
- A TTL response cache for GET requests
- A FIFO queue bounding concurrent requests
- Retries with exponential backoff and jitter
- Per-attempt timeouts, cancel tokens and cancel groups
- Failures returned as values instead of raised
"""

from zfetch.cache import CacheStore, make_cache_key
from zfetch.client import HttpClient, create_client
from zfetch.config import ClientConfig
from zfetch.env import EnvChain, env
from zfetch.errors import (
    AbortError,
    ErrorKind,
    HookError,
    HTTPError,
    RequestError,
    TransportError,
)
from zfetch.metrics import ClientMetrics
from zfetch.models import (
    FailureResult,
    RequestConfig,
    RequestOptions,
    Response,
    Result,
    RetryPolicy,
)
from zfetch.queue import ConcurrencyQueue
from zfetch.settings import ClientSettings, get_settings
from zfetch.signals import CancelGroup, CancelSignal, CancelToken, compose
from zfetch.transport import (
    HttpxTransport,
    Transport,
    TransportRequest,
    TransportResponse,
)


__all__ = [
    # Client
    "HttpClient",
    "create_client",
    # Config
    "ClientConfig",
    "ClientSettings",
    "get_settings",
    "EnvChain",
    "env",
    # Models
    "RequestOptions",
    "RequestConfig",
    "Response",
    "FailureResult",
    "Result",
    "RetryPolicy",
    # Errors
    "ErrorKind",
    "RequestError",
    "TransportError",
    "AbortError",
    "HTTPError",
    "HookError",
    # Cancellation
    "CancelSignal",
    "CancelToken",
    "CancelGroup",
    "compose",
    # Cache and queue
    "CacheStore",
    "make_cache_key",
    "ConcurrencyQueue",
    # Transport
    "Transport",
    "HttpxTransport",
    "TransportRequest",
    "TransportResponse",
    # Metrics
    "ClientMetrics",
]
