"""HTTP client orchestrating hooks, cache, concurrency and retries.

``HttpClient.execute`` is the single entry point; it never raises for HTTP,
network, cancellation or hook failures. Those come back as
``FailureResult`` values.
"""

import asyncio
import inspect
import json
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType
from typing import Any

import structlog

from zfetch.cache import CacheStore, make_cache_key
from zfetch.config import ClientConfig
from zfetch.constants import (
    BODY_METHODS,
    BODYLESS_METHODS,
    CACHEABLE_METHOD,
    CONTENT_TYPE_HEADER,
    DEFAULT_TOKEN_SCHEME,
    JSON_CONTENT_TYPE,
    NO_RESPONSE_STATUS,
)
from zfetch.errors import AbortError, HTTPError, RequestError
from zfetch.hooks import Hook, InterceptorPipeline, TransformPipeline, report_failures
from zfetch.metrics import ClientMetrics
from zfetch.models import FailureResult, RequestConfig, RequestOptions, Response, Result
from zfetch.observability import request_context
from zfetch.queue import ConcurrencyQueue
from zfetch.redact import redact_headers, redact_url_credentials
from zfetch.retry import RetryExecutor
from zfetch.settings import ClientSettings
from zfetch.signals import CancelGroup, CancelToken, compose
from zfetch.transport import HttpxTransport, Transport, TransportResponse


logger = structlog.get_logger()

ErrorHandler = Callable[[RequestError, RequestConfig], Any]
Plugin = Callable[["HttpClient"], Any]


def find_header(headers: Mapping[str, str], name: str) -> str | None:
    """Find the actual key of a header, case-insensitively.

    Args:
        headers: Headers to search.
        name: Header name.

    Returns:
        The matching key, or None.
    """
    lowered = name.lower()
    return next((key for key in headers if key.lower() == lowered), None)


def parse_body(response: TransportResponse) -> Any:
    """Decode a response body.

    JSON content types are parsed (None if parsing fails); anything else is
    decoded as UTF-8 text.

    Args:
        response: Raw transport response.

    Returns:
        Parsed data.
    """
    if JSON_CONTENT_TYPE in response.content_type.lower():
        try:
            return json.loads(response.content)
        except ValueError:
            return None
    return response.content.decode("utf-8", errors="replace")


def _callable_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


class HttpClient:
    """Request orchestrator.

    Per request: resolve URL and headers, run request transforms,
    negotiate the body, run request interceptors, consult the cache, wait
    for a concurrency slot, drive the retry executor, shape the response
    with transforms then interceptors, write the cache and notify error
    handlers on failure.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
        cache: CacheStore | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client defaults.
            transport: Transport to send through; an owned
                ``HttpxTransport`` is created if omitted.
            cache: Cache store; a fresh in-memory store if omitted.
        """
        self._config = config or ClientConfig()
        self._owns_transport = transport is None
        self._transport: Transport = transport if transport is not None else HttpxTransport()
        self._cache = cache if cache is not None else CacheStore()
        self._queue = ConcurrencyQueue(self._config.max_concurrent)
        self._executor = RetryExecutor(self._transport)
        self._interceptors = InterceptorPipeline()
        self._transforms = TransformPipeline()
        self._error_handlers: list[ErrorHandler] = []
        self._plugins: list[Plugin] = []
        self._metrics = ClientMetrics.get_instance()
        self._log = logger.bind(component="client")

    @property
    def config(self) -> ClientConfig:
        """Get the current client defaults."""
        return self._config

    @property
    def cache(self) -> CacheStore:
        """Get the response cache."""
        return self._cache

    @property
    def queue(self) -> ConcurrencyQueue:
        """Get the concurrency queue."""
        return self._queue

    @property
    def interceptors(self) -> InterceptorPipeline:
        """Get the interceptor chains."""
        return self._interceptors

    @property
    def transforms(self) -> TransformPipeline:
        """Get the transform chains."""
        return self._transforms

    @property
    def plugins(self) -> list[Plugin]:
        """Get the installed plugins."""
        return list(self._plugins)

    # Registration

    def use(self, request: Hook | None = None, response: Hook | None = None) -> "HttpClient":
        """Register interceptors.

        Args:
            request: ``fn(config) -> RequestConfig | None``.
            response: ``fn(response) -> Response | None``.

        Returns:
            This client, for chaining.
        """
        self._interceptors.use(request=request, response=response)
        return self

    def add_transform_request(self, fn: Hook) -> "HttpClient":
        """Register an outgoing body transform ``fn(body, headers)``."""
        self._transforms.request.add(fn)
        return self

    def add_transform_response(self, fn: Hook) -> "HttpClient":
        """Register an incoming data transform ``fn(data, response)``."""
        self._transforms.response.add(fn)
        return self

    def on_error(self, fn: ErrorHandler) -> "HttpClient":
        """Register a global error handler ``fn(error, config)``.

        Handlers run for transport, abort and HTTP failures. A handler that
        raises is logged and skipped.
        """
        if not callable(fn):
            msg = f"error handler must be callable, got {type(fn).__name__}"
            raise TypeError(msg)
        self._error_handlers.append(fn)
        return self

    def use_plugin(self, plugin: Plugin) -> "HttpClient":
        """Install a plugin by calling ``plugin(client)``.

        A plugin that raises is logged and not recorded as installed.

        Returns:
            This client, for chaining.
        """
        try:
            plugin(self)
        except Exception as e:  # noqa: BLE001
            self._log.warning("plugin_failed", plugin=_callable_name(plugin), error=str(e))
            return self
        self._plugins.append(plugin)
        return self

    def set_token(
        self,
        token: str | None,
        scheme: str = DEFAULT_TOKEN_SCHEME,
    ) -> "HttpClient":
        """Set or remove the default Authorization header.

        Args:
            token: Credential; a falsy value removes the header.
            scheme: Authorization scheme.

        Returns:
            This client, for chaining.
        """
        self._config = self._config.with_token(token, scheme)
        return self

    def clear_cache(self) -> "HttpClient":
        """Drop every cached response."""
        self._cache.clear()
        return self

    def delete_cache_key(self, method: str, url: str, body: Any = None) -> "HttpClient":
        """Drop the cached response of one request.

        Args:
            method: HTTP method.
            url: Path or absolute URL, resolved against the base URL.
            body: Request body used when the response was cached.

        Returns:
            This client, for chaining.
        """
        self._cache.delete(make_cache_key(method, self._config.resolve_url(url), body))
        return self

    @staticmethod
    def new_cancel_token() -> CancelToken:
        """Create a token that cancels the requests it is attached to."""
        return CancelToken()

    @staticmethod
    def new_cancel_group() -> CancelGroup:
        """Create a group that cancels every request registered with it."""
        return CancelGroup()

    # Execution

    async def execute(
        self,
        method: str,
        path: str,
        options: RequestOptions | None = None,
    ) -> Result:
        """Run one logical request through the pipeline.

        Args:
            method: HTTP method.
            path: Path joined onto the base URL, or an absolute URL.
            options: Per-call overrides.

        Returns:
            Response on success, FailureResult otherwise.
        """
        with request_context(uuid.uuid4().hex[:12]):
            return await self._execute(method.upper(), path, options or RequestOptions())

    async def _execute(self, method: str, path: str, options: RequestOptions) -> Result:
        start_ns = time.perf_counter_ns()
        config = await self._build_config(method, path, options)
        log = self._log.bind(method=config.method, url=redact_url_credentials(config.url))
        log.debug("request_start", headers=redact_headers(config.headers))

        cache_key: str | None = None
        cached: Response | None = None
        if config.method == CACHEABLE_METHOD and config.cache_ttl_seconds > 0:
            cache_key = make_cache_key(config.method, config.url, config.body)
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._metrics.record_cache_hit()
                log.debug("cache_hit", key=cache_key)
            else:
                self._metrics.record_cache_miss()

        result: Result
        if cached is not None:
            hit = cached.model_copy(update={"config": config, "from_cache": True})
            result = await self._shape_response(hit, log)
        else:
            with compose(config.signal, config.group_signal) as cancel_signal:
                try:
                    result = await self._queue.submit(
                        lambda: self._dispatch(config, cache_key, log),
                        signal=cancel_signal,
                    )
                except AbortError as e:
                    result = await self._fail(FailureResult(error=e, config=config), log)

        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
        self._metrics.record_duration(duration_ms)
        log.info(
            "request_complete",
            ok=result.ok,
            status_code=result.status_code,
            from_cache=cached is not None,
            duration_ms=round(duration_ms, 2),
        )
        return result

    async def _build_config(
        self,
        method: str,
        path: str,
        options: RequestOptions,
    ) -> RequestConfig:
        """Resolve defaults, transforms and request interceptors.

        Args:
            method: Upper-case HTTP method.
            path: Caller's path.
            options: Per-call overrides.

        Returns:
            Final request configuration.
        """
        defaults = self._config
        headers = {**defaults.headers, **options.headers}

        transformed = await self._transforms.request.apply(options.body, headers)
        report_failures(transformed.failures, self._log)
        body = self._negotiate_body(method, headers, transformed.value)

        config = RequestConfig(
            url=defaults.resolve_url(path),
            method=method,
            path=path,
            headers=headers,
            body=body,
            timeout_ms=options.timeout if options.timeout is not None else defaults.timeout_ms,
            max_retries=options.retry,
            retry_base_delay_ms=(
                options.retry_delay
                if options.retry_delay is not None
                else defaults.retry_delay_ms
            ),
            retryable_statuses=(
                options.retry_on if options.retry_on is not None else defaults.retry_on
            ),
            signal=options.signal,
            group_signal=options.group.signal if options.group is not None else None,
            cache_ttl_seconds=options.cache,
        )

        intercepted = await self._interceptors.request.apply(config)
        report_failures(intercepted.failures, self._log)
        config = intercepted.value
        if config.method != config.method.upper():
            config = config.model_copy(update={"method": config.method.upper()})
        return config

    @staticmethod
    def _negotiate_body(method: str, headers: dict[str, str], body: Any) -> Any:
        """Decide what goes on the wire.

        GET and HEAD never carry a body. A JSON-like content type serializes
        any body that is not already text or bytes.
        """
        if body is None or method in BODYLESS_METHODS:
            return None
        key = find_header(headers, CONTENT_TYPE_HEADER)
        content_type = headers[key].lower() if key else ""
        if "json" in content_type and not isinstance(body, str | bytes | bytearray):
            return json.dumps(body, default=str)
        return body

    async def _dispatch(
        self,
        config: RequestConfig,
        cache_key: str | None,
        log: structlog.stdlib.BoundLogger,
    ) -> Result:
        """Run the retry executor and interpret its outcome.

        Runs while holding a concurrency slot.
        """
        outcome = await self._executor.execute(config)
        if outcome.error is not None or outcome.response is None:
            error = outcome.error or AbortError()
            failure = FailureResult(status_code=NO_RESPONSE_STATUS, error=error, config=config)
            return await self._fail(failure, log)

        raw = outcome.response
        self._metrics.record_request(raw.status_code)
        response = Response(
            ok=raw.ok,
            status_code=raw.status_code,
            status_text=raw.status_text,
            headers=dict(raw.headers),
            data=parse_body(raw),
            config=config,
            elapsed_ms=outcome.duration_ms,
            attempts=outcome.attempts,
        )
        shaped = await self._shape_response(response, log)

        if not raw.ok:
            error = HTTPError(raw.status_code, raw.status_text, response=shaped)
            failure = FailureResult(
                status_code=raw.status_code,
                data=shaped.data,
                error=error,
                config=config,
            )
            return await self._fail(failure, log)

        if cache_key is not None:
            self._cache.set(cache_key, response, config.cache_ttl_seconds)
        return shaped

    async def _shape_response(
        self,
        response: Response,
        log: structlog.stdlib.BoundLogger,
    ) -> Response:
        """Apply response transforms, then response interceptors."""
        transformed = await self._transforms.response.apply(response.data, response)
        report_failures(transformed.failures, log)
        if transformed.value is not response.data:
            response = response.model_copy(update={"data": transformed.value})

        intercepted = await self._interceptors.response.apply(response)
        report_failures(intercepted.failures, log)
        return intercepted.value

    async def _fail(
        self,
        failure: FailureResult,
        log: structlog.stdlib.BoundLogger,
    ) -> FailureResult:
        """Record a failure and notify every error handler."""
        self._metrics.record_failure(failure.kind)
        log.warning("request_failed", status_code=failure.status_code, error=failure.error.to_dict())

        for handler in list(self._error_handlers):
            try:
                outcome = handler(failure.error, failure.config)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:  # noqa: BLE001
                log.warning(
                    "error_handler_failed",
                    handler=_callable_name(handler),
                    error=str(e),
                )
        return failure

    # Convenience wrappers

    async def get(self, url: str, **options: Any) -> Result:
        """Send a GET request."""
        return await self.execute("GET", url, RequestOptions(**options))

    async def head(self, url: str, **options: Any) -> Result:
        """Send a HEAD request."""
        return await self.execute("HEAD", url, RequestOptions(**options))

    async def delete(self, url: str, **options: Any) -> Result:
        """Send a DELETE request."""
        return await self.execute("DELETE", url, RequestOptions(**options))

    async def post(self, url: str, body: Any = None, **options: Any) -> Result:
        """Send a POST request; mapping bodies default to JSON."""
        return await self._send_with_body("POST", url, body, options)

    async def put(self, url: str, body: Any = None, **options: Any) -> Result:
        """Send a PUT request; mapping bodies default to JSON."""
        return await self._send_with_body("PUT", url, body, options)

    async def patch(self, url: str, body: Any = None, **options: Any) -> Result:
        """Send a PATCH request; mapping bodies default to JSON."""
        return await self._send_with_body("PATCH", url, body, options)

    async def request(self, method: str = "GET", url: str = "", **options: Any) -> Result:
        """Send a request described by keyword arguments.

        ``data`` is accepted as an alias of ``body``.
        """
        method = method.upper()
        data = options.pop("data", None)
        body = options.pop("body", data)
        if method in BODY_METHODS:
            return await self._send_with_body(method, url, body, options)
        return await self.execute(method, url, RequestOptions(body=body, **options))

    async def _send_with_body(
        self,
        method: str,
        url: str,
        body: Any,
        options: dict[str, Any],
    ) -> Result:
        headers = dict(options.pop("headers", None) or {})
        if isinstance(body, Mapping) and find_header(headers, CONTENT_TYPE_HEADER) is None:
            headers[CONTENT_TYPE_HEADER] = JSON_CONTENT_TYPE
        return await self.execute(
            method, url, RequestOptions(headers=headers, body=body, **options)
        )

    async def gather(self, *requests: Awaitable[Result]) -> list[Result]:
        """Await several requests concurrently.

        Returns:
            Results in argument order.
        """
        return list(await asyncio.gather(*requests))

    # Lifecycle

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def create_client(
    config: ClientConfig | None = None,
    *,
    transport: Transport | None = None,
    settings: ClientSettings | None = None,
    **overrides: Any,
) -> HttpClient:
    """Build a client from a config, settings, or keyword overrides.

    Args:
        config: Explicit defaults; takes precedence over settings.
        transport: Transport to use.
        settings: Environment settings used when no config is given.
        overrides: ``ClientConfig`` fields applied on top.

    Returns:
        Configured HttpClient.

    Examples:
        >>> client = create_client(base_url="https://api.example.com", max_concurrent=4)
    """
    if config is None:
        config = ClientConfig.from_settings(settings) if settings is not None else ClientConfig()
    if overrides:
        config = ClientConfig.model_validate({**config.model_dump(), **overrides})
    return HttpClient(config=config, transport=transport)
