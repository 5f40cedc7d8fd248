"""Best-effort hook chains for interceptors and transforms.

A chain is a fold over ``(name, fn)`` entries. Each hook receives the
current value (plus chain-specific context) and may return a replacement.
A falsy return means "no change". A hook that raises is skipped and the
fold continues with the prior value; the failure is reported alongside
the result instead of being raised.
"""

import inspect
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from zfetch.errors import HookError
from zfetch.metrics import ClientMetrics
from zfetch.models import RequestConfig, Response


logger = structlog.get_logger()

T = TypeVar("T")

Hook = Callable[..., Any]


@dataclass(frozen=True)
class HookEntry:
    """Registered hook.

    Attributes:
        name: Label used in logs.
        fn: Sync or async callable.
    """

    name: str
    fn: Hook


@dataclass(frozen=True)
class HookFailure:
    """Record of a hook that was skipped.

    Attributes:
        stage: Chain the hook belongs to.
        name: Hook label.
        error: Wrapped failure.
    """

    stage: str
    name: str
    error: HookError


@dataclass(frozen=True)
class HookRun(Generic[T]):
    """Outcome of folding a value through a chain.

    Attributes:
        value: Final value.
        failures: Hooks that were skipped, in order.
    """

    value: T
    failures: tuple[HookFailure, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        """Check whether every hook ran cleanly."""
        return not self.failures


def _hook_name(fn: Hook) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)


class HookChain(Generic[T]):
    """Ordered chain of hooks applied in registration order."""

    def __init__(
        self,
        stage: str,
        expects: type | None = None,
        validate: Callable[[Any], Any] | None = None,
    ) -> None:
        """Initialize an empty chain.

        Args:
            stage: Chain label used in logs and failure records.
            expects: If set, replacements must be instances of this type.
            validate: If set, replacements are passed through it and the
                returned value is kept; raising rejects the replacement.
        """
        self._stage = stage
        self._expects = expects
        self._validate = validate
        self._entries: list[HookEntry] = []

    @property
    def stage(self) -> str:
        """Get the chain label."""
        return self._stage

    def add(self, fn: Hook, name: str | None = None) -> HookEntry:
        """Append a hook to the chain.

        Args:
            fn: Sync or async callable.
            name: Optional label; defaults to the callable's qualified name.

        Returns:
            The registered entry.

        Raises:
            TypeError: If ``fn`` is not callable.
        """
        if not callable(fn):
            msg = f"{self._stage} hook must be callable, got {type(fn).__name__}"
            raise TypeError(msg)
        entry = HookEntry(name=name or _hook_name(fn), fn=fn)
        self._entries.append(entry)
        return entry

    def clear(self) -> None:
        """Remove every hook."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HookEntry]:
        return iter(list(self._entries))

    async def apply(self, value: T, *context: Any) -> HookRun[T]:
        """Fold ``value`` through every hook.

        Args:
            value: Starting value.
            context: Extra positional arguments passed to every hook.

        Returns:
            Final value and the failures encountered.
        """
        current = value
        failures: list[HookFailure] = []

        for entry in list(self._entries):
            try:
                replacement = entry.fn(current, *context)
                if inspect.isawaitable(replacement):
                    replacement = await replacement
                # Truthiness of a foreign object can raise too.
                if not replacement:
                    continue
                if self._expects is not None and not isinstance(replacement, self._expects):
                    msg = f"expected {self._expects.__name__}, got {type(replacement).__name__}"
                    raise TypeError(msg)
                if self._validate is not None:
                    replacement = self._validate(replacement)
            except Exception as e:  # noqa: BLE001
                failures.append(
                    HookFailure(self._stage, entry.name, HookError(entry.name, e))
                )
                continue

            current = replacement

        return HookRun(value=current, failures=tuple(failures))


def _revalidate_config(config: RequestConfig) -> RequestConfig:
    # model_copy(update=...) skips field validation.
    return RequestConfig.model_validate(dict(config))


class InterceptorPipeline:
    """Request-config and response interceptor chains."""

    def __init__(self) -> None:
        """Initialize empty chains."""
        self.request: HookChain[RequestConfig] = HookChain(
            "request_interceptor",
            expects=RequestConfig,
            validate=_revalidate_config,
        )
        self.response: HookChain[Response] = HookChain(
            "response_interceptor", expects=Response
        )

    def use(self, request: Hook | None = None, response: Hook | None = None) -> None:
        """Register a request and/or response interceptor.

        Args:
            request: Called as ``fn(config)``; may return a new config.
            response: Called as ``fn(response)``; may return a new response.
        """
        if request is not None:
            self.request.add(request)
        if response is not None:
            self.response.add(response)


class TransformPipeline:
    """Outgoing-body and incoming-data transform chains."""

    def __init__(self) -> None:
        """Initialize empty chains."""
        self.request: HookChain[Any] = HookChain("transform_request")
        self.response: HookChain[Any] = HookChain("transform_response")


def report_failures(
    failures: tuple[HookFailure, ...],
    log: structlog.stdlib.BoundLogger,
) -> None:
    """Log and count skipped hooks.

    Args:
        failures: Failures returned by ``HookChain.apply``.
        log: Bound logger carrying request context.
    """
    metrics = ClientMetrics.get_instance()
    for failure in failures:
        metrics.record_hook_failure()
        log.warning(
            "hook_failed",
            stage=failure.stage,
            hook=failure.name,
            error=failure.error.message,
        )
