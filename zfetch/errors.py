"""Error types for the request pipeline.

None of these are raised to callers of ``HttpClient``. They travel inside a
``FailureResult`` and are handed to the registered error handlers.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from zfetch.models import Response


class ErrorKind(str, Enum):
    """Classification of request failures.

    - TRANSPORT: The underlying send failed (DNS, connection, protocol)
    - ABORT: The attempt was cancelled by a timeout or an explicit signal
    - HTTP: A response arrived but its status indicates failure
    - HOOK: A user-registered hook raised or returned an unusable value
    """

    TRANSPORT = "TRANSPORT"
    ABORT = "ABORT"
    HTTP = "HTTP"
    HOOK = "HOOK"


class RequestError(Exception):
    """Base exception for request pipeline errors.

    Provides structured error information for logging and error handlers.
    """

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str) -> None:
        """Initialize the request error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging.

        Returns:
            Dictionary representation of the error.
        """
        return {"kind": self.kind.value, "message": self.message}


class TransportError(RequestError):
    """The transport could not complete the exchange."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        """Initialize the transport error.

        Args:
            message: Human-readable error message.
            cause: Underlying exception raised by the transport, if any.
        """
        super().__init__(message)
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result = super().to_dict()
        result["cause"] = type(self.cause).__name__ if self.cause else None
        return result


class AbortError(RequestError):
    """The attempt was cancelled before a response arrived.

    ``timed_out`` is True when the per-attempt timer fired, False when a
    user token or a cancel group fired.
    """

    kind = ErrorKind.ABORT

    def __init__(self, reason: object = None, timed_out: bool = False) -> None:
        """Initialize the abort error.

        Args:
            reason: Reason passed to ``cancel()`` or the timeout description.
            timed_out: Whether the abort was caused by the attempt timer.
        """
        label = "timed out" if timed_out else "aborted"
        message = f"Request {label}: {reason}" if reason is not None else f"Request {label}"
        super().__init__(message)
        self.reason = reason
        self.timed_out = timed_out

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result = super().to_dict()
        result["timed_out"] = self.timed_out
        return result


class HTTPError(RequestError):
    """A response was received with a failing status."""

    kind = ErrorKind.HTTP

    def __init__(
        self,
        status_code: int,
        status_text: str = "",
        response: "Response | None" = None,
    ) -> None:
        """Initialize the HTTP error.

        Args:
            status_code: HTTP status code of the response.
            status_text: Reason phrase of the response.
            response: The shaped response, after transforms and interceptors.
        """
        super().__init__(f"HTTP {status_code} {status_text}".rstrip())
        self.status_code = status_code
        self.status_text = status_text
        self.response = response

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result = super().to_dict()
        result["status_code"] = self.status_code
        return result


class HookError(RequestError):
    """A user-registered hook failed.

    Always swallowed at the faulting hook.
    """

    kind = ErrorKind.HOOK

    def __init__(self, hook_name: str, cause: BaseException | None = None) -> None:
        """Initialize the hook error.

        Args:
            hook_name: Name of the hook that failed.
            cause: Exception raised by the hook, if any.
        """
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Hook '{hook_name}' failed{detail}")
        self.hook_name = hook_name
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result = super().to_dict()
        result["hook_name"] = self.hook_name
        return result
