"""Transport boundary: the primitive "send request, get response" call.

The pipeline treats the transport as an opaque capability. Any object with
an async ``send(request, signal)`` method conforms; ``HttpxTransport`` is
the default, built on ``httpx.AsyncClient``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Protocol

import httpx
import structlog

from zfetch.constants import CONTENT_TYPE_HEADER
from zfetch.errors import TransportError
from zfetch.models import is_ok_status
from zfetch.signals import CancelSignal


logger = structlog.get_logger()


@dataclass(frozen=True)
class TransportRequest:
    """One physical request handed to the transport.

    Attributes:
        url: Fully resolved URL.
        method: Upper-case HTTP method.
        headers: Request headers.
        body: Serialized body (str/bytes), a form mapping, or None.
    """

    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class TransportResponse:
    """Raw reply from the transport.

    Attributes:
        status_code: HTTP status code.
        status_text: Reason phrase.
        headers: Response headers.
        content: Full response body.
    """

    status_code: int
    status_text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def ok(self) -> bool:
        """Check if the status is 2xx."""
        return is_ok_status(self.status_code)

    def header(self, name: str, default: str = "") -> str:
        """Get a header value, case-insensitively."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    @property
    def content_type(self) -> str:
        """Get the Content-Type header, or an empty string."""
        return self.header(CONTENT_TYPE_HEADER)


class Transport(Protocol):
    """Protocol for transports.

    Allows dependency injection of a stub transport for testing.
    """

    async def send(
        self,
        request: TransportRequest,
        signal: CancelSignal,
    ) -> TransportResponse:
        """Perform one request/response exchange.

        Args:
            request: Request to send.
            signal: Fires when the attempt is cancelled or times out.
                The caller also abandons the call when it fires, so
                honoring it is optional.

        Returns:
            The transport response, whatever its status.

        Raises:
            TransportError: If no response could be obtained.
        """
        ...


class HttpxTransport:
    """Transport backed by ``httpx.AsyncClient``.

    Connection pooling belongs to the httpx client. Timeouts are enforced
    by the retry executor, so an owned client is created without its own.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        follow_redirects: bool = True,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Client to use; one is created (and owned) if omitted.
            follow_redirects: Redirect policy for an owned client.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=follow_redirects,
            timeout=None,
        )
        self._log = logger.bind(component="transport")

    @staticmethod
    def _body_kwargs(body: Any) -> dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, str | bytes):
            return {"content": body}
        if isinstance(body, Mapping):
            return {"data": dict(body)}
        return {"content": str(body)}

    async def send(
        self,
        request: TransportRequest,
        signal: CancelSignal,  # noqa: ARG002
    ) -> TransportResponse:
        """Send a request through httpx.

        Args:
            request: Request to send.
            signal: Unused; the executor abandons the call when it fires.

        Returns:
            TransportResponse with the fully read body.

        Raises:
            TransportError: On any httpx transport failure.
        """
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=request.headers,
                **self._body_kwargs(request.body),
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}", cause=e) from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection failed: {e}", cause=e) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Transport failed: {e}", cause=e) from e

        return TransportResponse(
            status_code=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            content=response.content,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport owns it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
