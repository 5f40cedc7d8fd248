"""Retry engine: one logical send as a bounded series of physical attempts."""

import asyncio
import time
from dataclasses import dataclass

import structlog

from zfetch.errors import AbortError, TransportError
from zfetch.metrics import ClientMetrics
from zfetch.models import RequestConfig
from zfetch.redact import redact_url_credentials
from zfetch.signals import TimeoutSignal, compose
from zfetch.transport import Transport, TransportRequest, TransportResponse


logger = structlog.get_logger()


@dataclass(frozen=True)
class ExecutionOutcome:
    """Settlement of a logical send.

    Exactly one of ``response`` and ``error`` is set. A response may carry
    a failing status; interpreting it is the caller's job.

    Attributes:
        response: Final transport response, if one was received.
        error: Transport or abort failure, if no response was kept.
        duration_ms: Wall time across all attempts and backoff delays.
        attempts: Number of physical attempts made.
    """

    response: TransportResponse | None
    error: TransportError | AbortError | None
    duration_ms: int
    attempts: int

    @property
    def ok(self) -> bool:
        """Check whether a response was received."""
        return self.error is None


def _consume(task: "asyncio.Future[TransportResponse]") -> None:
    """Retrieve the outcome of an abandoned send so it is never reported."""
    if not task.cancelled():
        task.exception()


def _unwrap(send: "asyncio.Future[TransportResponse]") -> TransportResponse:
    if send.cancelled():
        msg = "Transport call was cancelled"
        raise TransportError(msg)
    exc = send.exception()
    if exc is None:
        return send.result()
    if isinstance(exc, TransportError | AbortError):
        raise exc
    raise TransportError(f"Unexpected transport error: {exc}", cause=exc) from exc


class RetryExecutor:
    """Drives transport attempts with timeout, backoff and cancellation.

    Each attempt races the transport call against a derived signal composed
    of the user signal, the group signal and a fresh per-attempt timer.
    Timeouts and transport errors are retried; explicit cancellation never
    is, and it also cuts a pending backoff delay short.
    """

    def __init__(self, transport: Transport) -> None:
        """Initialize the executor.

        Args:
            transport: Transport used for every attempt.
        """
        self._transport = transport
        self._metrics = ClientMetrics.get_instance()
        self._log = logger.bind(component="retry")

    async def execute(self, config: RequestConfig) -> ExecutionOutcome:
        """Run one logical send.

        Args:
            config: Frozen request configuration.

        Returns:
            ExecutionOutcome with the final response or failure.
        """
        policy = config.retry_policy
        request = TransportRequest(
            url=config.url,
            method=config.method,
            headers=dict(config.headers),
            body=config.body,
        )
        log = self._log.bind(method=config.method, url=redact_url_credentials(config.url))
        start_ns = time.perf_counter_ns()
        attempt = 1

        def settle(
            response: TransportResponse | None,
            error: TransportError | AbortError | None,
        ) -> ExecutionOutcome:
            duration_ms = (time.perf_counter_ns() - start_ns) // 1_000_000
            return ExecutionOutcome(
                response=response,
                error=error,
                duration_ms=int(duration_ms),
                attempts=attempt,
            )

        while True:
            error: TransportError | AbortError | None = None
            status_code: int | None = None

            try:
                response = await self._attempt(request, config, log.bind(attempt=attempt))
            except AbortError as e:
                if not e.timed_out:
                    return settle(None, e)
                error = e
            except TransportError as e:
                error = e
            else:
                if not policy.should_retry_status(response.status_code, attempt):
                    return settle(response, None)
                status_code = response.status_code

            if error is not None:
                if config.cancelled:
                    return settle(None, self._external_abort(config))
                if not policy.can_retry(attempt):
                    return settle(None, error)

            delay_ms = policy.get_delay_ms(attempt)
            self._metrics.record_retry()
            log.debug(
                "retry_attempt",
                attempt=attempt + 1,
                delay_ms=delay_ms,
                max_retries=policy.max_retries,
                status_code=status_code,
                error=error.message if error else None,
            )

            aborted = await self._wait_backoff(delay_ms, config)
            if aborted is not None:
                return settle(None, aborted)
            attempt += 1

    async def _attempt(
        self,
        request: TransportRequest,
        config: RequestConfig,
        log: structlog.stdlib.BoundLogger,
    ) -> TransportResponse:
        """Execute a single transport call under a derived signal.

        Args:
            request: Request to send.
            config: Request configuration (signals and timeout).
            log: Bound logger.

        Returns:
            The transport response.

        Raises:
            AbortError: If the derived signal fired first.
            TransportError: If the transport failed.
        """
        timer = TimeoutSignal(config.timeout_ms)
        with compose(config.signal, config.group_signal, timer) as signal:
            if signal.fired:
                raise AbortError(signal.reason)

            timer.arm()
            send = asyncio.ensure_future(self._transport.send(request, signal))
            abort = asyncio.ensure_future(signal.wait())
            try:
                await asyncio.wait({send, abort}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                timer.disarm()
                abort.cancel()
                if not send.done():
                    send.cancel()
                    send.add_done_callback(_consume)

            if not signal.fired or (send.done() and not send.cancelled()):
                return _unwrap(send)

            timed_out = signal.source is timer
            log.debug("attempt_aborted", timed_out=timed_out, reason=str(signal.reason))
            raise AbortError(signal.reason, timed_out=timed_out)

    @staticmethod
    def _external_abort(config: RequestConfig) -> AbortError:
        for source in (config.signal, config.group_signal):
            if source is not None and source.fired:
                return AbortError(source.reason)
        return AbortError()

    async def _wait_backoff(
        self,
        delay_ms: int,
        config: RequestConfig,
    ) -> AbortError | None:
        """Sleep between attempts unless the user or group cancels.

        Args:
            delay_ms: Delay in milliseconds.
            config: Request configuration holding the external signals.

        Returns:
            AbortError if cancelled during the delay, else None.
        """
        with compose(config.signal, config.group_signal) as external:
            if external.fired:
                return AbortError(external.reason)
            if not external.sources:
                await asyncio.sleep(delay_ms / 1000.0)
                return None
            try:
                await asyncio.wait_for(external.wait(), timeout=delay_ms / 1000.0)
            except asyncio.TimeoutError:
                return None
            return AbortError(external.reason)

