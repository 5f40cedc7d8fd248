"""Cancellation signals and their composition.

A signal is a small state machine that moves once from PENDING to FIRED.
The first writer wins; firing again has no effect. Derived signals fan in
from any number of sources and fire as soon as one of them does.
"""

import asyncio
from collections.abc import Callable, Iterable
from enum import Enum
from types import TracebackType

import structlog

from zfetch.constants import DEFAULT_CANCEL_REASON


logger = structlog.get_logger()

Listener = Callable[["CancelSignal"], None]


class SignalState(str, Enum):
    """State of a cancellation signal.

    - PENDING: Not fired yet
    - FIRED: Fired; terminal
    """

    PENDING = "PENDING"
    FIRED = "FIRED"


def _noop() -> None:
    """Remover returned for listeners that were invoked immediately."""


class CancelSignal:
    """Observable cancellation flag.

    Listeners run synchronously when the signal fires; coroutines can
    suspend on ``wait()``. Signals are meant to be used from the thread
    running the event loop.
    """

    def __init__(self, name: str = "signal") -> None:
        """Initialize the signal in the PENDING state.

        Args:
            name: Label used in logs.
        """
        self._name = name
        self._state = SignalState.PENDING
        self._reason: object = None
        self._listeners: list[Listener] = []
        self._waiters: list[asyncio.Future[object]] = []

    @property
    def name(self) -> str:
        """Get the signal label."""
        return self._name

    @property
    def state(self) -> SignalState:
        """Get the current state."""
        return self._state

    @property
    def fired(self) -> bool:
        """Check whether the signal has fired."""
        return self._state is SignalState.FIRED

    @property
    def reason(self) -> object:
        """Get the reason passed when the signal fired."""
        return self._reason

    def fire(self, reason: object = DEFAULT_CANCEL_REASON) -> bool:
        """Fire the signal.

        Args:
            reason: Cancellation reason handed to listeners and waiters.

        Returns:
            True if this call fired the signal, False if it had already fired.
        """
        if self._state is SignalState.FIRED:
            return False

        self._state = SignalState.FIRED
        self._reason = reason

        listeners, self._listeners = self._listeners, []
        waiters, self._waiters = self._waiters, []

        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(reason)
        for listener in listeners:
            listener(self)
        return True

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a callback invoked once when the signal fires.

        If the signal has already fired the callback runs immediately.

        Args:
            listener: Callable receiving this signal.

        Returns:
            Function that unregisters the listener.
        """
        if self.fired:
            listener(self)
            return _noop

        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def wait(self) -> object:
        """Suspend until the signal fires.

        Returns:
            The cancellation reason.
        """
        if self.fired:
            return self._reason

        waiter: asyncio.Future[object] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, state={self._state.value})"


class TimeoutSignal(CancelSignal):
    """Signal fired by an event-loop timer.

    A timeout of 0 never arms, leaving the signal inert.
    """

    def __init__(self, timeout_ms: int) -> None:
        """Initialize the timeout signal without arming it.

        Args:
            timeout_ms: Delay in milliseconds; 0 disables the timer.
        """
        super().__init__(name="timeout")
        self._timeout_ms = timeout_ms
        self._handle: asyncio.TimerHandle | None = None

    @property
    def timeout_ms(self) -> int:
        """Get the configured timeout in milliseconds."""
        return self._timeout_ms

    @property
    def armed(self) -> bool:
        """Check whether the timer is currently scheduled."""
        return self._handle is not None and not self.fired

    def arm(self) -> "TimeoutSignal":
        """Schedule the timer on the running loop.

        Returns:
            This signal, for chaining.
        """
        if self._timeout_ms > 0 and self._handle is None and not self.fired:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(
                self._timeout_ms / 1000.0,
                self.fire,
                f"timeout of {self._timeout_ms}ms exceeded",
            )
        return self

    def disarm(self) -> None:
        """Cancel the timer so it can no longer fire."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class ComposedSignal(CancelSignal):
    """Signal derived from several sources; the first to fire wins.

    Sources stay independently observable. ``close()`` detaches from the
    sources so long-lived signals (cancel groups) do not accumulate
    listeners.
    """

    def __init__(
        self,
        sources: Iterable[CancelSignal | None],
        name: str = "composed",
    ) -> None:
        """Initialize and subscribe to every non-None source.

        Args:
            sources: Constituent signals; None entries are ignored.
            name: Label used in logs.
        """
        super().__init__(name=name)
        self._sources = [source for source in sources if source is not None]
        self._source: CancelSignal | None = None
        self._removers: list[Callable[[], None]] = []

        for source in self._sources:
            self._removers.append(source.add_listener(self._on_source_fired))
            if self.fired:
                break

    @property
    def sources(self) -> list[CancelSignal]:
        """Get the constituent signals."""
        return list(self._sources)

    @property
    def source(self) -> CancelSignal | None:
        """Get the source that fired first, if any."""
        return self._source

    def _on_source_fired(self, source: CancelSignal) -> None:
        if not self.fired:
            self._source = source
            self.fire(source.reason)

    def close(self) -> None:
        """Detach from all sources."""
        for remove in self._removers:
            remove()
        self._removers.clear()

    def __enter__(self) -> "ComposedSignal":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def compose(*signals: CancelSignal | None) -> ComposedSignal:
    """Merge cancellation sources into one derived signal.

    Args:
        signals: Sources to merge; None entries are skipped.

    Returns:
        Derived signal that fires when any source fires.
    """
    return ComposedSignal(signals)


class CancelToken:
    """Caller-owned cancellation handle for a single request."""

    def __init__(self, name: str = "token") -> None:
        """Initialize the token with a fresh signal.

        Args:
            name: Label used in logs.
        """
        self._signal = CancelSignal(name=name)

    @property
    def signal(self) -> CancelSignal:
        """Get the signal to attach to requests."""
        return self._signal

    @property
    def cancelled(self) -> bool:
        """Check whether the token has been cancelled."""
        return self._signal.fired

    def cancel(self, reason: object = DEFAULT_CANCEL_REASON) -> bool:
        """Cancel every request holding this token's signal.

        Args:
            reason: Cancellation reason.

        Returns:
            True on the first call, False afterwards.
        """
        fired = self._signal.fire(reason)
        if fired:
            logger.debug("signal_cancelled", signal=self._signal.name, reason=str(reason))
        return fired


class CancelGroup(CancelToken):
    """Cancellation handle shared by a set of requests."""

    def __init__(self, name: str = "group") -> None:
        """Initialize the group with a fresh signal.

        Args:
            name: Label used in logs.
        """
        super().__init__(name=name)
