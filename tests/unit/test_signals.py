"""Unit tests for cancellation signals."""

import asyncio

import pytest

from zfetch.signals import (
    CancelGroup,
    CancelSignal,
    CancelToken,
    SignalState,
    TimeoutSignal,
    compose,
)


class TestCancelSignal:
    """Tests for the base signal."""

    def test_starts_pending(self) -> None:
        """Test a new signal has not fired."""
        signal = CancelSignal()

        assert signal.state is SignalState.PENDING
        assert signal.fired is False
        assert signal.reason is None

    def test_fire_once(self) -> None:
        """Test only the first fire takes effect."""
        signal = CancelSignal()

        assert signal.fire("first") is True
        assert signal.fire("second") is False
        assert signal.reason == "first"
        assert signal.state is SignalState.FIRED

    def test_listener_called_on_fire(self) -> None:
        """Test listeners receive the signal."""
        signal = CancelSignal()
        seen: list[object] = []
        signal.add_listener(lambda s: seen.append(s.reason))

        signal.fire("stop")

        assert seen == ["stop"]

    def test_listener_called_immediately_if_fired(self) -> None:
        """Test a late listener still runs."""
        signal = CancelSignal()
        signal.fire()
        seen: list[CancelSignal] = []

        signal.add_listener(seen.append)

        assert seen == [signal]

    def test_removed_listener_not_called(self) -> None:
        """Test the remover detaches a listener."""
        signal = CancelSignal()
        seen: list[CancelSignal] = []
        remove = signal.add_listener(seen.append)

        remove()
        signal.fire()

        assert seen == []

    @pytest.mark.asyncio
    async def test_wait_resolves_with_reason(self) -> None:
        """Test waiters wake up when the signal fires."""
        signal = CancelSignal()
        waiter = asyncio.ensure_future(signal.wait())
        await asyncio.sleep(0)

        signal.fire("done")

        assert await waiter == "done"

    @pytest.mark.asyncio
    async def test_wait_returns_immediately_if_fired(self) -> None:
        """Test waiting on a fired signal does not block."""
        signal = CancelSignal()
        signal.fire("early")

        assert await asyncio.wait_for(signal.wait(), timeout=1) == "early"


class TestTimeoutSignal:
    """Tests for the timer-backed signal."""

    @pytest.mark.asyncio
    async def test_fires_after_timeout(self) -> None:
        """Test the timer fires with a timeout reason."""
        signal = TimeoutSignal(10).arm()

        reason = await asyncio.wait_for(signal.wait(), timeout=1)

        assert signal.fired is True
        assert reason == "timeout of 10ms exceeded"

    @pytest.mark.asyncio
    async def test_zero_never_arms(self) -> None:
        """Test a zero timeout leaves the signal inert."""
        signal = TimeoutSignal(0).arm()

        await asyncio.sleep(0.02)

        assert signal.armed is False
        assert signal.fired is False

    @pytest.mark.asyncio
    async def test_disarm_prevents_firing(self) -> None:
        """Test a disarmed timer never fires."""
        signal = TimeoutSignal(10).arm()
        assert signal.armed is True

        signal.disarm()
        await asyncio.sleep(0.03)

        assert signal.fired is False


class TestCompose:
    """Tests for composing signals."""

    def test_fires_when_any_source_fires(self) -> None:
        """Test the derived signal follows its sources."""
        a, b = CancelSignal("a"), CancelSignal("b")
        derived = compose(a, b)

        b.fire("from b")

        assert derived.fired is True
        assert derived.reason == "from b"
        assert derived.source is b

    def test_first_source_wins(self) -> None:
        """Test later sources do not overwrite the winner."""
        a, b = CancelSignal("a"), CancelSignal("b")
        derived = compose(a, b)

        a.fire("a")
        b.fire("b")

        assert derived.source is a
        assert derived.reason == "a"

    def test_already_fired_source(self) -> None:
        """Test composing a fired source yields a fired signal."""
        a = CancelSignal()
        a.fire("gone")

        derived = compose(None, a)

        assert derived.fired is True
        assert derived.reason == "gone"

    def test_none_sources_ignored(self) -> None:
        """Test None entries are skipped."""
        derived = compose(None, None)

        assert derived.sources == []
        assert derived.fired is False

    def test_firing_derived_leaves_sources_alone(self) -> None:
        """Test a derived signal does not fire its sources."""
        a = CancelSignal()
        derived = compose(a)

        derived.fire()

        assert a.fired is False

    def test_close_detaches(self) -> None:
        """Test a closed composition no longer follows its sources."""
        a = CancelSignal()
        with compose(a) as derived:
            pass

        a.fire()

        assert derived.fired is False


class TestCancelToken:
    """Tests for tokens and groups."""

    def test_cancel_fires_signal(self) -> None:
        """Test cancelling a token fires its signal."""
        token = CancelToken()

        assert token.cancel("user") is True
        assert token.cancelled is True
        assert token.signal.reason == "user"

    def test_cancel_twice(self) -> None:
        """Test the second cancel is a no-op."""
        token = CancelToken()
        token.cancel()

        assert token.cancel() is False

    def test_default_reason(self) -> None:
        """Test the default cancellation reason."""
        group = CancelGroup()
        group.cancel()

        assert group.signal.reason == "cancelled"
        assert group.signal.name == "group"
