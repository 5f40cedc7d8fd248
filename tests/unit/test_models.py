"""Unit tests for request and result models."""

import pytest
from pydantic import ValidationError

from zfetch.errors import AbortError, ErrorKind, HookError, HTTPError, TransportError
from zfetch.models import (
    FailureResult,
    RequestConfig,
    RequestOptions,
    Response,
    is_ok_status,
)
from zfetch.signals import CancelGroup, CancelSignal


class TestStatus:
    """Tests for status classification."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [(199, False), (200, True), (204, True), (299, True), (300, False), (503, False)],
    )
    def test_is_ok_status(self, status: int, expected: bool) -> None:
        """Test only 2xx is ok."""
        assert is_ok_status(status) is expected


class TestRequestOptions:
    """Tests for per-call options."""

    def test_defaults(self) -> None:
        """Test options default to client fallbacks."""
        options = RequestOptions()

        assert options.timeout is None
        assert options.retry == 0
        assert options.retry_delay is None
        assert options.cache == 0
        assert options.signal is None

    def test_accepts_signal_and_group(self) -> None:
        """Test cancellation handles are accepted."""
        signal = CancelSignal()
        group = CancelGroup()

        options = RequestOptions(signal=signal, group=group)

        assert options.signal is signal
        assert options.group is group

    def test_unknown_field_rejected(self) -> None:
        """Test typos fail at construction."""
        with pytest.raises(ValidationError):
            RequestOptions(retries=3)  # type: ignore[call-arg]

    def test_negative_timeout_rejected(self) -> None:
        """Test timeouts are non-negative."""
        with pytest.raises(ValidationError):
            RequestOptions(timeout=-1)

    @pytest.mark.parametrize("field", ["retry_delay", "retry"])
    def test_retry_fields_capped(self, field: str) -> None:
        """Test retry knobs cannot exceed what a retry policy accepts."""
        too_large = {"retry_delay": 600_001, "retry": 101}[field]

        with pytest.raises(ValidationError):
            RequestOptions(**{field: too_large})


class TestRequestConfig:
    """Tests for resolved request configuration."""

    def test_retry_delay_capped(self) -> None:
        """Test an over-long base delay fails at construction, not at send."""
        with pytest.raises(ValidationError):
            RequestConfig(url="https://example.com", method="GET", retry_base_delay_ms=700_000)

    def test_max_bounds_build_policy(self) -> None:
        """Test the largest accepted values still build a retry policy."""
        config = RequestConfig(
            url="https://example.com",
            method="GET",
            max_retries=100,
            retry_base_delay_ms=600_000,
        )

        assert config.retry_policy.max_attempts == 101

    def test_is_frozen(self) -> None:
        """Test configs cannot be mutated in place."""
        config = RequestConfig(url="https://example.com", method="GET")

        with pytest.raises(ValidationError):
            config.url = "https://other.example.com"  # type: ignore[misc]

    def test_retry_policy_built_from_fields(self) -> None:
        """Test the retry policy mirrors the config."""
        config = RequestConfig(
            url="https://example.com",
            method="GET",
            max_retries=2,
            retry_base_delay_ms=10,
            retryable_statuses=frozenset({500}),
        )

        policy = config.retry_policy

        assert policy.max_retries == 2
        assert policy.base_delay_ms == 10
        assert policy.retry_on == frozenset({500})

    def test_cancelled_by_group(self) -> None:
        """Test the group signal counts as cancellation."""
        group = CancelGroup()
        config = RequestConfig(url="u", method="GET", group_signal=group.signal)

        assert config.cancelled is False
        group.cancel()
        assert config.cancelled is True


class TestResults:
    """Tests for response and failure values."""

    def test_failure_kind(self) -> None:
        """Test failures expose their error classification."""
        config = RequestConfig(url="u", method="GET")

        failure = FailureResult(error=AbortError("x"), config=config)

        assert failure.ok is False
        assert failure.status_code == 0
        assert failure.kind is ErrorKind.ABORT

    def test_response_copy_marks_cache(self) -> None:
        """Test responses are replaced rather than mutated."""
        config = RequestConfig(url="u", method="GET")
        response = Response(ok=True, status_code=200, data={"a": 1}, config=config)

        copy = response.model_copy(update={"from_cache": True})

        assert copy.from_cache is True
        assert response.from_cache is False


class TestErrors:
    """Tests for error classification and messages."""

    def test_abort_message(self) -> None:
        """Test abort messages distinguish timeouts."""
        assert AbortError("bye").message == "Request aborted: bye"
        assert AbortError("slow", timed_out=True).message == "Request timed out: slow"
        assert AbortError().message == "Request aborted"

    def test_http_error(self) -> None:
        """Test HTTP errors carry the status."""
        error = HTTPError(404, "Not Found")

        assert error.kind is ErrorKind.HTTP
        assert error.message == "HTTP 404 Not Found"
        assert error.to_dict() == {"kind": "HTTP", "message": "HTTP 404 Not Found", "status_code": 404}

    def test_transport_error_cause(self) -> None:
        """Test transport errors report their cause type."""
        error = TransportError("refused", cause=ConnectionRefusedError())

        assert error.to_dict()["cause"] == "ConnectionRefusedError"

    def test_hook_error(self) -> None:
        """Test hook errors name the hook."""
        error = HookError("auth", ValueError("bad"))

        assert error.kind is ErrorKind.HOOK
        assert error.message == "Hook 'auth' failed: bad"
