"""Unit tests for metrics and structured logging."""

import io
import json
import logging

import structlog

from zfetch.errors import ErrorKind
from zfetch.metrics import ClientMetrics
from zfetch.observability import configure_logging, get_logger, request_context


class TestClientMetrics:
    """Tests for the metrics singleton."""

    def test_singleton(self) -> None:
        """Test get_instance returns the same object until reset."""
        first = ClientMetrics.get_instance()

        assert ClientMetrics.get_instance() is first
        ClientMetrics.reset()
        assert ClientMetrics.get_instance() is not first

    def test_records(self) -> None:
        """Test counters accumulate."""
        metrics = ClientMetrics.get_instance()

        metrics.record_request(200)
        metrics.record_request(200)
        metrics.record_request(503)
        metrics.record_failure(ErrorKind.HTTP)
        metrics.record_cache_hit()
        metrics.record_cache_miss()
        metrics.record_active(3)
        metrics.record_active(1)

        data = metrics.to_dict()
        assert data["http_requests_total"] == {200: 2, 503: 1}
        assert data["http_failures_total"] == {"HTTP": 1}
        assert data["http_cache_hits_total"] == 1
        assert data["http_cache_misses_total"] == 1
        assert data["queue_peak_active"] == 3

    def test_avg_duration(self) -> None:
        """Test average duration per request."""
        metrics = ClientMetrics.get_instance()
        assert metrics.avg_duration_ms == 0.0

        metrics.record_request(200)
        metrics.record_request(200)
        metrics.record_duration(10.0)
        metrics.record_duration(30.0)

        assert metrics.avg_duration_ms == 20.0


class TestLogging:
    """Tests for structlog configuration."""

    def teardown_method(self) -> None:
        """Restore structlog defaults."""
        structlog.reset_defaults()

    def test_json_output_includes_request_id(self) -> None:
        """Test bound request ids appear in JSON log lines."""
        output = io.StringIO()
        configure_logging(level="DEBUG", output=output, json_format=True)

        with request_context("req-1"):
            get_logger().info("request_complete", status_code=200)
        get_logger().info("outside")

        lines = [json.loads(line) for line in output.getvalue().splitlines()]
        assert lines[0]["event"] == "request_complete"
        assert lines[0]["request_id"] == "req-1"
        assert lines[0]["level"] == "info"
        assert "request_id" not in lines[1]

    def test_level_filters(self) -> None:
        """Test messages below the level are dropped."""
        output = io.StringIO()
        configure_logging(level=logging.WARNING, output=output)

        get_logger().debug("hidden")
        get_logger().warning("shown")

        assert "hidden" not in output.getvalue()
        assert "shown" in output.getvalue()
