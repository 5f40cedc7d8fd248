"""Observability module for logging."""

from zfetch.observability.logging import configure_logging, get_logger, request_context


__all__ = [
    "configure_logging",
    "get_logger",
    "request_context",
]
