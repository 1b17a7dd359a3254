"""Observability package for logging and metrics."""

from agentkyc_core.observability.logging import (
    JsonFormatter,
    KeyValueFormatter,
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from agentkyc_core.observability.metrics import MetricsCollector, get_collector

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "KeyValueFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "MetricsCollector",
    "get_collector",
]
