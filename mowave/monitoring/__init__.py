"""Logging, metrics and health checks."""
from .logging import setup_logging
from .metrics import MetricsCollector, metrics

__all__ = ["MetricsCollector", "metrics", "setup_logging"]
