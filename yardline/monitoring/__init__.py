"""Logging and Prometheus metrics."""

from .logging import configure_logging
from .metrics import Metrics, get_metrics

__all__ = ["Metrics", "configure_logging", "get_metrics"]
