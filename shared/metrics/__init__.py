"""Metrics module using Prometheus."""

from .prometheus_metrics import CONTENT_TYPE_LATEST, ApiMetrics

__all__ = [
    "ApiMetrics",
    "CONTENT_TYPE_LATEST",
]
