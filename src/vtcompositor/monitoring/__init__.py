"""
Monitoring Module

Metrics collection for composite and validation runs.
"""

from .metrics import MetricsCollector, MetricValue

__all__ = [
    "MetricsCollector",
    "MetricValue"
]
