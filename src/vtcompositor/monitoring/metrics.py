"""
Metrics Collection

Counters and histograms for composite and validation runs. Values are kept
in a local buffer (for summaries and tests) and mirrored into a per-collector
Prometheus registry that can be scraped or exported in text format.
"""

import time
import threading
from typing import Dict, List, Optional, Any, Union, Callable
from dataclasses import dataclass, field
from collections import defaultdict, deque
from datetime import datetime
import json
import statistics

import structlog
from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest


@dataclass
class MetricValue:
    """Represents a single metric value with metadata."""
    name: str
    value: Union[int, float]
    timestamp: datetime
    labels: Dict[str, str] = field(default_factory=dict)
    unit: str = ""


class MetricsCollector:
    """
    Metrics collection for the tile engine.

    Metric families are created on first use; label names are fixed by the
    first call for a given metric name.
    """

    def __init__(
        self,
        enable_prometheus: bool = True,
        namespace: str = "vtcompositor",
        buffer_size: int = 10000
    ):
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Mirror metrics into a Prometheus registry
            namespace: Prefix applied to Prometheus metric names
            buffer_size: Number of recent metric values kept in memory
        """
        self.enable_prometheus = enable_prometheus
        self.namespace = namespace

        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        self.metrics_buffer = deque(maxlen=buffer_size)
        self.counters = defaultdict(float)
        self.histograms = defaultdict(list)

        self.lock = threading.RLock()

        self.prometheus_registry = CollectorRegistry()
        self.prometheus_counters = {}
        self.prometheus_histograms = {}

    @classmethod
    def from_config(cls, config) -> "MetricsCollector":
        return cls(
            enable_prometheus=config.metrics.enable_prometheus,
            namespace=config.metrics.namespace
        )

    def _create_prometheus_metric(
        self,
        metric_type: str,
        name: str,
        labels: List[str]
    ) -> Union[Counter, Histogram]:
        """Create a Prometheus metric in this collector's registry."""
        description = name.replace("_", " ")
        if metric_type == "counter":
            metric = Counter(
                name, description, labels,
                namespace=self.namespace,
                registry=self.prometheus_registry
            )
            self.prometheus_counters[name] = metric
        else:
            metric = Histogram(
                name, description, labels,
                namespace=self.namespace,
                registry=self.prometheus_registry
            )
            self.prometheus_histograms[name] = metric
        return metric

    def _record(self, name: str, value: Union[int, float], labels: Dict[str, str], unit: str = "") -> None:
        self.metrics_buffer.append(
            MetricValue(
                name=name,
                value=value,
                timestamp=datetime.utcnow(),
                labels=labels,
                unit=unit
            )
        )

    def increment_counter(
        self,
        name: str,
        value: Union[int, float] = 1,
        labels: Dict[str, str] = None
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Value to increment by
            labels: Metric labels
        """
        if labels is None:
            labels = {}

        with self.lock:
            self._record(name, value, labels)
            self.counters[name] += value

            if self.enable_prometheus:
                metric = self.prometheus_counters.get(name)
                if metric is None:
                    metric = self._create_prometheus_metric("counter", name, sorted(labels))
                if labels:
                    metric.labels(**labels).inc(value)
                else:
                    metric.inc(value)

    def record_histogram(
        self,
        name: str,
        value: Union[int, float],
        labels: Dict[str, str] = None
    ) -> None:
        """
        Record a histogram observation.

        Args:
            name: Metric name
            value: Value to record
            labels: Metric labels
        """
        if labels is None:
            labels = {}

        with self.lock:
            self._record(name, value, labels)
            self.histograms[name].append(value)

            if self.enable_prometheus:
                metric = self.prometheus_histograms.get(name)
                if metric is None:
                    metric = self._create_prometheus_metric("histogram", name, sorted(labels))
                if labels:
                    metric.labels(**labels).observe(value)
                else:
                    metric.observe(value)

    def record_timing(self, name: str, start_time: float, labels: Dict[str, str] = None) -> float:
        """Record the seconds elapsed since ``start_time`` and return them."""
        duration = time.time() - start_time
        self.record_histogram(name, duration, labels)
        return duration

    def time_function(self, name: str, labels: Dict[str, str] = None):
        """Decorator recording the wall time of every call."""
        def decorator(func: Callable) -> Callable:
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timing(name, start_time, labels)
            return wrapper
        return decorator

    def get_counter(self, name: str) -> float:
        with self.lock:
            return self.counters.get(name, 0.0)

    def get_metric_summary(self, metric_name: str) -> Dict[str, Any]:
        """Summary statistics for a histogram metric."""
        with self.lock:
            values = list(self.histograms.get(metric_name, []))

        if not values:
            return {'metric_name': metric_name, 'count': 0}

        return {
            'metric_name': metric_name,
            'count': len(values),
            'min': min(values),
            'max': max(values),
            'mean': statistics.mean(values),
            'total': sum(values)
        }

    def export_metrics(self, format: str = "json") -> Union[str, Dict[str, Any]]:
        """
        Export collected metrics.

        Args:
            format: ``json`` for a dictionary snapshot, ``prometheus`` for the
                text exposition format

        Returns:
            Metrics snapshot
        """
        if format == "prometheus":
            return generate_latest(self.prometheus_registry).decode("utf-8")
        if format != "json":
            raise ValueError(f"Unsupported export format: {format}")

        with self.lock:
            snapshot = {
                'counters': dict(self.counters),
                'histograms': {
                    name: self.get_metric_summary(name) for name in self.histograms
                },
                'buffered_values': len(self.metrics_buffer)
            }
        return json.loads(json.dumps(snapshot, default=str))

    def reset(self) -> None:
        with self.lock:
            self.metrics_buffer.clear()
            self.counters.clear()
            self.histograms.clear()
