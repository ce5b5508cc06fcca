"""
In-process metrics for the Hype client
Counts decoded accounts/events and built instructions, times log-batch processing
"""

import statistics
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class HistogramStats:
    """Statistical summary of latency samples"""
    operation: str
    count: int
    p50: float
    p95: float
    p99: float
    mean: float
    min: float
    max: float


class MetricsCollector:
    """Collects counters, gauges and latency samples"""

    def __init__(self, enable_histogram: bool = True, max_samples: int = 10000):
        """
        Initialize metrics collector

        Args:
            enable_histogram: Whether to keep latency samples
            max_samples: Samples retained per operation
        """
        self.enable_histogram = enable_histogram

        # operation -> recent latency samples (ms)
        self._latencies: Dict[str, deque] = defaultdict(lambda: deque(maxlen=max_samples))
        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = defaultdict(float)

        # (metric_name, sorted label items) -> value
        self._labeled_counters: Dict[tuple, int] = defaultdict(int)

    def record_latency(
        self,
        operation: str,
        latency_ms: float,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record operation latency

        Args:
            operation: Operation name (e.g., "log_batch_decode")
            latency_ms: Latency in milliseconds
            labels: Optional labels for the metric
        """
        if self.enable_histogram:
            self._latencies[operation].append(latency_ms)

        self.increment_counter(f"{operation}_count", labels=labels)

    def increment_counter(
        self,
        metric_name: str,
        value: int = 1,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Increment a counter metric

        Args:
            metric_name: Name of the counter
            value: Amount to increment (default 1)
            labels: Optional labels for the metric
        """
        if labels:
            label_key = (metric_name, tuple(sorted(labels.items())))
            self._labeled_counters[label_key] += value
        else:
            self._counters[metric_name] += value

    def set_gauge(self, metric_name: str, value: float) -> None:
        """Set a gauge metric value"""
        self._gauges[metric_name] = value

    def get_counter(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Get current counter value"""
        if labels:
            label_key = (metric_name, tuple(sorted(labels.items())))
            return self._labeled_counters.get(label_key, 0)
        return self._counters.get(metric_name, 0)

    def get_gauge(self, metric_name: str) -> float:
        """Get current gauge value"""
        return self._gauges.get(metric_name, 0.0)

    def get_histogram_stats(self, operation: str) -> Optional[HistogramStats]:
        """
        Get latency statistics for an operation

        Args:
            operation: Operation name

        Returns:
            HistogramStats or None if no samples were recorded
        """
        samples = sorted(self._latencies.get(operation, []))
        if not samples:
            return None

        return HistogramStats(
            operation=operation,
            count=len(samples),
            p50=self._percentile(samples, 50),
            p95=self._percentile(samples, 95),
            p99=self._percentile(samples, 99),
            mean=statistics.mean(samples),
            min=samples[0],
            max=samples[-1]
        )

    def export_metrics(self) -> Dict:
        """
        Export all metrics as JSON-serializable dict

        Returns:
            Dictionary of all metrics
        """
        labeled = {}
        for (name, label_items), value in self._labeled_counters.items():
            key = name + "{" + ",".join(f"{k}={v}" for k, v in label_items) + "}"
            labeled[key] = value

        histograms = {}
        for operation in self._latencies.keys():
            stats = self.get_histogram_stats(operation)
            if stats:
                histograms[operation] = {
                    "count": stats.count,
                    "p50": stats.p50,
                    "p95": stats.p95,
                    "p99": stats.p99,
                    "mean": stats.mean,
                }

        return {
            "counters": {**dict(self._counters), **labeled},
            "gauges": dict(self._gauges),
            "histograms": histograms,
        }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)"""
        self._latencies.clear()
        self._counters.clear()
        self._gauges.clear()
        self._labeled_counters.clear()

    @staticmethod
    def _percentile(sorted_data: List[float], percentile: float) -> float:
        """Linear-interpolated percentile from sorted data"""
        if len(sorted_data) == 1:
            return sorted_data[0]

        index = (percentile / 100) * (len(sorted_data) - 1)
        lower = int(index)
        upper = lower + 1

        if upper >= len(sorted_data):
            return sorted_data[-1]

        weight = index - lower
        return sorted_data[lower] * (1 - weight) + sorted_data[upper] * weight


class LatencyTimer:
    """Context manager for measuring operation latency"""

    def __init__(self, metrics: MetricsCollector, operation: str, labels: Optional[Dict[str, str]] = None):
        self.metrics = metrics
        self.operation = operation
        self.labels = labels
        self.start_time: Optional[float] = None
        self.latency_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.latency_ms = (time.perf_counter() - self.start_time) * 1000
            self.metrics.record_latency(self.operation, self.latency_ms, self.labels)


_global_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def init_metrics(enable_histogram: bool = True) -> MetricsCollector:
    """Initialize global metrics collector"""
    global _global_metrics
    _global_metrics = MetricsCollector(enable_histogram)
    return _global_metrics
