"""Metrics and observability infrastructure for FindBack.

This module provides a simple abstraction for metrics collection that can be extended
with actual implementations (Prometheus, OpenTelemetry, etc.) later.
"""
from __future__ import annotations
import json
import logging
import time
from typing import Deque, Dict, Any, Optional, List
from dataclasses import dataclass, field
import threading
from collections import deque

@dataclass
class MetricData:
    """Container for metric data point"""
    name: str
    value: float
    tags: Dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    type: str = "counter"  # counter, histogram


class MetricsCollector:
    """Thread-safe metrics collector with in-memory storage.

    Batch matching records from worker threads, so every write goes
    through the lock. Only the latest ``max_history`` data points are kept
    per metric; ``get_stats`` reads running totals and covers every point.
    """

    DEFAULT_MAX_HISTORY = 1000

    def __init__(self, max_history: int = DEFAULT_MAX_HISTORY):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self._metrics: Dict[str, Deque[MetricData]] = {}
        self._totals: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a counter metric (cumulative value)"""
        self._record(name, value, tags or {}, "counter")

    def histogram(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a histogram metric (distribution of values)"""
        self._record(name, value, tags or {}, "histogram")

    def timer(self, name: str, tags: Optional[Dict[str, str]] = None):
        """Context manager for timing operations"""
        return TimerContext(self, name, tags or {})

    def _record(self, name: str, value: float, tags: Dict[str, str], metric_type: str) -> None:
        with self._lock:
            history = self._metrics.get(name)
            if history is None:
                history = self._metrics[name] = deque(maxlen=self.max_history)
                self._totals[name] = {'count': 0, 'sum': 0.0}
            history.append(MetricData(
                name=name,
                value=value,
                tags=tags,
                type=metric_type
            ))
            totals = self._totals[name]
            totals['count'] += 1
            totals['sum'] += value
            totals['latest'] = value

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[MetricData]]:
        """Get retained data points, optionally filtered by name"""
        with self._lock:
            if name:
                return {name: list(self._metrics.get(name, ()))}
            return {k: list(v) for k, v in self._metrics.items()}

    def get_stats(self) -> Dict[str, Any]:
        """Get summary statistics of recorded metrics"""
        with self._lock:
            stats = {}
            for name, totals in self._totals.items():
                count = int(totals['count'])
                stats[name] = {
                    'count': count,
                    'latest': totals['latest'],
                    'sum': totals['sum'],
                    'avg': totals['sum'] / count
                }
            return stats

    def clear(self) -> None:
        """Clear all recorded metrics"""
        with self._lock:
            self._metrics.clear()
            self._totals.clear()


class TimerContext:
    """Context manager for measuring operation duration"""

    def __init__(self, collector: MetricsCollector, name: str, tags: Dict[str, str]):
        self.collector = collector
        self.name = name
        self.tags = tags
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            duration = time.perf_counter() - self.start_time
            self.collector.histogram(f"{self.name}.duration_ms", duration * 1000, self.tags)


# Global metrics instance - can be replaced with proper DI later
_global_metrics = MetricsCollector()

def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance"""
    return _global_metrics

def counter(name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
    """Record a counter metric using global collector"""
    _global_metrics.counter(name, value, tags)

def timer(name: str, tags: Optional[Dict[str, str]] = None):
    """Context manager for timing operations using global collector"""
    return _global_metrics.timer(name, tags)


class MatchingMetrics:
    """Names of the metrics emitted by the matching engine"""

    FIND_MATCHES = "matching.find_matches"
    FIND_MATCHES_BATCH = "matching.find_matches_batch"
    MATCHES_FOUND = "matching.matches_found"
    CANDIDATES_SCORED = "matching.candidates_scored"
    SKIPPED_PAIRS = "matching.skipped_pairs"
    RETRIEVAL_ERROR = "matching.retrieval_error"
    RETRIEVAL_TIMEOUT = "matching.retrieval_timeout"


# Simple structured logging support
class StructuredLogger:
    """Structured logger that renders keyword context as JSON after the message"""

    def __init__(self, name: str = "findback"):
        self.name = name
        self._logger = logging.getLogger(name)

    def info(self, msg: str, **kwargs) -> None:
        self._log(logging.INFO, msg, kwargs)

    def error(self, msg: str, **kwargs) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def warning(self, msg: str, **kwargs) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def debug(self, msg: str, **kwargs) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def _log(self, level: int, msg: str, context: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if context:
            context_str = json.dumps(context, default=str, sort_keys=True)
            self._logger.log(level, f"{msg} | {context_str}")
        else:
            self._logger.log(level, msg)


def get_logger(name: str = "findback") -> StructuredLogger:
    """Get a structured logger instance"""
    return StructuredLogger(name)
