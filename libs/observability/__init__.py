"""Observability module for FindBack"""
from .metrics import (
    MetricsCollector,
    get_metrics_collector,
    counter,
    timer,
    MatchingMetrics,
    get_logger
)

__all__ = [
    'MetricsCollector',
    'get_metrics_collector',
    'counter',
    'timer',
    'MatchingMetrics',
    'get_logger'
]
