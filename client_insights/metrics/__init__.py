"""
Metrics for the processing pipeline.

- Latency per analysis method
- Fallback and failure rates
- Token usage
"""

from .calculator import (
    MetricsCalculator,
    MetricDefinition,
    MetricValue,
    ProcessingObservation
)

__all__ = [
    "MetricsCalculator",
    "MetricDefinition",
    "MetricValue",
    "ProcessingObservation"
]
