"""
Metrics Calculator

Tracks how the processing manager performs:
- Analysis latency per mode (mean, p95, max)
- Fallback rate
- Failures by error type
- Token usage of the remote back end
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import math
import statistics


class MetricCategory(Enum):
    """Categories of metrics."""
    LATENCY = "latency"
    RELIABILITY = "reliability"
    COST = "cost"


@dataclass
class MetricDefinition:
    """Definition of a metric."""
    name: str
    category: MetricCategory
    description: str
    unit: str
    target_direction: str = "lower"  # lower, higher
    target_value: float = 0.0


@dataclass
class MetricValue:
    """A calculated metric value."""
    metric_name: str
    value: float
    unit: str
    timestamp: datetime = field(default_factory=datetime.now)
    sample_size: int = 0
    breakdown: dict = field(default_factory=dict)


@dataclass
class ProcessingObservation:
    """One processing call as seen by the manager."""
    requested_mode: str
    method: Optional[str] = None
    latency_ms: float = 0.0
    tokens_used: Optional[int] = None
    fell_back: bool = False
    error_type: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def succeeded(self) -> bool:
        return self.error_type is None


def _percentile(values: list, fraction: float) -> float:
    """Nearest-rank percentile."""
    ordered = sorted(values)
    rank = max(1, math.ceil(fraction * len(ordered)))
    return ordered[min(rank, len(ordered)) - 1]


class MetricsCalculator:
    """
    Collects processing observations and derives metrics from them.

    One calculator is owned by each processing manager.
    """

    def __init__(self, max_observations: int = 1000):
        self.max_observations = max_observations
        self._observations: list[ProcessingObservation] = []
        self._metrics = self._define_metrics()

    def _define_metrics(self) -> dict[str, MetricDefinition]:
        """Define all metrics with their targets."""
        return {
            "latency": MetricDefinition(
                name="Analysis Latency",
                category=MetricCategory.LATENCY,
                description="Mean time to produce insights",
                unit="ms",
                target_direction="lower",
                target_value=2000.0
            ),
            "fallback_rate": MetricDefinition(
                name="Fallback Rate",
                category=MetricCategory.RELIABILITY,
                description="Percentage of calls answered by the rule-based fallback",
                unit="%",
                target_direction="lower",
                target_value=5.0
            ),
            "failure_rate": MetricDefinition(
                name="Failure Rate",
                category=MetricCategory.RELIABILITY,
                description="Percentage of calls that surfaced an error",
                unit="%",
                target_direction="lower",
                target_value=1.0
            ),
            "token_usage": MetricDefinition(
                name="Token Usage",
                category=MetricCategory.COST,
                description="Total language model tokens consumed",
                unit="tokens",
                target_direction="lower",
                target_value=0.0
            )
        }

    @property
    def observations(self) -> list[ProcessingObservation]:
        return list(self._observations)

    def get_metric_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        """Get definition for a metric."""
        return self._metrics.get(metric_name)

    def record(self, observation: ProcessingObservation) -> None:
        self._observations.append(observation)
        if len(self._observations) > self.max_observations:
            del self._observations[:len(self._observations) - self.max_observations]

    def record_success(
        self,
        requested_mode: str,
        method: str,
        latency_ms: float,
        tokens_used: Optional[int] = None,
        fell_back: bool = False
    ) -> None:
        self.record(ProcessingObservation(
            requested_mode=requested_mode,
            method=method,
            latency_ms=latency_ms,
            tokens_used=tokens_used,
            fell_back=fell_back
        ))

    def record_failure(self, requested_mode: str, latency_ms: float, error: BaseException) -> None:
        self.record(ProcessingObservation(
            requested_mode=requested_mode,
            latency_ms=latency_ms,
            error_type=type(error).__name__
        ))

    def reset(self) -> None:
        self._observations.clear()

    def calculate_latency(self, method: Optional[str] = None) -> MetricValue:
        """Latency of successful calls, optionally for one method."""
        latencies = [
            o.latency_ms for o in self._observations
            if o.succeeded and (method is None or o.method == method)
        ]

        return MetricValue(
            metric_name="latency",
            value=statistics.mean(latencies) if latencies else 0.0,
            unit="ms",
            sample_size=len(latencies),
            breakdown={
                "p95": _percentile(latencies, 0.95) if latencies else 0.0,
                "max": max(latencies) if latencies else 0.0,
                "median": statistics.median(latencies) if latencies else 0.0
            }
        )

    def calculate_fallback_rate(self) -> MetricValue:
        total = len(self._observations)
        fallbacks = sum(1 for o in self._observations if o.fell_back)

        return MetricValue(
            metric_name="fallback_rate",
            value=(fallbacks / total * 100) if total else 0.0,
            unit="%",
            sample_size=total,
            breakdown={
                "fallbacks": fallbacks,
                "by_requested_mode": dict(Counter(
                    o.requested_mode for o in self._observations if o.fell_back
                ))
            }
        )

    def calculate_failure_rate(self) -> MetricValue:
        total = len(self._observations)
        failures = [o for o in self._observations if not o.succeeded]

        return MetricValue(
            metric_name="failure_rate",
            value=(len(failures) / total * 100) if total else 0.0,
            unit="%",
            sample_size=total,
            breakdown={"by_error_type": dict(Counter(o.error_type for o in failures))}
        )

    def calculate_token_usage(self) -> MetricValue:
        used = [o.tokens_used for o in self._observations if o.tokens_used is not None]

        return MetricValue(
            metric_name="token_usage",
            value=float(sum(used)),
            unit="tokens",
            sample_size=len(used),
            breakdown={"mean_per_call": statistics.mean(used) if used else 0.0}
        )

    def calculate_all_metrics(self) -> dict[str, MetricValue]:
        """Calculate all metrics from the recorded observations."""
        results = {
            "latency": self.calculate_latency(),
            "fallback_rate": self.calculate_fallback_rate(),
            "failure_rate": self.calculate_failure_rate(),
            "token_usage": self.calculate_token_usage()
        }
        for method in sorted({o.method for o in self._observations if o.method}):
            results[f"latency:{method}"] = self.calculate_latency(method)
        return results

    def compare_to_target(self, metric_value: MetricValue) -> dict:
        """Compare a metric value to its target."""
        base_name = metric_value.metric_name.split(":", 1)[0]
        definition = self._metrics.get(base_name)
        if not definition:
            return {"error": "Unknown metric"}

        if definition.target_direction == "lower":
            target_met = metric_value.value <= definition.target_value
        else:
            target_met = metric_value.value >= definition.target_value

        return {
            "metric": metric_value.metric_name,
            "current_value": metric_value.value,
            "target_value": definition.target_value,
            "target_met": target_met,
            "target_direction": definition.target_direction
        }
