"""Value types for scorecard computation.

Raw counters are additive period accumulators; derived metrics are always
recomputed from them. Weights are immutable configuration and are passed to the
aggregator per call instead of being mutated in place.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, fields


class ImpactLevel(enum.Enum):
    high = 1.5
    medium = 1.0
    low = 0.5


@dataclass(frozen=True)
class RawCounters:
    scheduled_hours: float = 0.0
    actual_hours: float = 0.0
    scheduled_days: float = 0.0
    days_present: float = 0.0
    total_shifts: float = 0.0
    on_time_arrivals: float = 0.0
    total_breaks: float = 0.0
    breaks_within_limit: float = 0.0
    tasks_assigned: float = 0.0
    tasks_completed: float = 0.0
    expected_output: float = 0.0
    actual_output: float = 0.0
    total_tasks: float = 0.0
    error_free_tasks: float = 0.0
    standard_time: float = 0.0
    actual_time_spent: float = 0.0

    def __add__(self, other: RawCounters) -> RawCounters:
        if not isinstance(other, RawCounters):
            return NotImplemented
        return RawCounters(
            **{field.name: getattr(self, field.name) + getattr(other, field.name) for field in fields(self)}
        )

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


RAW_COUNTER_FIELDS: tuple[str, ...] = tuple(field.name for field in fields(RawCounters))


@dataclass(frozen=True)
class DerivedMetrics:
    schedule_adherence: float = 0.0
    attendance_rate: float = 0.0
    punctuality_score: float = 0.0
    break_compliance: float = 0.0
    task_completion_rate: float = 0.0
    productivity_index: float = 0.0
    quality_score: float = 0.0
    efficiency_rate: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


METRIC_KEYS: tuple[str, ...] = tuple(field.name for field in fields(DerivedMetrics))

METRIC_LABELS = {
    "schedule_adherence": "Schedule Adherence",
    "attendance_rate": "Attendance Rate",
    "punctuality_score": "Punctuality Score",
    "break_compliance": "Break Compliance",
    "task_completion_rate": "Task Completion Rate",
    "productivity_index": "Productivity Index",
    "quality_score": "Quality Score",
    "efficiency_rate": "Efficiency Rate",
}


@dataclass(frozen=True)
class MetricWeights:
    schedule_adherence: float = ImpactLevel.medium.value
    attendance_rate: float = ImpactLevel.low.value
    punctuality_score: float = ImpactLevel.low.value
    break_compliance: float = ImpactLevel.low.value
    task_completion_rate: float = ImpactLevel.high.value
    productivity_index: float = ImpactLevel.high.value
    quality_score: float = ImpactLevel.high.value
    efficiency_rate: float = ImpactLevel.medium.value

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


DEFAULT_WEIGHTS = MetricWeights()


@dataclass(frozen=True)
class LegacyRatings:
    """Eight ratings on the old 1-5 scale."""

    service: float = 1.0
    productivity: float = 1.0
    quality: float = 1.0
    assiduity: float = 1.0
    performance: float = 1.0
    adherence: float = 1.0
    lateness: float = 1.0
    break_exceeds: float = 1.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


LEGACY_KEYS: tuple[str, ...] = tuple(field.name for field in fields(LegacyRatings))


@dataclass(frozen=True)
class LegacyWeights:
    service: float = 1.0
    productivity: float = 1.0
    quality: float = 1.0
    assiduity: float = 1.0
    performance: float = 1.0
    adherence: float = 1.0
    lateness: float = 1.0
    break_exceeds: float = 1.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


DEFAULT_LEGACY_WEIGHTS = LegacyWeights()


@dataclass(frozen=True)
class ScoreResult:
    total_score: float
    percentage: float
    max_possible_score: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)
