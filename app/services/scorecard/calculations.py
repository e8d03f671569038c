"""Scorecard arithmetic: safety primitives, metric derivation, the 1-5 scale
bridge and weighted aggregation.

Everything here is pure and total. Zero or missing denominators resolve to a
documented default instead of raising, so callers never see NaN or infinity.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import fields
from decimal import ROUND_FLOOR, Decimal
from typing import Any

from app.services.scorecard.metrics import (
    DEFAULT_LEGACY_WEIGHTS,
    DEFAULT_WEIGHTS,
    LEGACY_KEYS,
    METRIC_KEYS,
    RAW_COUNTER_FIELDS,
    DerivedMetrics,
    LegacyRatings,
    LegacyWeights,
    MetricWeights,
    RawCounters,
    ScoreResult,
)

METRIC_SCALE_MIN = 1.0
METRIC_SCALE_MAX = 5.0
METRIC_SCALE_RANGE = METRIC_SCALE_MAX - METRIC_SCALE_MIN
PERCENTAGE_MIN = 0.0
PERCENTAGE_MAX = 100.0

TREND_KEYS: tuple[str, ...] = METRIC_KEYS + LEGACY_KEYS + ("total_score", "percentage")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None:
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def _is_nan(value: float) -> bool:
    return isinstance(value, float) and math.isnan(value)


def _snake_key(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


# ---------------------------------------------------------------------------
# Safety primitives
# ---------------------------------------------------------------------------


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator == 0 or _is_nan(denominator) or _is_nan(numerator):
        return default
    return numerator / denominator


def clamp_percentage(value: float) -> float:
    if _is_nan(value):
        return PERCENTAGE_MIN
    return max(PERCENTAGE_MIN, min(PERCENTAGE_MAX, value))


def round_to_decimals(value: float, decimals: int) -> float:
    """Round to the nearest step, ties toward +infinity (-2.5 -> -2); NaN rounds to 0."""
    value = to_float(value, math.nan)
    if math.isnan(value):
        return 0.0
    if math.isinf(value):
        return value
    shifted = Decimal(str(value)).scaleb(decimals) + Decimal("0.5")
    return float(shifted.to_integral_value(rounding=ROUND_FLOOR).scaleb(-decimals))


def calculate_average(values: Iterable[Any], decimals: int = 2) -> float:
    valid = [to_float(v) for v in values if v is not None and not _is_nan(to_float(v, math.nan))]
    if not valid:
        return 0.0
    return round_to_decimals(safe_div(sum(valid), len(valid)), decimals)


# ---------------------------------------------------------------------------
# Metric derivation
# ---------------------------------------------------------------------------


def _ratio_percentage(numerator: float, denominator: float, zero_default: float = 0.0) -> float:
    if not denominator > 0:
        return zero_default
    return clamp_percentage(safe_div(numerator, denominator) * 100)


def schedule_adherence(actual_hours: float, scheduled_hours: float) -> float:
    return _ratio_percentage(actual_hours, scheduled_hours)


def attendance_rate(days_present: float, scheduled_days: float) -> float:
    return _ratio_percentage(days_present, scheduled_days)


def punctuality_score(on_time_arrivals: float, total_shifts: float) -> float:
    return _ratio_percentage(on_time_arrivals, total_shifts)


def break_compliance(breaks_within_limit: float, total_breaks: float) -> float:
    # No breaks taken counts as fully compliant.
    return _ratio_percentage(breaks_within_limit, total_breaks, zero_default=PERCENTAGE_MAX)


def task_completion_rate(tasks_completed: float, tasks_assigned: float) -> float:
    return _ratio_percentage(tasks_completed, tasks_assigned)


def productivity_index(actual_output: float, expected_output: float) -> float:
    return _ratio_percentage(actual_output, expected_output)


def quality_score(error_free_tasks: float, total_tasks: float) -> float:
    return _ratio_percentage(error_free_tasks, total_tasks)


def efficiency_rate(standard_time: float, actual_time_spent: float) -> float:
    return _ratio_percentage(standard_time, actual_time_spent)


def raw_counters_from_mapping(data: Mapping[str, Any] | None) -> RawCounters:
    """Build counters from a snake_case or camelCase mapping; missing fields are 0."""
    if not data:
        return RawCounters()
    normalized = {_snake_key(str(key)): value for key, value in data.items()}
    return RawCounters(**{name: to_float(normalized.get(name)) for name in RAW_COUNTER_FIELDS})


def compute_metrics(raw: RawCounters) -> DerivedMetrics:
    return DerivedMetrics(
        schedule_adherence=schedule_adherence(raw.actual_hours, raw.scheduled_hours),
        attendance_rate=attendance_rate(raw.days_present, raw.scheduled_days),
        punctuality_score=punctuality_score(raw.on_time_arrivals, raw.total_shifts),
        break_compliance=break_compliance(raw.breaks_within_limit, raw.total_breaks),
        task_completion_rate=task_completion_rate(raw.tasks_completed, raw.tasks_assigned),
        productivity_index=productivity_index(raw.actual_output, raw.expected_output),
        quality_score=quality_score(raw.error_free_tasks, raw.total_tasks),
        efficiency_rate=efficiency_rate(raw.standard_time, raw.actual_time_spent),
    )


# ---------------------------------------------------------------------------
# Scale bridge (legacy 1-5 <-> 0-100)
# ---------------------------------------------------------------------------


def validate_metric_score(score: Any) -> float:
    value = to_float(score, math.nan)
    if math.isnan(value):
        return METRIC_SCALE_MIN
    return max(METRIC_SCALE_MIN, min(METRIC_SCALE_MAX, value))


def metric_to_percentage(score: Any) -> float:
    valid = validate_metric_score(score)
    return clamp_percentage((valid - METRIC_SCALE_MIN) / METRIC_SCALE_RANGE * PERCENTAGE_MAX)


def percentage_to_metric(percentage: Any) -> float:
    valid = clamp_percentage(to_float(percentage, math.nan))
    return validate_metric_score(valid / PERCENTAGE_MAX * METRIC_SCALE_RANGE + METRIC_SCALE_MIN)


def legacy_ratings_to_percentages(ratings: LegacyRatings) -> dict[str, float]:
    return {key: round_to_decimals(metric_to_percentage(value), 2) for key, value in ratings.as_dict().items()}


# ---------------------------------------------------------------------------
# Weighted aggregation
# ---------------------------------------------------------------------------


def _override_key(key: str) -> str:
    key = _snake_key(key)
    return key[: -len("_weight")] if key.endswith("_weight") else key


def resolve_weights(overrides: MetricWeights | Mapping[str, Any] | None = None) -> MetricWeights:
    """Layer caller overrides over the default weights.

    Accepts ``quality_score``, ``quality_score_weight`` or ``qualityScoreWeight``
    style keys; unknown keys are ignored.
    """
    if overrides is None:
        return DEFAULT_WEIGHTS
    if isinstance(overrides, MetricWeights):
        return overrides
    values = DEFAULT_WEIGHTS.as_dict()
    for key, value in overrides.items():
        name = _override_key(str(key))
        if name in values and value is not None:
            values[name] = to_float(value, values[name])
    return MetricWeights(**values)


def resolve_legacy_weights(overrides: LegacyWeights | Mapping[str, Any] | None = None) -> LegacyWeights:
    if overrides is None:
        return DEFAULT_LEGACY_WEIGHTS
    if isinstance(overrides, LegacyWeights):
        return overrides
    values = DEFAULT_LEGACY_WEIGHTS.as_dict()
    for key, value in overrides.items():
        name = _override_key(str(key))
        if name in values and value is not None:
            values[name] = to_float(value, values[name])
    return LegacyWeights(**values)


def compute_total_score(
    derived: DerivedMetrics, weights: MetricWeights | Mapping[str, Any] | None = None
) -> ScoreResult:
    resolved = resolve_weights(weights)
    weighted_total = 0.0
    weight_sum = 0.0
    for field in fields(derived):
        score = clamp_percentage(getattr(derived, field.name))
        weight = max(0.0, to_float(getattr(resolved, field.name)))
        weighted_total += score * weight
        weight_sum += weight

    average = round_to_decimals(safe_div(weighted_total, weight_sum), 2)
    return ScoreResult(total_score=average, percentage=average, max_possible_score=PERCENTAGE_MAX)


def compute_legacy_total_score(
    ratings: LegacyRatings, weights: LegacyWeights | Mapping[str, Any] | None = None
) -> ScoreResult:
    resolved = resolve_legacy_weights(weights)
    total = 0.0
    max_possible = 0.0
    for field in fields(ratings):
        score = validate_metric_score(getattr(ratings, field.name))
        weight = max(0.0, to_float(getattr(resolved, field.name)))
        total += score * weight
        max_possible += METRIC_SCALE_MAX * weight

    percentage = clamp_percentage(safe_div(total, max_possible) * PERCENTAGE_MAX)
    return ScoreResult(
        total_score=round_to_decimals(total, 2),
        percentage=round_to_decimals(percentage, 2),
        max_possible_score=round_to_decimals(max_possible, 2),
    )


# ---------------------------------------------------------------------------
# Period comparisons
# ---------------------------------------------------------------------------


def calculate_trends(current: Mapping[str, Any], previous: Mapping[str, Any]) -> dict[str, float]:
    """Per-key change from the previous period; missing values count as 0."""
    return {
        key: round_to_decimals(to_float(current.get(key)) - to_float(previous.get(key)), 2) for key in TREND_KEYS
    }


def calculate_yearly_average(records: list[Mapping[str, Any]]) -> dict[str, float]:
    count = len(records)
    return {
        key: round_to_decimals(safe_div(sum(to_float(record.get(key)) for record in records), count), 2)
        for key in TREND_KEYS
    }
