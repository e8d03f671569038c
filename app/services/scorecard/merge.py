"""Merge engine: folds one row of raw counters into a period aggregate.

Percentages are never merged. Raw counters are summed pairwise and every
derived metric and the composite score are recomputed from the merged totals,
so days with different denominators weigh correctly in the period figure.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from app.models.scorecard import ScorecardScale
from app.services.scorecard.calculations import (
    compute_legacy_total_score,
    compute_metrics,
    compute_total_score,
    resolve_legacy_weights,
    resolve_weights,
)
from app.services.scorecard.errors import ScaleMismatchError
from app.services.scorecard.metrics import (
    DerivedMetrics,
    LegacyRatings,
    LegacyWeights,
    MetricWeights,
    RawCounters,
    ScoreResult,
)


@dataclass(frozen=True)
class MergeResult:
    raw: RawCounters
    derived: DerivedMetrics
    score: ScoreResult


@dataclass(frozen=True)
class PercentageScorecard:
    raw: RawCounters
    derived: DerivedMetrics
    weights: MetricWeights
    score: ScoreResult
    notes: str | None = None
    record_id: str | None = None
    version: int | None = None
    scale: Literal[ScorecardScale.percentage] = field(default=ScorecardScale.percentage, init=False)


@dataclass(frozen=True)
class LegacyScorecard:
    ratings: LegacyRatings
    weights: LegacyWeights
    score: ScoreResult
    notes: str | None = None
    record_id: str | None = None
    version: int | None = None
    scale: Literal[ScorecardScale.legacy] = field(default=ScorecardScale.legacy, init=False)


ScoreRecord = PercentageScorecard | LegacyScorecard


def derive(raw: RawCounters, weights: MetricWeights | Mapping[str, Any] | None = None) -> MergeResult:
    """Derive metrics and score for a fixed raw snapshot (pure, idempotent)."""
    derived = compute_metrics(raw)
    return MergeResult(raw=raw, derived=derived, score=compute_total_score(derived, weights))


def merge(
    existing: RawCounters | None,
    incoming: RawCounters,
    weights: MetricWeights | Mapping[str, Any] | None = None,
) -> MergeResult:
    # Not idempotent: merging the same row twice counts it twice.
    merged = incoming if existing is None else existing + incoming
    return derive(merged, weights)


def merge_into_record(
    existing: ScoreRecord | None,
    incoming: RawCounters,
    weights: MetricWeights | Mapping[str, Any] | None = None,
    notes: str | None = None,
) -> PercentageScorecard:
    if isinstance(existing, LegacyScorecard):
        raise ScaleMismatchError(
            "scale_mismatch",
            "Existing scorecard uses the legacy 1-5 scale and cannot absorb raw activity data",
        )
    resolved = resolve_weights(weights)
    result = merge(existing.raw if existing else None, incoming, resolved)
    return PercentageScorecard(
        raw=result.raw,
        derived=result.derived,
        weights=resolved,
        score=result.score,
        notes=notes if notes is not None else (existing.notes if existing else None),
        record_id=existing.record_id if existing else None,
        version=existing.version if existing else None,
    )


def build_legacy_record(
    ratings: LegacyRatings,
    weights: LegacyWeights | Mapping[str, Any] | None = None,
    notes: str | None = None,
    existing: ScoreRecord | None = None,
) -> LegacyScorecard:
    """Legacy imports replace the period's ratings rather than accumulating them."""
    if isinstance(existing, PercentageScorecard):
        raise ScaleMismatchError(
            "scale_mismatch",
            "Existing scorecard uses the percentage scale and cannot take legacy 1-5 ratings",
        )
    resolved = resolve_legacy_weights(weights)
    return LegacyScorecard(
        ratings=ratings,
        weights=resolved,
        score=compute_legacy_total_score(ratings, resolved),
        notes=notes if notes is not None else (existing.notes if existing else None),
        record_id=existing.record_id if existing else None,
        version=existing.version if existing else None,
    )
