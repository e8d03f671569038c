from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.schemas.scorecard import (
    AgentScorecardRead,
    AgentScorecardReport,
    ImportRowResult,
    ImportSummary,
    LegacyImportRequest,
    ScorecardComputeRequest,
    ScorecardComputeResponse,
    ScorecardImportRequest,
    ScorecardImportResponse,
)
from app.services.scorecard import calculations
from app.services.scorecard.errors import ScorecardError, as_http_exception
from app.services.scorecard.imports import ImportReport, scorecard_imports
from app.services.scorecard.reports import scorecard_reports

router = APIRouter(prefix="/scorecards", tags=["scorecards"])


def _check_batch_size(rows: list) -> None:
    if not rows:
        raise HTTPException(status_code=400, detail="Import data must contain at least one row")
    if len(rows) > settings.scorecard_max_batch_rows:
        raise HTTPException(
            status_code=413,
            detail=f"Import batch exceeds {settings.scorecard_max_batch_rows} rows",
        )


def _import_response(report: ImportReport) -> ScorecardImportResponse:
    return ScorecardImportResponse(
        results=[ImportRowResult.model_validate(outcome) for outcome in report.results],
        errors=report.errors,
        summary=ImportSummary.model_validate(report.summary),
    )


@router.post("/import", response_model=ScorecardImportResponse)
def import_scorecards(payload: ScorecardImportRequest):
    _check_batch_size(payload.data)
    try:
        report = scorecard_imports.import_batch(payload.data, payload.month, payload.year, payload.weights)
    except ScorecardError as exc:
        raise as_http_exception(exc) from exc
    return _import_response(report)


@router.post("/import/legacy", response_model=ScorecardImportResponse)
def import_legacy_scorecards(payload: LegacyImportRequest):
    _check_batch_size(payload.data)
    try:
        report = scorecard_imports.import_legacy_batch(payload.data, payload.weights)
    except ScorecardError as exc:
        raise as_http_exception(exc) from exc
    return _import_response(report)


@router.post("/compute", response_model=ScorecardComputeResponse)
def compute_scorecard(payload: ScorecardComputeRequest):
    raw = calculations.raw_counters_from_mapping(payload.raw)
    weights = calculations.resolve_weights(payload.weights)
    derived = calculations.compute_metrics(raw)
    score = calculations.compute_total_score(derived, weights)
    return ScorecardComputeResponse(
        metrics={key: calculations.round_to_decimals(value, 2) for key, value in derived.as_dict().items()},
        weights=weights.as_dict(),
        total_score=score.total_score,
        percentage=score.percentage,
    )


@router.get("/{agent_id}", response_model=AgentScorecardReport)
def agent_scorecard(
    agent_id: str,
    year: int | None = Query(None, ge=1970, le=9999),
    month: int | None = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
):
    try:
        report = scorecard_reports.agent_scorecard(db, agent_id, year or datetime.now(UTC).year, month)
    except ScorecardError as exc:
        raise as_http_exception(exc) from exc
    report["scorecards"] = [AgentScorecardRead.model_validate(scorecard) for scorecard in report["scorecards"]]
    return AgentScorecardReport(**report)
