"""Convert one timesheet/task row into single-day raw counters."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, time, timedelta
from typing import Any

from pydantic import ValidationError

from app.schemas.scorecard import LegacyMetricsImportRow, ScorecardImportRow, SpreadsheetRowModel
from app.services.scorecard.errors import ScorecardValidationError
from app.services.scorecard.metrics import RawCounters

DEFAULT_ON_TIME_TOLERANCE_MINUTES = 5


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "row"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def _parse_row(model: type[SpreadsheetRowModel], data: Mapping[str, Any] | SpreadsheetRowModel):
    if isinstance(data, model):
        return data
    if not isinstance(data, Mapping):
        raise ScorecardValidationError("invalid_row", "Row must be an object of column values")
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise ScorecardValidationError("invalid_row", _format_validation_error(exc)) from exc


def parse_import_row(data: Mapping[str, Any] | ScorecardImportRow) -> ScorecardImportRow:
    return _parse_row(ScorecardImportRow, data)


def parse_legacy_row(data: Mapping[str, Any] | LegacyMetricsImportRow) -> LegacyMetricsImportRow:
    return _parse_row(LegacyMetricsImportRow, data)


def _span(day: date, start: time, end: time) -> tuple[datetime, datetime]:
    start_at = datetime.combine(day, start)
    end_at = datetime.combine(day, end)
    if end_at < start_at:
        # Overnight shift or break: the end falls on the next calendar day.
        end_at += timedelta(days=1)
    return start_at, end_at


def _minutes(start_at: datetime, end_at: datetime) -> float:
    return (end_at - start_at).total_seconds() / 60


def row_raw_counters(
    row: ScorecardImportRow,
    tolerance_minutes: float = DEFAULT_ON_TIME_TOLERANCE_MINUTES,
) -> RawCounters:
    scheduled_start, scheduled_end = _span(row.work_date, row.scheduled_start_time, row.scheduled_end_time)
    actual_start, actual_end = _span(row.work_date, row.actual_clock_in, row.actual_clock_out)

    on_time = 1 if abs(_minutes(scheduled_start, actual_start)) <= tolerance_minutes else 0

    total_breaks = 0
    breaks_within_limit = 0
    if row.has_break:
        scheduled_break = _minutes(*_span(row.work_date, row.scheduled_break_start, row.scheduled_break_end))
        actual_break = _minutes(*_span(row.work_date, row.actual_break_start, row.actual_break_end))
        total_breaks = 1
        breaks_within_limit = 1 if actual_break <= scheduled_break else 0

    return RawCounters(
        scheduled_hours=_minutes(scheduled_start, scheduled_end) / 60,
        actual_hours=_minutes(actual_start, actual_end) / 60,
        scheduled_days=1,
        days_present=1,
        total_shifts=1,
        on_time_arrivals=on_time,
        total_breaks=total_breaks,
        breaks_within_limit=breaks_within_limit,
        tasks_assigned=row.tasks_assigned,
        tasks_completed=row.tasks_completed,
        expected_output=row.expected_output,
        actual_output=row.output_units,
        total_tasks=row.tasks_completed,
        error_free_tasks=max(0, row.tasks_completed - row.errors_count),
        standard_time=row.standard_time_per_task * row.tasks_completed,
        actual_time_spent=row.time_per_task * row.tasks_completed,
    )
