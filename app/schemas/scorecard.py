from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.models.scorecard import ScorecardScale

# Keeps a weighted legacy total (5 x 8 ratings x weight) inside Numeric(7, 2).
MAX_WEIGHT = 100.0

WeightValue = Annotated[float, Field(ge=0, le=MAX_WEIGHT)]


class SpreadsheetRowModel(BaseModel):
    """Rows arrive from spreadsheet exports keyed in camelCase or snake_case."""

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _normalize_cell(cls, value):
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("employee_id", mode="before", check_fields=False)
    @classmethod
    def _employee_id_as_text(cls, value):
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        return value


class ScorecardImportRow(SpreadsheetRowModel):
    employee_id: str
    employee_name: str | None = None
    work_date: date = Field(alias="date")
    scheduled_start_time: time
    scheduled_end_time: time
    actual_clock_in: time
    actual_clock_out: time
    scheduled_break_start: time | None = None
    scheduled_break_end: time | None = None
    actual_break_start: time | None = None
    actual_break_end: time | None = None
    tasks_assigned: float = Field(ge=0)
    tasks_completed: float = Field(ge=0)
    errors_count: float = Field(default=0, ge=0)
    output_units: float = Field(ge=0)
    expected_output: float = Field(ge=0)
    time_per_task: float = Field(default=0, ge=0)
    standard_time_per_task: float = Field(default=0, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def _breaks_all_or_none(self):
        values = (
            self.scheduled_break_start,
            self.scheduled_break_end,
            self.actual_break_start,
            self.actual_break_end,
        )
        if any(v is not None for v in values) and not all(v is not None for v in values):
            raise ValueError("break timestamps must include scheduled and actual start and end")
        return self

    @property
    def has_break(self) -> bool:
        return self.actual_break_start is not None


class LegacyMetricsImportRow(SpreadsheetRowModel):
    employee_id: str
    employee_name: str | None = None
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1970, le=9999)
    service: float = Field(ge=1, le=5)
    productivity: float = Field(ge=1, le=5)
    quality: float = Field(ge=1, le=5)
    assiduity: float = Field(ge=1, le=5)
    performance: float = Field(ge=1, le=5)
    adherence: float = Field(ge=1, le=5)
    lateness: float = Field(ge=1, le=5)
    break_exceeds: float = Field(ge=1, le=5)
    notes: str | None = None


class ScorecardImportRequest(BaseModel):
    # Rows stay loosely typed so one malformed row fails alone instead of the batch.
    data: list[dict[str, Any]]
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1970, le=9999)
    weights: dict[str, WeightValue] | None = None


class LegacyImportRequest(BaseModel):
    data: list[dict[str, Any]]
    weights: dict[str, WeightValue] | None = None


class ImportRowResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    index: int
    employee_id: str | None = None
    employee_name: str | None = None
    status: str
    agent_id: str | None = None
    record_id: str | None = None
    code: str | None = None
    error: str | None = None


class ImportSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    successful: int
    failed: int


class ScorecardImportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    message: str = "Import completed"
    results: list[ImportRowResult]
    errors: list[str]
    summary: ImportSummary


class ScorecardComputeRequest(BaseModel):
    raw: dict[str, float]
    weights: dict[str, WeightValue] | None = None


class ScorecardComputeResponse(BaseModel):
    metrics: dict[str, float]
    weights: dict[str, float]
    total_score: float
    percentage: float


class AgentScorecardRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    agent_id: uuid.UUID
    month: int
    year: int
    scale: ScorecardScale
    raw_json: dict | None = None
    metrics_json: dict | None = None
    legacy_ratings_json: dict | None = None
    weights_json: dict
    total_score: float
    percentage: float
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AgentScorecardReport(BaseModel):
    agent_id: uuid.UUID
    year: int
    month: int | None = None
    scorecards: list[AgentScorecardRead]
    trends: dict[str, float] | None = None
    yearly_average: dict[str, float] | None = None
