"""Batch import of timesheet rows into monthly agent scorecards.

Rows are validated and resolved to agents concurrently, then partitioned by
(agent, month, year). Each partition is merged strictly in input order by one
worker, so every read-modify-write sees the previous row's result for the same
key; partitions for different keys run in parallel. A failing row is reported
in the outcome list and never cancels its siblings.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Any

from opentelemetry import context as otel_context

from app.config import settings
from app.models.scorecard import ScorecardScale
from app.services.scorecard.calculations import resolve_legacy_weights, resolve_weights
from app.services.scorecard.errors import (
    AgentNotFoundError,
    ScorecardError,
    ScorecardStoreError,
    ScorecardValidationError,
)
from app.services.scorecard.merge import ScoreRecord, build_legacy_record, merge_into_record
from app.services.scorecard.metrics import LegacyRatings, LegacyWeights, MetricWeights, RawCounters
from app.services.scorecard.observability import IMPORT_BATCH_SECONDS, IMPORT_PARTITION_ROWS, IMPORT_ROWS
from app.services.scorecard.rows import parse_import_row, parse_legacy_row, row_raw_counters
from app.services.scorecard.stores import AgentDirectory, ScoreRecordStore, SqlAgentDirectory, SqlScoreRecordStore
from app.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

ScoreKey = tuple[str, int, int]


@dataclass
class RowOutcome:
    index: int
    employee_id: str | None
    employee_name: str | None
    status: str
    agent_id: str | None = None
    record_id: str | None = None
    code: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class BatchSummary:
    total: int
    successful: int
    failed: int


@dataclass
class ImportReport:
    results: list[RowOutcome] = field(default_factory=list)

    @property
    def summary(self) -> BatchSummary:
        successful = sum(1 for outcome in self.results if outcome.ok)
        return BatchSummary(total=len(self.results), successful=successful, failed=len(self.results) - successful)

    @property
    def errors(self) -> list[str]:
        return [outcome.error for outcome in self.results if not outcome.ok and outcome.error]

    def as_dict(self) -> dict[str, Any]:
        return {
            "results": [asdict(outcome) for outcome in self.results],
            "errors": self.errors,
            "summary": asdict(self.summary),
        }


@dataclass(frozen=True)
class PreparedRow:
    index: int
    employee_id: str
    employee_name: str | None
    agent_id: str
    key: ScoreKey
    counters: RawCounters | None = None
    ratings: LegacyRatings | None = None
    notes: str | None = None


def _employee_field(data: Any, name: str, alias: str) -> str | None:
    if isinstance(data, Mapping):
        value = data.get(alias, data.get(name))
    else:
        value = getattr(data, name, None)
    return str(value).strip() if value not in (None, "") else None


class ScorecardImportService:
    def __init__(
        self,
        directory: AgentDirectory | None = None,
        store: ScoreRecordStore | None = None,
        *,
        max_workers: int | None = None,
        tolerance_minutes: float | None = None,
        conflict_attempts: int | None = None,
    ):
        self.directory = directory or SqlAgentDirectory()
        self.store = store or SqlScoreRecordStore()
        self.max_workers = max(1, max_workers or settings.scorecard_import_max_workers)
        self.tolerance_minutes = (
            settings.scorecard_on_time_tolerance_minutes if tolerance_minutes is None else tolerance_minutes
        )
        self.conflict_attempts = max(1, conflict_attempts or settings.scorecard_import_conflict_attempts)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def import_batch(
        self,
        rows: Sequence[Mapping[str, Any] | Any],
        month: int,
        year: int,
        weights: MetricWeights | Mapping[str, Any] | None = None,
    ) -> ImportReport:
        if not 1 <= int(month) <= 12:
            raise ScorecardValidationError("invalid_period", f"Month must be between 1 and 12, got {month}")
        month, year = int(month), int(year)
        resolved = resolve_weights(weights)

        def prepare(index: int, data: Any) -> PreparedRow:
            row = parse_import_row(data)
            agent_id = self._resolve_agent(row.employee_id)
            return PreparedRow(
                index=index,
                employee_id=row.employee_id,
                employee_name=row.employee_name,
                agent_id=agent_id,
                key=(agent_id, month, year),
                counters=row_raw_counters(row, self.tolerance_minutes),
                notes=row.notes,
            )

        def apply(prepared: PreparedRow) -> str | None:
            return self._write_record(
                prepared,
                lambda existing: merge_into_record(existing, prepared.counters, resolved, notes=prepared.notes),
            )

        with tracer.start_as_current_span("scorecard.import_batch") as span:
            span.set_attribute("scorecard.rows", len(rows))
            span.set_attribute("scorecard.period", f"{year}-{month:02d}")
            report = self._run(rows, prepare, apply, ScorecardScale.percentage)
            span.set_attribute("scorecard.failed", report.summary.failed)
        return report

    def import_legacy_batch(
        self,
        rows: Sequence[Mapping[str, Any] | Any],
        weights: LegacyWeights | Mapping[str, Any] | None = None,
    ) -> ImportReport:
        resolved = resolve_legacy_weights(weights)

        def prepare(index: int, data: Any) -> PreparedRow:
            row = parse_legacy_row(data)
            agent_id = self._resolve_agent(row.employee_id)
            return PreparedRow(
                index=index,
                employee_id=row.employee_id,
                employee_name=row.employee_name,
                agent_id=agent_id,
                key=(agent_id, row.month, row.year),
                ratings=LegacyRatings(
                    service=row.service,
                    productivity=row.productivity,
                    quality=row.quality,
                    assiduity=row.assiduity,
                    performance=row.performance,
                    adherence=row.adherence,
                    lateness=row.lateness,
                    break_exceeds=row.break_exceeds,
                ),
                notes=row.notes,
            )

        def apply(prepared: PreparedRow) -> str | None:
            return self._write_record(
                prepared,
                lambda existing: build_legacy_record(
                    prepared.ratings, resolved, notes=prepared.notes, existing=existing
                ),
            )

        with tracer.start_as_current_span("scorecard.import_legacy_batch") as span:
            span.set_attribute("scorecard.rows", len(rows))
            report = self._run(rows, prepare, apply, ScorecardScale.legacy)
            span.set_attribute("scorecard.failed", report.summary.failed)
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_agent(self, employee_id: str) -> str:
        agent_id = self.directory.find_agent_by_external_id(employee_id)
        if not agent_id:
            raise AgentNotFoundError("agent_not_found", f"Agent not found for employee ID: {employee_id}")
        return str(agent_id)

    def _write_record(self, prepared: PreparedRow, build: Callable[[ScoreRecord | None], ScoreRecord]) -> str | None:
        """Read, merge and write one row, merging again when another writer got there first."""
        agent_id, month, year = prepared.key
        for attempt in range(1, self.conflict_attempts + 1):
            record = build(self.store.get(agent_id, month, year))
            try:
                return self.store.upsert(agent_id, month, year, record).record_id
            except ScorecardStoreError as exc:
                if exc.code != "store_conflict" or attempt == self.conflict_attempts:
                    raise
                logger.info(
                    "Scorecard %s %s/%s changed during import row %s, retrying (attempt %s)",
                    agent_id,
                    month,
                    year,
                    prepared.index,
                    attempt + 1,
                )
        return None

    def _run(
        self,
        rows: Sequence[Any],
        prepare: Callable[[int, Any], PreparedRow],
        apply: Callable[[PreparedRow], str | None],
        scale: ScorecardScale,
    ) -> ImportReport:
        outcomes: list[RowOutcome | None] = [None] * len(rows)
        parent = otel_context.get_current()

        with IMPORT_BATCH_SECONDS.labels(scale=scale.value).time():
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="scorecard-import") as pool:
                prepare_futures = [pool.submit(prepare, index, data) for index, data in enumerate(rows)]

                partitions: dict[ScoreKey, list[PreparedRow]] = {}
                for index, future in enumerate(prepare_futures):
                    try:
                        prepared = future.result()
                    except Exception as exc:
                        outcomes[index] = self._failure(index, rows[index], exc, scale)
                        continue
                    partitions.setdefault(prepared.key, []).append(prepared)

                merge_futures = [
                    pool.submit(self._merge_partition, key, partition, apply, scale, parent)
                    for key, partition in partitions.items()
                ]
                for future in merge_futures:
                    for outcome in future.result():
                        outcomes[outcome.index] = outcome

        report = ImportReport(results=[outcome for outcome in outcomes if outcome is not None])
        summary = report.summary
        logger.info(
            "Scorecard %s import finished: total=%s successful=%s failed=%s keys=%s",
            scale.value,
            summary.total,
            summary.successful,
            summary.failed,
            len(partitions),
        )
        return report

    def _merge_partition(
        self,
        key: ScoreKey,
        partition: list[PreparedRow],
        apply: Callable[[PreparedRow], str | None],
        scale: ScorecardScale,
        parent: otel_context.Context,
    ) -> list[RowOutcome]:
        IMPORT_PARTITION_ROWS.observe(len(partition))
        outcomes: list[RowOutcome] = []
        with tracer.start_as_current_span("scorecard.merge_partition", context=parent) as span:
            span.set_attribute("scorecard.agent_id", key[0])
            span.set_attribute("scorecard.rows", len(partition))
            for prepared in partition:
                try:
                    record_id = apply(prepared)
                except Exception as exc:
                    outcomes.append(self._failure(prepared.index, prepared, exc, scale))
                    continue
                IMPORT_ROWS.labels(scale=scale.value, status="success").inc()
                outcomes.append(
                    RowOutcome(
                        index=prepared.index,
                        employee_id=prepared.employee_id,
                        employee_name=prepared.employee_name,
                        status="success",
                        agent_id=prepared.agent_id,
                        record_id=record_id,
                    )
                )
        return outcomes

    def _failure(self, index: int, row: Any, exc: Exception, scale: ScorecardScale) -> RowOutcome:
        employee_id = _employee_field(row, "employee_id", "employeeId")
        if isinstance(exc, ScorecardError):
            code, detail = exc.code, exc.detail
            logger.warning("Scorecard import row %s (employee %s) failed: %s", index, employee_id, detail)
        else:
            code, detail = "error", str(exc) or exc.__class__.__name__
            logger.exception("Unexpected error importing scorecard row %s (employee %s)", index, employee_id)
        IMPORT_ROWS.labels(scale=scale.value, status=code).inc()
        return RowOutcome(
            index=index,
            employee_id=employee_id,
            employee_name=_employee_field(row, "employee_name", "employeeName"),
            status="error",
            agent_id=getattr(row, "agent_id", None),
            code=code,
            error=f"Error processing employee {employee_id or 'unknown'}: {detail}",
        )


scorecard_imports = ScorecardImportService()
