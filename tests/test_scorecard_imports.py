"""Tests for the concurrent scorecard batch importer."""

import threading
import time

import pytest

from app.services.scorecard.errors import ScorecardStoreError, ScorecardValidationError
from app.services.scorecard.imports import BatchSummary, ScorecardImportService
from app.services.scorecard.merge import LegacyScorecard, PercentageScorecard, merge_into_record
from app.services.scorecard.metrics import RawCounters
from app.services.scorecard.stores import SqlAgentDirectory, SqlScoreRecordStore


class _FakeDirectory:
    def __init__(self, agents):
        self.agents = agents

    def find_agent_by_external_id(self, code):
        return self.agents.get(code)


class _SlowMemoryStore:
    """In-memory store whose reads and writes yield, widening any race window."""

    def __init__(self, delay=0.005):
        self.delay = delay
        self.records = {}
        self.lock = threading.Lock()
        self.writes = 0

    def get(self, agent_id, month, year):
        time.sleep(self.delay)
        with self.lock:
            return self.records.get((agent_id, month, year))

    def upsert(self, agent_id, month, year, record):
        time.sleep(self.delay)
        with self.lock:
            self.writes += 1
            self.records[(agent_id, month, year)] = record
        return record


class _ConflictingStore(_SlowMemoryStore):
    def __init__(self):
        super().__init__(delay=0)
        self.reads = 0

    def get(self, agent_id, month, year):
        self.reads += 1
        return super().get(agent_id, month, year)

    def upsert(self, agent_id, month, year, record):
        raise ScorecardStoreError("store_conflict", "Scorecard was changed by another writer", status_code=409)


class _FailingStore(_SlowMemoryStore):
    def upsert(self, agent_id, month, year, record):
        if agent_id == "agent-b":
            raise ScorecardStoreError("store_unavailable", "Scorecard store unavailable")
        return super().upsert(agent_id, month, year, record)


def _row(employee_id, tasks_assigned=10, tasks_completed=8, **overrides):
    row = {
        "employeeId": employee_id,
        "employeeName": f"Agent {employee_id}",
        "date": "2024-03-04",
        "scheduledStartTime": "09:00",
        "scheduledEndTime": "17:00",
        "actualClockIn": "09:00",
        "actualClockOut": "17:00",
        "tasksAssigned": tasks_assigned,
        "tasksCompleted": tasks_completed,
        "errorsCount": 0,
        "outputUnits": 10,
        "expectedOutput": 10,
    }
    row.update(overrides)
    return row


def _legacy_row(employee_id, month=3, year=2024, rating=4):
    row = {"employeeId": employee_id, "month": month, "year": year}
    for key in ("service", "productivity", "quality", "assiduity", "performance", "adherence", "lateness"):
        row[key] = rating
    row["breakExceeds"] = rating
    return row


@pytest.fixture()
def directory():
    return _FakeDirectory({"E1": "agent-a", "E2": "agent-b", "E3": "agent-c"})


class TestImportBatch:
    def test_rows_for_same_key_accumulate(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=8)
        rows = [_row("E1", tasks_assigned=10, tasks_completed=8), _row("E1", tasks_assigned=5, tasks_completed=5)]

        report = service.import_batch(rows, 3, 2024)

        assert report.summary.successful == 2
        record = store.records[("agent-a", 3, 2024)]
        assert record.raw.tasks_assigned == 15
        assert record.raw.tasks_completed == 13
        assert record.raw.days_present == 2
        assert record.derived.task_completion_rate == pytest.approx(86.67, abs=0.01)

    def test_concurrent_batch_loses_no_updates(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=8)
        rows = []
        for day in range(1, 21):
            for employee_id in ("E1", "E2", "E3"):
                rows.append(_row(employee_id, tasks_assigned=day, tasks_completed=day, date=f"2024-03-{day:02d}"))

        report = service.import_batch(rows, 3, 2024)

        assert report.summary.total == 60
        assert report.summary.failed == 0
        assert store.writes == 60
        for agent_id in ("agent-a", "agent-b", "agent-c"):
            record = store.records[(agent_id, 3, 2024)]
            assert record.raw.tasks_assigned == sum(range(1, 21))
            assert record.raw.scheduled_days == 20

    def test_outcomes_follow_input_order(self, directory):
        service = ScorecardImportService(directory, _SlowMemoryStore(), max_workers=4)
        rows = [_row("E2"), _row("E1"), _row("UNKNOWN"), _row("E2"), _row("E3")]

        report = service.import_batch(rows, 3, 2024)

        assert [outcome.index for outcome in report.results] == [0, 1, 2, 3, 4]
        assert [outcome.employee_id for outcome in report.results] == ["E2", "E1", "UNKNOWN", "E2", "E3"]

    def test_unknown_agent_fails_alone(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=4)

        report = service.import_batch([_row("E1"), _row("UNKNOWN")], 3, 2024)

        assert report.summary.total == 2
        assert report.summary.successful == 1
        assert report.summary.failed == 1
        failure = report.results[1]
        assert failure.status == "error"
        assert failure.code == "agent_not_found"
        assert report.errors == ["Error processing employee UNKNOWN: Agent not found for employee ID: UNKNOWN"]
        assert ("agent-a", 3, 2024) in store.records

    def test_invalid_row_fails_alone(self, directory):
        service = ScorecardImportService(directory, _SlowMemoryStore(), max_workers=2)
        bad = _row("E2")
        bad.pop("tasksAssigned")

        report = service.import_batch([bad, _row("E1"), "not a row"], 3, 2024)

        assert [outcome.status for outcome in report.results] == ["error", "success", "error"]
        assert report.results[0].code == "invalid_row"
        assert report.results[0].employee_id == "E2"
        assert report.results[2].employee_id is None
        assert report.errors[1].startswith("Error processing employee unknown:")

    def test_store_failure_is_reported_per_row(self, directory):
        store = _FailingStore()
        service = ScorecardImportService(directory, store, max_workers=4)

        report = service.import_batch([_row("E1"), _row("E2")], 3, 2024)

        assert report.results[0].ok
        assert report.results[1].code == "store_unavailable"
        assert report.results[1].agent_id == "agent-b"

    def test_unexpected_exception_is_reported(self, directory):
        class _BrokenStore(_SlowMemoryStore):
            def get(self, agent_id, month, year):
                raise RuntimeError("disk on fire")

        service = ScorecardImportService(directory, _BrokenStore(), max_workers=2)
        report = service.import_batch([_row("E1")], 3, 2024)

        assert report.results[0].code == "error"
        assert "disk on fire" in report.results[0].error

    def test_weights_are_applied(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=1)
        weights = {
            "scheduleAdherenceWeight": 0,
            "attendanceRateWeight": 0,
            "punctualityScoreWeight": 0,
            "breakComplianceWeight": 0,
            "taskCompletionRateWeight": 1,
            "productivityIndexWeight": 0,
            "qualityScoreWeight": 0,
            "efficiencyRateWeight": 0,
        }

        service.import_batch([_row("E1", tasks_assigned=4, tasks_completed=3)], 3, 2024, weights)

        assert store.records[("agent-a", 3, 2024)].score.total_score == 75.0

    def test_invalid_month_rejects_batch(self, directory):
        service = ScorecardImportService(directory, _SlowMemoryStore())
        with pytest.raises(ScorecardValidationError) as excinfo:
            service.import_batch([_row("E1")], 13, 2024)
        assert excinfo.value.code == "invalid_period"

    def test_empty_batch(self, directory):
        report = ScorecardImportService(directory, _SlowMemoryStore()).import_batch([], 3, 2024)
        assert report.summary.total == 0
        assert report.as_dict()["summary"] == {"total": 0, "successful": 0, "failed": 0}

    def test_report_as_dict(self, directory):
        report = ScorecardImportService(directory, _SlowMemoryStore(), max_workers=1).import_batch(
            [_row("E1"), _row("NOPE")], 3, 2024
        )
        assert isinstance(report.summary, BatchSummary)
        data = report.as_dict()
        assert data["summary"] == {"total": 2, "successful": 1, "failed": 1}
        assert data["results"][0]["agent_id"] == "agent-a"
        assert len(data["errors"]) == 1

    def test_conflicting_writes_fail_after_retries(self, directory):
        store = _ConflictingStore()
        service = ScorecardImportService(directory, store, max_workers=1, conflict_attempts=2)

        report = service.import_batch([_row("E1")], 3, 2024)

        assert report.results[0].code == "store_conflict"
        assert store.reads == 2


class TestLegacyImport:
    def test_legacy_rows_replace_by_period(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=4)

        report = service.import_legacy_batch([_legacy_row("E1", rating=2), _legacy_row("E1", rating=5)])

        assert report.summary.successful == 2
        record = store.records[("agent-a", 3, 2024)]
        assert isinstance(record, LegacyScorecard)
        assert record.score.total_score == 40.0
        assert record.score.percentage == 100.0

    def test_legacy_rows_carry_their_own_period(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=4)

        service.import_legacy_batch([_legacy_row("E1", month=1), _legacy_row("E1", month=2, year=2023)])

        assert ("agent-a", 1, 2024) in store.records
        assert ("agent-a", 2, 2023) in store.records

    def test_scale_mismatch_fails_row(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=2)
        service.import_batch([_row("E1")], 3, 2024)

        report = service.import_legacy_batch([_legacy_row("E1")])

        assert report.results[0].code == "scale_mismatch"
        assert isinstance(store.records[("agent-a", 3, 2024)], PercentageScorecard)

    def test_percentage_rows_onto_legacy_record_fail(self, directory):
        store = _SlowMemoryStore()
        service = ScorecardImportService(directory, store, max_workers=2)
        service.import_legacy_batch([_legacy_row("E1")])

        report = service.import_batch([_row("E1")], 3, 2024)

        assert report.summary.failed == 1
        assert report.results[0].code == "scale_mismatch"


def test_sql_backed_import(session_factory, agent_factory):
    session = session_factory()
    agent = agent_factory(session, employee_id="E1")
    session.close()
    service = ScorecardImportService(
        SqlAgentDirectory(session_factory),
        SqlScoreRecordStore(session_factory),
        max_workers=1,
    )

    report = service.import_batch(
        [_row("E1", tasks_assigned=10, tasks_completed=8), _row("E1", tasks_assigned=5, tasks_completed=5)],
        3,
        2024,
    )

    assert report.summary.successful == 2
    assert report.results[0].record_id == report.results[1].record_id
    record = SqlScoreRecordStore(session_factory).get(str(agent.id), 3, 2024)
    assert record.raw.tasks_assigned == 15
    assert record.raw.tasks_completed == 13


def test_sql_import_merges_again_after_concurrent_write(session_factory, agent_factory):
    session = session_factory()
    agent = agent_factory(session, employee_id="E1")
    session.close()
    other_writer = SqlScoreRecordStore(session_factory)

    class _InterleavedStore(SqlScoreRecordStore):
        reads = 0

        def get(self, agent_id, month, year):
            existing = super().get(agent_id, month, year)
            self.reads += 1
            if self.reads == 1:
                # Another batch commits the same key between this read and the write.
                other_writer.upsert(
                    agent_id, month, year, merge_into_record(None, RawCounters(tasks_assigned=10, tasks_completed=10))
                )
            return existing

    store = _InterleavedStore(session_factory)
    service = ScorecardImportService(SqlAgentDirectory(session_factory), store, max_workers=1)

    report = service.import_batch([_row("E1", tasks_assigned=5, tasks_completed=5)], 3, 2024)

    assert report.summary.successful == 1
    assert store.reads == 2
    record = other_writer.get(str(agent.id), 3, 2024)
    assert record.raw.tasks_assigned == 15
    assert record.raw.tasks_completed == 15
    assert record.version == 2
