"""Identity lookup and scorecard persistence used by the import orchestrator.

Both SQL implementations open a short-lived session per call from an injected
factory, so they can be shared by import worker threads.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.db import SessionLocal
from app.models.scorecard import AgentProfile, AgentScorecard, ScorecardScale
from app.services.scorecard.calculations import (
    METRIC_SCALE_MAX,
    raw_counters_from_mapping,
    resolve_legacy_weights,
    resolve_weights,
    to_float,
)
from app.services.scorecard.errors import ScorecardStoreError, ScorecardValidationError
from app.services.scorecard.merge import LegacyScorecard, PercentageScorecard, ScoreRecord
from app.services.scorecard.metrics import LEGACY_KEYS, METRIC_KEYS, DerivedMetrics, LegacyRatings, ScoreResult

logger = logging.getLogger(__name__)


class AgentDirectory(Protocol):
    def find_agent_by_external_id(self, code: str) -> str | None: ...


class ScoreRecordStore(Protocol):
    def get(self, agent_id: str, month: int, year: int) -> ScoreRecord | None: ...

    def upsert(self, agent_id: str, month: int, year: int, record: ScoreRecord) -> ScoreRecord: ...


def coerce_uuid(value: str | uuid.UUID) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ScorecardValidationError("invalid_agent_id", f"Invalid agent id: {value}") from exc


def record_from_model(model: AgentScorecard) -> ScoreRecord:
    if model.scale == ScorecardScale.legacy:
        ratings = model.legacy_ratings_json or {}
        weights = resolve_legacy_weights(model.weights_json or {})
        return LegacyScorecard(
            ratings=LegacyRatings(**{key: to_float(ratings.get(key), 1.0) for key in LEGACY_KEYS}),
            weights=weights,
            score=ScoreResult(
                total_score=to_float(model.total_score),
                percentage=to_float(model.percentage),
                max_possible_score=METRIC_SCALE_MAX * sum(max(0.0, w) for w in weights.as_dict().values()),
            ),
            notes=model.notes,
            record_id=str(model.id),
            version=model.version,
        )
    metrics = model.metrics_json or {}
    return PercentageScorecard(
        raw=raw_counters_from_mapping(model.raw_json),
        derived=DerivedMetrics(**{key: to_float(metrics.get(key)) for key in METRIC_KEYS}),
        weights=resolve_weights(model.weights_json or {}),
        score=ScoreResult(
            total_score=to_float(model.total_score),
            percentage=to_float(model.percentage),
            max_possible_score=100.0,
        ),
        notes=model.notes,
        record_id=str(model.id),
        version=model.version,
    )


def apply_record(model: AgentScorecard, record: ScoreRecord) -> None:
    model.scale = record.scale
    model.weights_json = record.weights.as_dict()
    model.total_score = record.score.total_score
    model.percentage = record.score.percentage
    model.notes = record.notes
    if isinstance(record, LegacyScorecard):
        model.raw_json = None
        model.metrics_json = None
        model.legacy_ratings_json = record.ratings.as_dict()
    else:
        model.raw_json = record.raw.as_dict()
        model.metrics_json = record.derived.as_dict()
        model.legacy_ratings_json = None


def _conflict() -> ScorecardStoreError:
    return ScorecardStoreError("store_conflict", "Scorecard was changed by another writer", status_code=409)


def _find(db: Session, agent_id: uuid.UUID, month: int, year: int) -> AgentScorecard | None:
    return (
        db.query(AgentScorecard)
        .filter(
            AgentScorecard.agent_id == agent_id,
            AgentScorecard.month == month,
            AgentScorecard.year == year,
        )
        .first()
    )


class SqlAgentDirectory:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def find_agent_by_external_id(self, code: str) -> str | None:
        session = self.session_factory()
        try:
            agent_id = (
                session.query(AgentProfile.id)
                .filter(AgentProfile.employee_id == str(code).strip())
                .filter(AgentProfile.is_active.is_(True))
                .scalar()
            )
        except SQLAlchemyError as exc:
            logger.warning("Agent lookup failed for employee %s", code, exc_info=True)
            raise ScorecardStoreError("store_unavailable", "Agent directory unavailable") from exc
        finally:
            session.close()
        return str(agent_id) if agent_id else None


class SqlScoreRecordStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def get(self, agent_id: str, month: int, year: int) -> ScoreRecord | None:
        session = self.session_factory()
        try:
            model = _find(session, coerce_uuid(agent_id), month, year)
            return record_from_model(model) if model else None
        except SQLAlchemyError as exc:
            logger.warning("Scorecard read failed for %s %s/%s", agent_id, month, year, exc_info=True)
            raise ScorecardStoreError("store_unavailable", "Scorecard store unavailable") from exc
        finally:
            session.close()

    def upsert(self, agent_id: str, month: int, year: int, record: ScoreRecord) -> ScoreRecord:
        """Write ``record`` if the stored row is still the one it was merged from.

        A record without ``record_id`` may only create the row; one with an id
        must match the stored version. Anything else raises a retryable
        ``store_conflict`` so the caller re-reads and merges again.
        """
        agent_uuid = coerce_uuid(agent_id)
        session = self.session_factory()
        try:
            model = self._write(session, agent_uuid, month, year, record)
            return record_from_model(model)
        except (IntegrityError, StaleDataError) as exc:
            session.rollback()
            logger.info("Scorecard for %s %s/%s changed concurrently", agent_id, month, year)
            raise _conflict() from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("Scorecard write failed for %s %s/%s", agent_id, month, year, exc_info=True)
            raise ScorecardStoreError("store_unavailable", "Scorecard store unavailable") from exc
        finally:
            session.close()

    def _write(
        self, session: Session, agent_id: uuid.UUID, month: int, year: int, record: ScoreRecord
    ) -> AgentScorecard:
        model = _find(session, agent_id, month, year)
        if model is None:
            if record.record_id is not None:
                raise _conflict()
            model = AgentScorecard(agent_id=agent_id, month=month, year=year)
            session.add(model)
        else:
            if record.record_id != str(model.id) or record.version != model.version:
                raise _conflict()
            model.updated_at = datetime.now(UTC)
        apply_record(model, record)
        session.commit()
        session.refresh(model)
        return model
