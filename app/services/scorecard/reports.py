from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.models.scorecard import AgentProfile, AgentScorecard
from app.services.scorecard.calculations import calculate_trends, calculate_yearly_average, to_float
from app.services.scorecard.errors import AgentNotFoundError, ScorecardValidationError
from app.services.scorecard.stores import coerce_uuid


def previous_period(month: int, year: int) -> tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def flatten_scorecard(scorecard: AgentScorecard) -> dict[str, float]:
    flat: dict[str, float] = {}
    for bundle in (scorecard.metrics_json, scorecard.legacy_ratings_json):
        if isinstance(bundle, dict):
            flat.update({key: to_float(value) for key, value in bundle.items()})
    flat["total_score"] = to_float(scorecard.total_score)
    flat["percentage"] = to_float(scorecard.percentage)
    return flat


class ScorecardReportsService:
    def _scorecards(
        self, db: Session, agent_id: str, year: int, month: int | None = None
    ) -> list[AgentScorecard]:
        query = db.query(AgentScorecard).filter(
            AgentScorecard.agent_id == coerce_uuid(agent_id),
            AgentScorecard.year == year,
        )
        if month is not None:
            query = query.filter(AgentScorecard.month == month)
        return query.order_by(AgentScorecard.month.asc()).all()

    def agent_scorecard(self, db: Session, agent_id: str, year: int, month: int | None = None) -> dict[str, Any]:
        """Month view with trends against the previous month, or the year with averages."""
        if month is not None and not 1 <= month <= 12:
            raise ScorecardValidationError("invalid_period", f"Month must be between 1 and 12, got {month}")
        if not db.get(AgentProfile, coerce_uuid(agent_id)):
            raise AgentNotFoundError("agent_not_found", "Agent not found")

        scorecards = self._scorecards(db, agent_id, year, month)
        report: dict[str, Any] = {
            "agent_id": coerce_uuid(agent_id),
            "year": year,
            "month": month,
            "scorecards": scorecards,
            "trends": None,
            "yearly_average": None,
        }
        if month is None:
            if scorecards:
                report["yearly_average"] = calculate_yearly_average([flatten_scorecard(s) for s in scorecards])
            return report

        previous_month, previous_year = previous_period(month, year)
        previous = self._scorecards(db, agent_id, previous_year, previous_month)
        if scorecards and previous:
            report["trends"] = calculate_trends(flatten_scorecard(scorecards[0]), flatten_scorecard(previous[0]))
        return report


scorecard_reports = ScorecardReportsService()
