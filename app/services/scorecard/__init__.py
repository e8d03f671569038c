from app.services.scorecard.calculations import compute_metrics, compute_total_score
from app.services.scorecard.imports import scorecard_imports
from app.services.scorecard.metrics import DEFAULT_WEIGHTS
from app.services.scorecard.reports import scorecard_reports

__all__ = ["DEFAULT_WEIGHTS", "compute_metrics", "compute_total_score", "scorecard_imports", "scorecard_reports"]
