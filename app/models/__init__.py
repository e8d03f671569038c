from app.models.scorecard import AgentProfile, AgentScorecard, ScorecardScale  # noqa: F401
