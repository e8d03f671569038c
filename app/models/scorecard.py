import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class ScorecardScale(enum.Enum):
    percentage = "percentage"
    legacy = "legacy"


class AgentProfile(Base):
    __tablename__ = "agent_profiles"
    __table_args__ = (Index("ix_agent_profiles_active", "is_active"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    scorecards = relationship("AgentScorecard", back_populates="agent")


class AgentScorecard(Base):
    __tablename__ = "agent_scorecards"
    __table_args__ = (
        UniqueConstraint("agent_id", "month", "year", name="uq_agent_scorecard_agent_month_year"),
        Index("ix_agent_scorecard_period", "year", "month"),
        Index("ix_agent_scorecard_percentage", "percentage"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("agent_profiles.id"), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    scale: Mapped[ScorecardScale] = mapped_column(Enum(ScorecardScale), nullable=False)
    raw_json: Mapped[dict | None] = mapped_column(JSON)
    metrics_json: Mapped[dict | None] = mapped_column(JSON)
    legacy_ratings_json: Mapped[dict | None] = mapped_column(JSON)
    weights_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    total_score: Mapped[float] = mapped_column(Numeric(7, 2, asdecimal=False), nullable=False)
    percentage: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    agent = relationship("AgentProfile", back_populates="scorecards")

    __mapper_args__ = {"version_id_col": version}
