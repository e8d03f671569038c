"""add agent scorecard tables

Revision ID: s1c2a3r4d5e6
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "s1c2a3r4d5e6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    scorecard_scale = postgresql.ENUM("percentage", "legacy", name="scorecardscale", create_type=False)
    scorecard_scale.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "agent_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("employee_id", name="uq_agent_profiles_employee_id"),
    )
    op.create_index("ix_agent_profiles_active", "agent_profiles", ["is_active"])

    op.create_table(
        "agent_scorecards",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("agent_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("scale", scorecard_scale, nullable=False),
        sa.Column("raw_json", sa.JSON(), nullable=True),
        sa.Column("metrics_json", sa.JSON(), nullable=True),
        sa.Column("legacy_ratings_json", sa.JSON(), nullable=True),
        sa.Column("weights_json", sa.JSON(), nullable=False),
        sa.Column("total_score", sa.Numeric(7, 2), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["agent_id"], ["agent_profiles.id"]),
        sa.UniqueConstraint("agent_id", "month", "year", name="uq_agent_scorecard_agent_month_year"),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="ck_agent_scorecard_month"),
    )
    op.create_index("ix_agent_scorecard_period", "agent_scorecards", ["year", "month"])
    op.create_index("ix_agent_scorecard_percentage", "agent_scorecards", ["percentage"])


def downgrade() -> None:
    op.drop_index("ix_agent_scorecard_percentage", table_name="agent_scorecards")
    op.drop_index("ix_agent_scorecard_period", table_name="agent_scorecards")
    op.drop_table("agent_scorecards")

    op.drop_index("ix_agent_profiles_active", table_name="agent_profiles")
    op.drop_table("agent_profiles")

    postgresql.ENUM(name="scorecardscale").drop(op.get_bind(), checkfirst=True)
