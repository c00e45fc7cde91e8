"""Create companies, discovery results, theses, audit log and meeting notes tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "4b2e9c1f7a10"
down_revision = None
branch_labels = None
depends_on = None

UTC_NOW = sa.text("timezone('utc', now())")


def _id_column() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=UTC_NOW)


def upgrade() -> None:
    op.create_table(
        "companies",
        _id_column(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("segment", sa.String(length=255), nullable=True),
        sa.Column("geography", sa.String(length=255), nullable=True),
        sa.Column("company_focus", sa.Text(), nullable=True),
        sa.Column("ownership", sa.String(length=255), nullable=True),
        sa.Column("website", sa.String(length=512), nullable=True),
        sa.Column("revenue_2022_usd_mn", sa.Float(), nullable=True),
        sa.Column("revenue_2023_usd_mn", sa.Float(), nullable=True),
        sa.Column("revenue_2024_usd_mn", sa.Float(), nullable=True),
        sa.Column("ebitda_2022_usd_mn", sa.Float(), nullable=True),
        sa.Column("ebitda_2023_usd_mn", sa.Float(), nullable=True),
        sa.Column("ebitda_2024_usd_mn", sa.Float(), nullable=True),
        sa.Column("ev_2024", sa.Float(), nullable=True),
        sa.Column("pipeline_stage", sa.String(length=8), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_companies_name", "companies", ["name"])
    op.create_index("ix_companies_pipeline_stage", "companies", ["pipeline_stage"])

    op.create_table(
        "investment_thesis",
        _id_column(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("scan_frequency", sa.String(length=16), nullable=False),
        sa.Column("sources_count", sa.Integer(), nullable=False),
        _timestamp("last_scan_at", nullable=True),
        _timestamp("next_scan_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "market_screening_results",
        _id_column(),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("sector", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("match_score", sa.Float(), nullable=True),
        sa.Column("match_reason", sa.Text(), nullable=True),
        sa.Column("website", sa.String(length=512), nullable=True),
        sa.Column("estimated_revenue", sa.String(length=128), nullable=True),
        sa.Column("estimated_valuation", sa.String(length=128), nullable=True),
        sa.Column("is_added_to_pipeline", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("thesis_id", postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp("discovered_at"),
    )
    op.create_index("ix_market_screening_added", "market_screening_results", ["is_added_to_pipeline"])
    op.create_index("ix_market_screening_thesis", "market_screening_results", ["thesis_id"])

    op.create_table(
        "company_logs",
        _id_column(),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_company_logs_company_id", "company_logs", ["company_id"])

    op.create_table(
        "meeting_notes",
        _id_column(),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("file_key", sa.String(length=1024), nullable=False),
        sa.Column("content_type", sa.String(length=255), nullable=False),
        sa.Column("processing_status", sa.String(length=16), nullable=False),
        sa.Column("raw_notes", sa.Text(), nullable=True),
        sa.Column("structured_notes", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("matched_companies", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("file_date", sa.String(length=32), nullable=True),
        _timestamp("created_at"),
    )


def downgrade() -> None:
    op.drop_table("meeting_notes")
    op.drop_index("ix_company_logs_company_id", table_name="company_logs")
    op.drop_table("company_logs")
    op.drop_index("ix_market_screening_thesis", table_name="market_screening_results")
    op.drop_index("ix_market_screening_added", table_name="market_screening_results")
    op.drop_table("market_screening_results")
    op.drop_table("investment_thesis")
    op.drop_index("ix_companies_pipeline_stage", table_name="companies")
    op.drop_index("ix_companies_name", table_name="companies")
    op.drop_table("companies")
