"""Create analysis jobs, quota accounts and quota ledger entries.

Revision ID: 4e1c9a7b2d30
Revises:
Create Date: 2026-03-02
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "4e1c9a7b2d30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "analysis_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("request_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("result_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error", sa.Text(), nullable=True),
    sa.Column("error_code", sa.String(), nullable=True),
    sa.Column("diagnostics_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", sa.String(), server_default=sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')"""), nullable=False),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.CheckConstraint("status IN ('processing', 'completed', 'failed')", name="ck_analysis_jobs_status"),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_analysis_jobs_owner_id"), "analysis_jobs", ["owner_id"], unique=False)
  op.create_index("ix_analysis_jobs_owner_created", "analysis_jobs", ["owner_id", "created_at"], unique=False)

  op.create_table(
    "quota_accounts",
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("tier", sa.String(), server_default="free", nullable=False),
    sa.Column("credit_balance", sa.Integer(), server_default="0", nullable=False),
    sa.Column("daily_usage_count", sa.Integer(), server_default="0", nullable=False),
    sa.Column("last_usage_date", sa.Date(), nullable=True),
    sa.Column("last_credit_update", sa.DateTime(timezone=True), nullable=True),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("credit_balance >= 0", name="ck_quota_accounts_credit_balance_non_negative"),
    sa.CheckConstraint("daily_usage_count >= 0", name="ck_quota_accounts_daily_usage_non_negative"),
    sa.CheckConstraint("tier IN ('free', 'premium', 'bring_own_key')", name="ck_quota_accounts_tier"),
    sa.PrimaryKeyConstraint("owner_id"),
  )

  op.create_table(
    "quota_ledger_entries",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("owner_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("kind", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("kind IN ('debit', 'refund')", name="ck_quota_ledger_entries_kind"),
    sa.ForeignKeyConstraint(["owner_id"], ["quota_accounts.owner_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("job_id", "kind", name="ux_quota_ledger_entries_job_kind"),
  )
  op.create_index(op.f("ix_quota_ledger_entries_owner_id"), "quota_ledger_entries", ["owner_id"], unique=False)
  op.create_index(op.f("ix_quota_ledger_entries_job_id"), "quota_ledger_entries", ["job_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_quota_ledger_entries_job_id"), table_name="quota_ledger_entries")
  op.drop_index(op.f("ix_quota_ledger_entries_owner_id"), table_name="quota_ledger_entries")
  op.drop_table("quota_ledger_entries")
  op.drop_table("quota_accounts")
  op.drop_index("ix_analysis_jobs_owner_created", table_name="analysis_jobs")
  op.drop_index(op.f("ix_analysis_jobs_owner_id"), table_name="analysis_jobs")
  op.drop_table("analysis_jobs")
