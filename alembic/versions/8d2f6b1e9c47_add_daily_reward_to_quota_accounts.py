"""Add daily reward stamp to quota accounts

Revision ID: 8d2f6b1e9c47
Revises: 4e1c9a7b2d30
Create Date: 2026-03-09

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8d2f6b1e9c47"
down_revision: str | Sequence[str] | None = "4e1c9a7b2d30"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.add_column("quota_accounts", sa.Column("last_reward_date", sa.Date(), nullable=True))

  # Reward grants are recorded alongside debits and refunds.
  op.drop_constraint("ck_quota_ledger_entries_kind", "quota_ledger_entries", type_="check")
  op.create_check_constraint("ck_quota_ledger_entries_kind", "quota_ledger_entries", "kind IN ('debit', 'refund', 'reward')")


def downgrade() -> None:
  """Downgrade schema."""
  op.execute("DELETE FROM quota_ledger_entries WHERE kind = 'reward'")
  op.drop_constraint("ck_quota_ledger_entries_kind", "quota_ledger_entries", type_="check")
  op.create_check_constraint("ck_quota_ledger_entries_kind", "quota_ledger_entries", "kind IN ('debit', 'refund')")
  op.drop_column("quota_accounts", "last_reward_date")
