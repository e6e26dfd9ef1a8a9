"""SQLAlchemy models for per-account analysis allowance."""

from __future__ import annotations

import datetime

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from riftcoach.core.database import Base


class QuotaAccountRow(Base):
  __tablename__ = "quota_accounts"
  __table_args__ = (
    CheckConstraint("credit_balance >= 0", name="ck_quota_accounts_credit_balance_non_negative"),
    CheckConstraint("daily_usage_count >= 0", name="ck_quota_accounts_daily_usage_non_negative"),
    CheckConstraint("tier IN ('free', 'premium', 'bring_own_key')", name="ck_quota_accounts_tier"),
  )

  owner_id: Mapped[str] = mapped_column(String, primary_key=True)
  tier: Mapped[str] = mapped_column(String, nullable=False, default="free", server_default="free")
  credit_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  daily_usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  last_usage_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
  last_credit_update: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  last_reward_date: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class QuotaLedgerEntryRow(Base):
  __tablename__ = "quota_ledger_entries"
  __table_args__ = (
    UniqueConstraint("job_id", "kind", name="ux_quota_ledger_entries_job_kind"),
    CheckConstraint("kind IN ('debit', 'refund', 'reward')", name="ck_quota_ledger_entries_kind"),
  )

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  owner_id: Mapped[str] = mapped_column(ForeignKey("quota_accounts.owner_id", ondelete="CASCADE"), nullable=False, index=True)
  job_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  kind: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
