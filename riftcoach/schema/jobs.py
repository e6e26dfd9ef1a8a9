from __future__ import annotations

from sqlalchemy import CheckConstraint, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from riftcoach.core.database import Base


class AnalysisJob(Base):
  __tablename__ = "analysis_jobs"
  __table_args__ = (
    CheckConstraint("status IN ('processing', 'completed', 'failed')", name="ck_analysis_jobs_status"),
    Index("ix_analysis_jobs_owner_created", "owner_id", "created_at"),
  )

  job_id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False)
  request_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_code: Mapped[str | None] = mapped_column(String, nullable=True)
  diagnostics_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')"""))
  completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
