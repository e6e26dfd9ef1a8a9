"""Postgres-backed repository for analysis jobs using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select, update

from riftcoach.core.database import get_session_factory
from riftcoach.jobs.models import JobErrorCode, JobRecord, JobStatus
from riftcoach.schema.jobs import AnalysisJob
from riftcoach.storage.jobs_repo import JobsRepository


def _to_record(row: AnalysisJob) -> JobRecord:
  return JobRecord(
    job_id=row.job_id,
    owner_id=row.owner_id,
    status=row.status,  # type: ignore[arg-type]
    request=dict(row.request_json or {}),
    created_at=row.created_at,
    result_json=row.result_json,
    error=row.error,
    error_code=JobErrorCode(row.error_code) if row.error_code else None,
    diagnostics=row.diagnostics_json,
    completed_at=row.completed_at,
  )


class PostgresJobsRepository(JobsRepository):
  """Persist analysis jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      job = AnalysisJob(
        job_id=record.job_id,
        owner_id=record.owner_id,
        status=record.status,
        request_json=record.request,
        result_json=record.result_json,
        error=record.error,
        error_code=record.error_code.value if record.error_code else None,
        diagnostics_json=record.diagnostics,
        created_at=record.created_at,
        completed_at=record.completed_at,
      )
      session.add(job)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(AnalysisJob, job_id)
      if row is None:
        return None
      return _to_record(row)

  async def finish_job(
    self,
    job_id: str,
    *,
    status: JobStatus,
    completed_at: str,
    result_json: dict[str, Any] | None = None,
    error: str | None = None,
    error_code: JobErrorCode | None = None,
    diagnostics: dict[str, Any] | None = None,
  ) -> JobRecord | None:
    if status == "processing":
      raise ValueError("finish_job requires a terminal status")
    async with self._session_factory() as session:
      # The status guard keeps terminal rows immutable even under concurrent writers.
      stmt = (
        update(AnalysisJob)
        .where(AnalysisJob.job_id == job_id, AnalysisJob.status == "processing")
        .values(status=status, completed_at=completed_at, result_json=result_json, error=error, error_code=error_code.value if error_code else None, diagnostics_json=diagnostics)
        .returning(AnalysisJob.job_id)
      )
      result = await session.execute(stmt)
      updated_id = result.scalar_one_or_none()
      await session.commit()
      if updated_id is None:
        return None

      row = (await session.execute(select(AnalysisJob).where(AnalysisJob.job_id == job_id))).scalar_one()
      return _to_record(row)

  async def latest_job(self, owner_id: str, *, match_id: str | None = None) -> JobRecord | None:
    stmt = select(AnalysisJob).where(AnalysisJob.owner_id == owner_id)
    if match_id is not None:
      stmt = stmt.where(AnalysisJob.request_json["match_id"].astext == match_id)
    stmt = stmt.order_by(AnalysisJob.created_at.desc()).limit(1)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return _to_record(row)
