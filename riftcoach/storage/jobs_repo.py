"""Storage interfaces for analysis jobs."""

from __future__ import annotations

from typing import Any, Protocol

from riftcoach.jobs.models import JobErrorCode, JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

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
    """Move a processing job to a terminal state.

    Returns None when the job does not exist or is already terminal; terminal
    rows are never rewritten.
    """

  async def latest_job(self, owner_id: str, *, match_id: str | None = None) -> JobRecord | None:
    """Most recently created job of an owner, optionally for one match."""
