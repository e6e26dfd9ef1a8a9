"""In-process job repository for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import replace
from typing import Any

from riftcoach.jobs.models import JobErrorCode, JobRecord, JobStatus
from riftcoach.storage.jobs_repo import JobsRepository


class InMemoryJobsRepository(JobsRepository):
  """Keep job records in a dict guarded by a single lock."""

  def __init__(self) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._lock = asyncio.Lock()

  async def create_job(self, record: JobRecord) -> None:
    async with self._lock:
      if record.job_id in self._jobs:
        raise ValueError(f"Job {record.job_id} already exists.")
      self._jobs[record.job_id] = copy.deepcopy(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._lock:
      record = self._jobs.get(job_id)
      # Hand out copies so callers cannot mutate stored state.
      return copy.deepcopy(record) if record is not None else None

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
    async with self._lock:
      record = self._jobs.get(job_id)
      if record is None or record.is_terminal:
        return None
      updated = replace(record, status=status, completed_at=completed_at, result_json=copy.deepcopy(result_json), error=error, error_code=error_code, diagnostics=copy.deepcopy(diagnostics))
      self._jobs[job_id] = updated
      return copy.deepcopy(updated)

  async def latest_job(self, owner_id: str, *, match_id: str | None = None) -> JobRecord | None:
    async with self._lock:
      candidates = [record for record in self._jobs.values() if record.owner_id == owner_id and (match_id is None or record.request.get("match_id") == match_id)]
      if not candidates:
        return None
      # Timestamps have second resolution; the later insert wins a tie.
      latest = max(reversed(candidates), key=lambda record: record.created_at)
      return copy.deepcopy(latest)
