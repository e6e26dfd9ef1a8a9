from __future__ import annotations

import asyncio

import pytest

from riftcoach.jobs.supervisor import JobSupervisor


@pytest.mark.anyio
async def test_tracks_tasks_until_done() -> None:
  supervisor = JobSupervisor()
  gate = asyncio.Event()

  async def work() -> None:
    await gate.wait()

  supervisor.spawn("job-1", work())
  assert supervisor.active_job_ids == ["job-1"]

  gate.set()
  await supervisor.wait_idle()
  assert supervisor.active_job_ids == []


@pytest.mark.anyio
async def test_duplicate_and_post_shutdown_spawns_rejected() -> None:
  supervisor = JobSupervisor()
  gate = asyncio.Event()

  async def work() -> None:
    await gate.wait()

  supervisor.spawn("job-1", work())
  with pytest.raises(ValueError):
    supervisor.spawn("job-1", work())

  gate.set()
  await supervisor.shutdown(grace_seconds=1)
  with pytest.raises(RuntimeError):
    supervisor.spawn("job-2", work())


@pytest.mark.anyio
async def test_shutdown_cancels_after_grace() -> None:
  supervisor = JobSupervisor()
  cancelled = asyncio.Event()

  async def stuck() -> None:
    try:
      await asyncio.sleep(30)
    except asyncio.CancelledError:
      cancelled.set()
      raise

  supervisor.spawn("job-1", stuck())
  await asyncio.sleep(0)
  await supervisor.shutdown(grace_seconds=0.01)

  assert cancelled.is_set()
  assert supervisor.active_job_ids == []
