"""Ownership of detached job tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class JobSupervisor:
  """Keep strong references to running job tasks and drain them on shutdown.

  Callers cannot cancel individual jobs; cancellation only happens when
  `shutdown` runs out of grace time.
  """

  def __init__(self) -> None:
    self._tasks: dict[str, asyncio.Task[None]] = {}
    self._closed = False

  @property
  def active_job_ids(self) -> list[str]:
    return list(self._tasks)

  def spawn(self, job_id: str, work: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
    if self._closed:
      work.close()
      raise RuntimeError("Job supervisor is shut down.")
    if job_id in self._tasks:
      work.close()
      raise ValueError(f"Job {job_id} is already running.")

    task = asyncio.create_task(work, name=f"analysis-job-{job_id}")
    self._tasks[job_id] = task
    task.add_done_callback(lambda finished: self._on_done(job_id, finished))
    return task

  def _on_done(self, job_id: str, task: asyncio.Task[None]) -> None:
    self._tasks.pop(job_id, None)
    if task.cancelled():
      logger.warning("Job task cancelled job_id=%s", job_id)
      return
    exc = task.exception()
    # Workers record their own failures; anything reaching here escaped the worker boundary.
    if exc is not None:
      logger.error("Job task crashed job_id=%s", job_id, exc_info=exc)

  async def wait_idle(self) -> None:
    """Wait until every task spawned so far has finished."""
    while self._tasks:
      await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

  async def shutdown(self, grace_seconds: float = 10.0) -> None:
    self._closed = True
    pending = list(self._tasks.values())
    if not pending:
      return
    logger.info("Draining %d running job(s)", len(pending))
    _, still_running = await asyncio.wait(pending, timeout=grace_seconds)
    for task in still_running:
      task.cancel()
    if still_running:
      await asyncio.gather(*still_running, return_exceptions=True)
