"""Select repository implementations from settings."""

from __future__ import annotations

import logging

from riftcoach.config import Settings
from riftcoach.storage.accounts_repo import AccountsRepository
from riftcoach.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


def build_repositories(settings: Settings) -> tuple[JobsRepository, AccountsRepository]:
  """Return the jobs and accounts repositories for the configured backend."""
  if settings.storage_backend == "postgres":
    from riftcoach.storage.postgres_accounts_repo import PostgresAccountsRepository
    from riftcoach.storage.postgres_jobs_repo import PostgresJobsRepository

    logger.info("Using Postgres storage backend")
    return PostgresJobsRepository(), PostgresAccountsRepository()

  from riftcoach.storage.memory_accounts_repo import InMemoryAccountsRepository
  from riftcoach.storage.memory_jobs_repo import InMemoryJobsRepository

  logger.info("Using in-memory storage backend; state is lost on restart")
  return InMemoryJobsRepository(), InMemoryAccountsRepository()
