"""FastAPI dependencies wiring the orchestrator and its collaborators."""

from __future__ import annotations

import logging

from fastapi import Request

from riftcoach.ai.backoff import ExponentialBackoff
from riftcoach.ai.gateway import ModelGateway
from riftcoach.config import Settings, get_settings
from riftcoach.jobs.supervisor import JobSupervisor
from riftcoach.services.item_catalog import load_item_catalog
from riftcoach.services.jobs import JobOrchestrator
from riftcoach.services.match_data import RiotMatchDataSource
from riftcoach.services.quota_ledger import QuotaLedger
from riftcoach.storage.factory import build_repositories

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> JobOrchestrator:
  """Assemble the production object graph from settings."""
  jobs_repo, accounts_repo = build_repositories(settings)
  ledger = QuotaLedger(accounts_repo, premium_daily_cap=settings.premium_daily_cap, free_credit_cap=settings.free_credit_cap)
  gateway = ModelGateway(max_attempts=settings.model_max_attempts, backoff=ExponentialBackoff(base_seconds=settings.backoff_base_seconds, max_seconds=settings.backoff_max_seconds))
  match_data = RiotMatchDataSource(settings.riot_api_key, region=settings.riot_region)
  catalog = load_item_catalog(settings.item_catalog_path)
  return JobOrchestrator(settings=settings, jobs_repo=jobs_repo, ledger=ledger, gateway=gateway, match_data=match_data, catalog=catalog, supervisor=JobSupervisor())


def get_orchestrator(request: Request) -> JobOrchestrator:
  """Return the app-wide orchestrator, building it on first use."""
  orchestrator = getattr(request.app.state, "orchestrator", None)
  if orchestrator is None:
    orchestrator = build_orchestrator(get_settings())
    request.app.state.orchestrator = orchestrator
    logger.info("Job orchestrator initialized")
  return orchestrator
