"""Shared fixtures: test settings, scripted model backends, fake match data and wired orchestrators."""

from __future__ import annotations

import datetime
import os
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

# Required settings must exist before the app module is imported.
os.environ.setdefault("RIFTCOACH_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("RIFTCOACH_STORAGE_BACKEND", "memory")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from riftcoach.ai.backoff import ExponentialBackoff  # noqa: E402
from riftcoach.ai.gateway import ModelGateway  # noqa: E402
from riftcoach.ai.providers.base import AIModel, Attachment, Provider, StructuredModelResponse  # noqa: E402
from riftcoach.config import Settings, get_settings  # noqa: E402
from riftcoach.jobs.supervisor import JobSupervisor  # noqa: E402
from riftcoach.services.item_catalog import StaticItemCatalog  # noqa: E402
from riftcoach.services.jobs import JobOrchestrator  # noqa: E402
from riftcoach.services.quota_ledger import QuotaLedger  # noqa: E402
from riftcoach.storage.memory_accounts_repo import InMemoryAccountsRepository  # noqa: E402
from riftcoach.storage.memory_jobs_repo import InMemoryJobsRepository  # noqa: E402

SUBJECT_PUUID = "puuid-subject"
MATCH_ID = "KR_7000000001"
FIXED_NOW = datetime.datetime(2026, 3, 10, 12, 0, 0, tzinfo=datetime.UTC)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


class RateLimitError(Exception):
  """Mimics an SDK error carrying an HTTP 429 status."""

  status_code = 429

  def __init__(self, message: str = "Too Many Requests") -> None:
    super().__init__(message)


class ScriptedModel(AIModel):
  """Model that replays a script of payloads or exceptions, one per call."""

  def __init__(self, name: str, script: Sequence[dict[str, Any] | BaseException]) -> None:
    self.name = name
    self.supports_attachments = True
    self._script = list(script)
    self.calls = 0
    self.last_attachments: Sequence[Attachment] = ()

  async def generate_structured(self, prompt: str, schema: dict[str, Any], attachments: Sequence[Attachment] = ()) -> StructuredModelResponse:
    self.calls += 1
    self.last_attachments = attachments
    outcome = self._script.pop(0) if len(self._script) > 1 else self._script[0]
    if isinstance(outcome, BaseException):
      raise outcome
    return StructuredModelResponse(content=outcome)


class ScriptedProvider(Provider):
  def __init__(self, models: Sequence[ScriptedModel]) -> None:
    self.name = "scripted"
    self._models = {model.name: model for model in models}

  def get_model(self, model: str | None = None) -> AIModel:
    if model not in self._models:
      raise ValueError(f"Unsupported model '{model}'.")
    return self._models[model]


class RecordingSleep:
  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


def build_gateway(models: Sequence[ScriptedModel], *, max_attempts: int = 3, sleep: RecordingSleep | None = None) -> ModelGateway:
  provider = ScriptedProvider(models)
  return ModelGateway(max_attempts=max_attempts, backoff=ExponentialBackoff(base_seconds=2, max_seconds=30), provider_factories={"gemini": lambda _credentials: provider, "openrouter": lambda _credentials: provider}, sleep=sleep or RecordingSleep())


def report_payload(*, insights: Sequence[dict[str, Any]] = (), items: Sequence[str] = (), summary: str = "Solid laning, late objective calls.") -> dict[str, Any]:
  return {"summary": summary, "insights": list(insights), "item_recommendations": [{"name": name, "reason": "test"} for name in items]}


def insight(timestamp: int, title: str = "Moment", kind: str = "MISTAKE") -> dict[str, Any]:
  return {"timestamp": timestamp, "title": title, "description": "What happened", "type": kind, "advice": "Do better"}


def kill_event(timestamp: int, killer: int, victim: int, assists: Sequence[int] = ()) -> dict[str, Any]:
  return {"type": "CHAMPION_KILL", "timestamp": timestamp, "killerId": killer, "victimId": victim, "assistingParticipantIds": list(assists)}


def dragon_event(timestamp: int, killer: int = 1) -> dict[str, Any]:
  return {"type": "ELITE_MONSTER_KILL", "timestamp": timestamp, "killerId": killer, "killerTeamId": 100, "monsterType": "DRAGON", "monsterSubType": "FIRE_DRAGON"}


def tower_event(timestamp: int, killer: int = 1) -> dict[str, Any]:
  return {"type": "BUILDING_KILL", "timestamp": timestamp, "killerId": killer, "buildingType": "TOWER_BUILDING", "towerType": "OUTER_TURRET", "laneType": "MID_LANE", "assistingParticipantIds": []}


def make_timeline(*frames: Sequence[dict[str, Any]]) -> dict[str, Any]:
  participants = [{"participantId": 1, "puuid": SUBJECT_PUUID}] + [{"participantId": pid, "puuid": f"puuid-{pid}"} for pid in range(2, 11)]
  return {"metadata": {"matchId": MATCH_ID}, "info": {"participants": participants, "frames": [{"timestamp": index * 60_000, "events": list(events)} for index, events in enumerate(frames)]}}


def make_match_detail() -> dict[str, Any]:
  return {"info": {"participants": [{"participantId": 1, "puuid": SUBJECT_PUUID, "championName": "Ahri", "teamPosition": "MIDDLE", "kills": 4, "deaths": 2, "assists": 7, "win": True}]}}


class FakeMatchData:
  def __init__(self, timeline: dict[str, Any] | None = None, detail: dict[str, Any] | None = None) -> None:
    self.timeline = timeline or make_timeline([dragon_event(125_000)], [kill_event(130_000, 1, 6)], [tower_event(300_000)])
    self.detail = detail or make_match_detail()
    self.timeline_calls = 0

  async def fetch_timeline(self, match_id: str) -> dict[str, Any]:
    self.timeline_calls += 1
    return self.timeline

  async def fetch_match_detail(self, match_id: str) -> dict[str, Any]:
    return self.detail


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), gemini_api_key="platform-gemini-key", openrouter_api_key="platform-openrouter-key", model_order=("gemini-2.5-flash", "gemini-2.0-flash"), auto_provision_accounts=False, job_deadline_seconds=5.0)


@pytest.fixture
def clock():
  return lambda: FIXED_NOW


@pytest.fixture
def accounts_repo() -> InMemoryAccountsRepository:
  return InMemoryAccountsRepository()


@pytest.fixture
def ledger(accounts_repo, clock) -> QuotaLedger:
  return QuotaLedger(accounts_repo, premium_daily_cap=20, free_credit_cap=3, clock=clock)


@pytest.fixture
def catalog() -> StaticItemCatalog:
  return StaticItemCatalog({"3089": "Rabadon's Deathcap", "3157": "Zhonya's Hourglass", "3135": "Void Staff"})


def build_orchestrator(settings: Settings, *, ledger: QuotaLedger, gateway: ModelGateway, catalog: StaticItemCatalog, match_data: FakeMatchData | None = None, jobs_repo: InMemoryJobsRepository | None = None) -> JobOrchestrator:
  return JobOrchestrator(
    settings=settings,
    jobs_repo=jobs_repo or InMemoryJobsRepository(),
    ledger=ledger,
    gateway=gateway,
    match_data=match_data or FakeMatchData(),
    catalog=catalog,
    supervisor=JobSupervisor(),
  )


@pytest.fixture
async def async_client():
  from riftcoach.main import app

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
  if hasattr(app.state, "orchestrator"):
    del app.state.orchestrator
