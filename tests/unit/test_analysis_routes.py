"""HTTP surface tests for job submission, polling and quota status."""

from __future__ import annotations

import pytest
from conftest import FIXED_NOW, MATCH_ID, SUBJECT_PUUID, ScriptedModel, build_gateway, build_orchestrator, insight, report_payload

from riftcoach.core.security import ACCOUNT_HEADER
from riftcoach.services.quota_ledger import AccountTier, QuotaAccount

JOB_BODY = {"subject_id": SUBJECT_PUUID, "match_id": MATCH_ID, "mode": "MACRO", "time_window": "EARLY"}


@pytest.fixture
def orchestrator(settings, ledger, catalog):
  from riftcoach.main import app

  model = ScriptedModel("gemini-2.5-flash", [report_payload(insights=[insight(125_000)], items=["Void Staff"])])
  instance = build_orchestrator(settings, ledger=ledger, gateway=build_gateway([model]), catalog=catalog)
  app.state.orchestrator = instance
  return instance


async def _seed(accounts_repo, owner_id: str, balance: int) -> None:
  await accounts_repo.ensure(QuotaAccount(owner_id=owner_id, tier=AccountTier.FREE, credit_balance=balance, last_credit_update=FIXED_NOW))


@pytest.mark.anyio
async def test_submit_then_poll(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 2)

  response = await async_client.post("/v1/analysis/jobs", json=JOB_BODY, headers={ACCOUNT_HEADER: "acct-1"})

  assert response.status_code == 202
  body = response.json()
  assert body["poll_interval_seconds"] > 0
  assert response.headers.get("x-request-id")

  await orchestrator.supervisor.wait_idle()
  polled = await async_client.get(f"/v1/analysis/jobs/{body['job_id']}", headers={ACCOUNT_HEADER: "acct-1"})

  assert polled.status_code == 200
  payload = polled.json()
  assert payload["status"] == "completed"
  assert payload["result"]["item_recommendations"][0]["resolved_catalog_id"] == "3135"
  assert "diagnostics" not in payload


@pytest.mark.anyio
async def test_missing_account_header_is_rejected(async_client, orchestrator) -> None:
  response = await async_client.post("/v1/analysis/jobs", json=JOB_BODY)

  assert response.status_code == 401
  assert response.json()["detail"] == {"error": "AUTH_REQUIRED"}


@pytest.mark.anyio
async def test_unknown_account_is_rejected(async_client, orchestrator) -> None:
  response = await async_client.post("/v1/analysis/jobs", json=JOB_BODY, headers={ACCOUNT_HEADER: "ghost"})

  assert response.status_code == 401


@pytest.mark.anyio
async def test_exhausted_quota_returns_402_without_job(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-broke", 0)

  response = await async_client.post("/v1/analysis/jobs", json=JOB_BODY, headers={ACCOUNT_HEADER: "acct-broke"})

  assert response.status_code == 402
  assert response.json()["detail"]["error"] == "QUOTA_EXHAUSTED"
  assert orchestrator.supervisor.active_job_ids == []


@pytest.mark.anyio
async def test_poll_of_foreign_job_is_404(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 1)
  created = await async_client.post("/v1/analysis/jobs", json=JOB_BODY, headers={ACCOUNT_HEADER: "acct-1"})
  await orchestrator.supervisor.wait_idle()

  response = await async_client.get(f"/v1/analysis/jobs/{created.json()['job_id']}", headers={ACCOUNT_HEADER: "acct-2"})

  assert response.status_code == 404
  assert response.json()["detail"] == "Job not found."


@pytest.mark.anyio
async def test_vision_without_frames_is_a_validation_error(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 1)

  response = await async_client.post("/v1/analysis/jobs", json={**JOB_BODY, "mode": "VISION"}, headers={ACCOUNT_HEADER: "acct-1"})

  assert response.status_code == 422
  assert all("input" not in error for error in response.json()["detail"])
  assert (await orchestrator.ledger.get_account("acct-1")).credit_balance == 1


@pytest.mark.anyio
async def test_invalid_frame_is_rejected(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 1)
  body = {**JOB_BODY, "mode": "VISION", "evidence": {"frames": ["not-a-data-url"]}}

  response = await async_client.post("/v1/analysis/jobs", json=body, headers={ACCOUNT_HEADER: "acct-1"})

  assert response.status_code == 422


@pytest.mark.anyio
async def test_quota_status(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 0)

  response = await async_client.get("/v1/quota", headers={ACCOUNT_HEADER: "acct-1"})

  assert response.status_code == 200
  body = response.json()
  assert body["tier"] == "free"
  assert body["credit_balance"] == 0
  assert body["credit_cap"] == 3
  assert body["allowed"] is False


@pytest.mark.anyio
async def test_latest_job_resumes_polling(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 1)
  created = await async_client.post("/v1/analysis/jobs", json=JOB_BODY, headers={ACCOUNT_HEADER: "acct-1"})
  await orchestrator.supervisor.wait_idle()

  latest = await async_client.get("/v1/analysis/jobs/latest", params={"match_id": MATCH_ID}, headers={ACCOUNT_HEADER: "acct-1"})
  missing = await async_client.get("/v1/analysis/jobs/latest", params={"match_id": "KR_1"}, headers={ACCOUNT_HEADER: "acct-1"})

  assert latest.status_code == 200
  assert latest.json()["job_id"] == created.json()["job_id"]
  assert latest.json()["match_id"] == MATCH_ID
  assert missing.status_code == 404


@pytest.mark.anyio
async def test_daily_reward_claim(async_client, orchestrator, accounts_repo) -> None:
  await _seed(accounts_repo, "acct-1", 0)

  claimed = await async_client.post("/v1/quota/daily-reward", headers={ACCOUNT_HEADER: "acct-1"})
  again = await async_client.post("/v1/quota/daily-reward", headers={ACCOUNT_HEADER: "acct-1"})
  status_body = (await async_client.get("/v1/quota", headers={ACCOUNT_HEADER: "acct-1"})).json()

  assert claimed.status_code == 200
  assert claimed.json() == {"credit_balance": 1, "claimed_on": FIXED_NOW.date().isoformat()}
  assert again.status_code == 409
  assert again.json()["detail"]["error"] == "REWARD_UNAVAILABLE"
  assert status_body["credit_balance"] == 1
  assert status_body["daily_reward_available"] is False


@pytest.mark.anyio
async def test_health(async_client) -> None:
  response = await async_client.get("/health")

  assert response.status_code == 200
  assert response.json()["status"] == "ok"
