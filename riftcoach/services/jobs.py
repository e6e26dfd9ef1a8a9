"""Analysis job lifecycle: submit, detached worker and poll.

A job is persisted already in `processing` state and finishes as either
`completed` (with the grounded result) or `failed` (with a short stable reason
and a compensating refund when a free credit was spent). Submission errors
(quota, authentication) are raised to the caller and never create a job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from riftcoach.ai.gateway import AllModelsFailedError, ModelGateway, ProviderCredentials
from riftcoach.ai.prompts import build_coaching_prompt, summarize_subject
from riftcoach.ai.providers.base import Attachment
from riftcoach.analysis.contracts import AnalysisResult, CoachingReport, GroundingDiagnostics
from riftcoach.analysis.grounding import filter_insights, resolve_items
from riftcoach.analysis.truth import TruthExtractor
from riftcoach.api.models import AnalysisJobCreate, JobStatusResponse
from riftcoach.config import Settings
from riftcoach.jobs.models import ERROR_MESSAGES, JobErrorCode, JobRecord
from riftcoach.jobs.supervisor import JobSupervisor
from riftcoach.services.item_catalog import ItemCatalog
from riftcoach.services.match_data import MatchDataSource
from riftcoach.services.quota_ledger import AccountNotFoundError, AccountTier, DebitReceipt, QuotaAccount, QuotaExhaustedError, QuotaLedger
from riftcoach.storage.jobs_repo import JobsRepository
from riftcoach.utils.ids import generate_job_id

logger = logging.getLogger(__name__)


class AuthRequiredError(RuntimeError):
  """Raised when the caller cannot be identified or lacks the credential its tier needs."""


class JobNotFoundError(LookupError):
  """Raised when a job does not exist or belongs to another account."""


def _now_iso() -> str:
  return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass
class _WorkerState:
  """Facts the failure path needs after the worker body was interrupted."""

  receipt: DebitReceipt | None = None


class JobOrchestrator:
  """Coordinates ledger, truth extraction, model gateway and grounding for each job."""

  def __init__(
    self,
    *,
    settings: Settings,
    jobs_repo: JobsRepository,
    ledger: QuotaLedger,
    gateway: ModelGateway,
    match_data: MatchDataSource,
    catalog: ItemCatalog,
    supervisor: JobSupervisor,
    truth_extractor: TruthExtractor | None = None,
    clock: Callable[[], str] = _now_iso,
  ) -> None:
    self._settings = settings
    self._jobs = jobs_repo
    self._ledger = ledger
    self._gateway = gateway
    self._match_data = match_data
    self._catalog = catalog
    self._supervisor = supervisor
    self._extractor = truth_extractor or TruthExtractor(max_events=settings.truth_max_events)
    self._clock = clock

  @property
  def ledger(self) -> QuotaLedger:
    return self._ledger

  @property
  def supervisor(self) -> JobSupervisor:
    return self._supervisor

  async def shutdown(self, grace_seconds: float = 10.0) -> None:
    await self._supervisor.shutdown(grace_seconds)

  async def load_account(self, owner_id: str) -> QuotaAccount:
    """Fetch the caller's account, provisioning a free one when enabled."""
    try:
      return await self._ledger.get_account(owner_id)
    except AccountNotFoundError:
      if not self._settings.auto_provision_accounts:
        raise AuthRequiredError(f"No quota account for {owner_id}.") from None
    return await self._ledger.provision(owner_id)

  def _platform_credentials(self) -> ProviderCredentials:
    return ProviderCredentials(gemini_api_key=self._settings.gemini_api_key, openrouter_api_key=self._settings.openrouter_api_key, openrouter_base_url=self._settings.openrouter_base_url)

  def _resolve_credentials(self, account: QuotaAccount, external_api_key: str | None) -> ProviderCredentials:
    # Premium jobs always run on platform keys and always count against the daily cap.
    if account.tier == AccountTier.PREMIUM:
      if external_api_key:
        logger.info("Caller key ignored for premium account owner_id=%s", account.owner_id)
      return self._platform_credentials()
    if external_api_key:
      # A caller key is a Gemini key; platform keys are never mixed in.
      return ProviderCredentials(gemini_api_key=external_api_key, caller_supplied=True)
    if account.tier == AccountTier.BRING_OWN_KEY:
      raise AuthRequiredError("Bring-your-own-key accounts must supply a provider key.")
    return self._platform_credentials()

  async def submit(self, request: AnalysisJobCreate, *, owner_id: str, external_api_key: str | None = None) -> str:
    """Validate allowance, persist a processing job and start its worker."""
    account = await self.load_account(owner_id)
    availability = self._ledger.check_availability(account, external_api_key=external_api_key)
    if not availability.allowed:
      logger.info("Submission rejected owner_id=%s reason=%s", owner_id, availability.reason)
      raise QuotaExhaustedError(availability.reason or "Quota exhausted.")

    credentials = self._resolve_credentials(account, external_api_key)
    attachments = request.attachments()

    job_id = generate_job_id()
    record = JobRecord(job_id=job_id, owner_id=owner_id, status="processing", request=request.job_metadata(), created_at=self._clock())
    await self._jobs.create_job(record)
    logger.info("Job submitted job_id=%s owner_id=%s match_id=%s mode=%s frames=%d", job_id, owner_id, request.match_id, request.mode.value, len(attachments))

    self._supervisor.spawn(job_id, self.run_job(job_id, owner_id=owner_id, request=request, attachments=attachments, credentials=credentials, external_api_key=external_api_key))
    return job_id

  async def poll(self, job_id: str, *, owner_id: str) -> JobStatusResponse:
    """Read-only job view for its owner."""
    record = await self._jobs.get_job(job_id)
    if record is None or record.owner_id != owner_id:
      raise JobNotFoundError(job_id)
    return self._to_response(record)

  async def latest(self, *, owner_id: str, match_id: str | None = None) -> JobStatusResponse:
    """Most recent job of the caller (optionally for one match), used to resume polling."""
    record = await self._jobs.latest_job(owner_id, match_id=match_id)
    if record is None:
      raise JobNotFoundError(match_id or owner_id)
    return self._to_response(record)

  def _to_response(self, record: JobRecord) -> JobStatusResponse:
    result = AnalysisResult.model_validate(record.result_json) if record.result_json is not None else None
    return JobStatusResponse(
      job_id=record.job_id,
      status=record.status,
      match_id=record.request.get("match_id"),
      result=result,
      error=record.error,
      error_code=record.error_code.value if record.error_code else None,
      created_at=record.created_at,
      completed_at=record.completed_at,
    )

  async def run_job(self, job_id: str, *, owner_id: str, request: AnalysisJobCreate, attachments: list[Attachment], credentials: ProviderCredentials, external_api_key: str | None) -> None:
    """Worker boundary: nothing raised here reaches the caller; failures land on the job."""
    state = _WorkerState()
    diagnostics: dict[str, Any] = {}
    try:
      await asyncio.wait_for(self._process(job_id, owner_id=owner_id, request=request, attachments=attachments, credentials=credentials, external_api_key=external_api_key, state=state), timeout=self._settings.job_deadline_seconds)
      return
    except TimeoutError:
      logger.warning("Job deadline exceeded job_id=%s deadline=%.0fs", job_id, self._settings.job_deadline_seconds)
      code = JobErrorCode.ANALYSIS_TIMEOUT
    except QuotaExhaustedError as exc:
      logger.info("Job quota exhausted at debit job_id=%s reason=%s", job_id, exc.reason)
      code = JobErrorCode.QUOTA_EXHAUSTED
    except AllModelsFailedError as exc:
      logger.warning("Job generation failed job_id=%s error=%s", job_id, exc)
      code = JobErrorCode.ALL_MODELS_FAILED
      diagnostics["model_failures"] = [asdict(failure) for failure in exc.failures]
    except asyncio.CancelledError:
      logger.warning("Job cancelled during shutdown job_id=%s", job_id)
      await self._fail(job_id, JobErrorCode.INTERNAL_ERROR, diagnostics={"cancelled": True}, receipt=state.receipt)
      raise
    except Exception as exc:  # noqa: BLE001
      logger.error("Job failed unexpectedly job_id=%s error_type=%s", job_id, type(exc).__name__, exc_info=True)
      code = JobErrorCode.INTERNAL_ERROR
      diagnostics["error_type"] = type(exc).__name__

    await self._fail(job_id, code, diagnostics=diagnostics, receipt=state.receipt)

  async def _process(self, job_id: str, *, owner_id: str, request: AnalysisJobCreate, attachments: list[Attachment], credentials: ProviderCredentials, external_api_key: str | None, state: _WorkerState) -> None:
    # Re-check before spending; the debit below re-checks again under the account lock.
    account = await self._ledger.get_account(owner_id)
    availability = self._ledger.check_availability(account, external_api_key=external_api_key)
    if not availability.allowed:
      raise QuotaExhaustedError(availability.reason or "Quota exhausted.")

    state.receipt = await self._ledger.debit(owner_id, job_id=job_id, external_api_key=external_api_key)
    logger.info("Job debited job_id=%s charged=%s", job_id, state.receipt.charged)

    timeline = await self._match_data.fetch_timeline(request.match_id)
    match_detail = await self._match_data.fetch_match_detail(request.match_id)

    window = request.resolve_window()
    truth_events = self._extractor.extract(timeline, request.subject_id, window)
    prompt = build_coaching_prompt(
      mode=request.mode,
      truth_events=truth_events,
      subject_summary=summarize_subject(match_detail, request.subject_id),
      window=window,
      question=request.question,
      frame_count=len(attachments),
    )

    generated = await self._gateway.generate(prompt, attachments, self._settings.model_order, CoachingReport, credentials, job_id=job_id)
    report = generated.result

    grounding = GroundingDiagnostics()
    insights = filter_insights(report.insights, truth_events, self._settings.grounding_tolerance_ms, grounding)
    items = resolve_items(report.item_recommendations, self._catalog.names_by_id(), grounding)
    result = AnalysisResult(summary=report.summary, insights=insights, item_recommendations=items, used_model=generated.used_model)

    diagnostics = {
      "truth_events": len(truth_events),
      "dropped_insights": grounding.dropped_insights,
      "dropped_items": grounding.dropped_items,
      "dropped_item_names": grounding.dropped_item_names,
      "model_attempts": generated.attempts,
      "model_failures": [asdict(failure) for failure in generated.failures],
    }
    finished = await self._jobs.finish_job(job_id, status="completed", completed_at=self._clock(), result_json=result.model_dump(mode="json"), diagnostics=diagnostics)
    if finished is None:
      logger.warning("Job already terminal; completed result discarded job_id=%s", job_id)
      return
    logger.info("Job completed job_id=%s model=%s insights=%d dropped_insights=%d items=%d", job_id, generated.used_model, len(insights), grounding.dropped_insights, len(items))

  async def _fail(self, job_id: str, code: JobErrorCode, *, diagnostics: dict[str, Any], receipt: DebitReceipt | None) -> None:
    try:
      finished = await self._jobs.finish_job(job_id, status="failed", completed_at=self._clock(), error=ERROR_MESSAGES[code], error_code=code, diagnostics=diagnostics or None)
    except Exception:  # noqa: BLE001
      # The credit is still returned even if the failure could not be recorded.
      logger.error("Failed to persist failed state job_id=%s code=%s", job_id, code.value, exc_info=True)
    else:
      if finished is None:
        logger.warning("Job already terminal; skipping failure handling job_id=%s", job_id)
        return
      logger.info("Job failed job_id=%s code=%s", job_id, code.value)

    await self._refund(job_id, receipt)

  async def _refund(self, job_id: str, receipt: DebitReceipt | None) -> None:
    if receipt is None or not receipt.charged or receipt.tier != AccountTier.FREE:
      return
    try:
      balance = await self._ledger.refund(receipt)
    except Exception:  # noqa: BLE001
      logger.error("Refund failed job_id=%s", job_id, exc_info=True)
      return
    if balance is not None:
      logger.info("Job refunded job_id=%s balance=%d", job_id, balance)
