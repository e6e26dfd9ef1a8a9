from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from riftcoach.api.deps import get_orchestrator
from riftcoach.api.models import AnalysisJobAccepted, AnalysisJobCreate, JobStatusResponse
from riftcoach.config import Settings, get_settings
from riftcoach.core.security import CallerIdentity, get_caller_identity
from riftcoach.jobs.models import JobErrorCode
from riftcoach.services.jobs import AuthRequiredError, JobNotFoundError, JobOrchestrator
from riftcoach.services.quota_ledger import QuotaExhaustedError

router = APIRouter()


@router.post("/jobs", response_model=AnalysisJobAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_analysis_job(
  payload: AnalysisJobCreate,
  identity: CallerIdentity = Depends(get_caller_identity),  # noqa: B008
  orchestrator: JobOrchestrator = Depends(get_orchestrator),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> AnalysisJobAccepted:
  """Start an analysis job and return its id for polling."""
  try:
    job_id = await orchestrator.submit(payload, owner_id=identity.owner_id, external_api_key=identity.external_api_key)
  except QuotaExhaustedError as exc:
    raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail={"error": JobErrorCode.QUOTA_EXHAUSTED.value, "reason": exc.reason}) from exc
  except AuthRequiredError as exc:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": JobErrorCode.AUTH_REQUIRED.value}) from exc

  return AnalysisJobAccepted(job_id=job_id, poll_interval_seconds=settings.poll_interval_seconds)


@router.get("/jobs/latest", response_model=JobStatusResponse)
async def get_latest_analysis_job(
  match_id: str | None = Query(default=None, min_length=1, max_length=64),  # noqa: B008
  identity: CallerIdentity = Depends(get_caller_identity),  # noqa: B008
  orchestrator: JobOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> JobStatusResponse:
  """Return the caller's most recent job, optionally for one match, so a client can resume polling."""
  try:
    return await orchestrator.latest(owner_id=identity.owner_id, match_id=match_id)
  except JobNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.") from exc


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_analysis_job(
  job_id: str,
  identity: CallerIdentity = Depends(get_caller_identity),  # noqa: B008
  orchestrator: JobOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> JobStatusResponse:
  """Return the current status of an analysis job owned by the caller."""
  try:
    return await orchestrator.poll(job_id, owner_id=identity.owner_id)
  except JobNotFoundError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.") from exc
