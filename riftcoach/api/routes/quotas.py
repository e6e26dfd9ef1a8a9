from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from riftcoach.api.deps import get_orchestrator
from riftcoach.api.models import DailyRewardResponse, QuotaStatusResponse
from riftcoach.core.security import CallerIdentity, get_caller_identity
from riftcoach.jobs.models import JobErrorCode
from riftcoach.services.jobs import AuthRequiredError, JobOrchestrator
from riftcoach.services.quota_ledger import AccountTier, RewardUnavailableError

router = APIRouter()


@router.get("", response_model=QuotaStatusResponse)
async def get_quota_status(
  identity: CallerIdentity = Depends(get_caller_identity),  # noqa: B008
  orchestrator: JobOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> QuotaStatusResponse:
  """Return the caller's allowance as the ledger currently sees it."""
  try:
    account = await orchestrator.load_account(identity.owner_id)
  except AuthRequiredError as exc:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": JobErrorCode.AUTH_REQUIRED.value}) from exc

  ledger = orchestrator.ledger
  current = ledger.view(account)
  availability = ledger.check_availability(account, external_api_key=identity.external_api_key)
  return QuotaStatusResponse(
    tier=current.tier.value,
    credit_balance=current.credit_balance,
    daily_usage_count=current.daily_usage_count,
    daily_cap=ledger.premium_daily_cap if current.tier == AccountTier.PREMIUM else None,
    credit_cap=ledger.free_credit_cap if current.tier == AccountTier.FREE else None,
    allowed=availability.allowed,
    reason=availability.reason,
    bypass_ledger=availability.bypass_ledger,
    daily_reward_available=ledger.daily_reward_available(account),
  )


@router.post("/daily-reward", response_model=DailyRewardResponse)
async def claim_daily_reward(
  identity: CallerIdentity = Depends(get_caller_identity),  # noqa: B008
  orchestrator: JobOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> DailyRewardResponse:
  """Grant the once-per-day bonus credit of a free account."""
  try:
    account = await orchestrator.load_account(identity.owner_id)
    updated = await orchestrator.ledger.grant_daily_reward(account.owner_id)
  except AuthRequiredError as exc:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": JobErrorCode.AUTH_REQUIRED.value}) from exc
  except RewardUnavailableError as exc:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail={"error": "REWARD_UNAVAILABLE", "reason": exc.reason}) from exc

  return DailyRewardResponse(credit_balance=updated.credit_balance, claimed_on=updated.last_reward_date.isoformat())
