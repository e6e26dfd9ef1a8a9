"""Per-account analysis allowance: availability checks, debits and compensating refunds.

Three tiers exist:

- free: spends one credit per attempted job and regains one credit per elapsed
  week up to a cap.
- premium: counts jobs per UTC calendar day against a daily cap.
- bring_own_key: never touches the ledger. A free account that supplies its own
  provider key is treated the same way for that job.

Free accounts may also claim one bonus credit per UTC calendar day
(`grant_daily_reward`). Premium accounts ignore caller-supplied keys: their
jobs run on platform keys and always count against the daily cap.

Every mutation runs through `AccountsRepository.update_account`, which holds a
per-account lock (a row lock on Postgres) around read, rule evaluation and
write. The availability re-check and the decrement are therefore one atomic
step and the credit balance can never go negative.
"""

from __future__ import annotations

import datetime
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
  from riftcoach.storage.accounts_repo import AccountsRepository

logger = logging.getLogger(__name__)

ONE_WEEK = datetime.timedelta(days=7)

LedgerEntryKind = Literal["debit", "refund", "reward"]


class AccountTier(str, enum.Enum):
  FREE = "free"
  PREMIUM = "premium"
  BRING_OWN_KEY = "bring_own_key"


class QuotaExhaustedError(RuntimeError):
  """Raised when an account has no allowance left for another job."""

  def __init__(self, reason: str) -> None:
    self.reason = reason
    super().__init__(reason)


class LedgerInconsistencyError(RuntimeError):
  """Raised for ledger operations that contradict the recorded history (e.g. refund without debit)."""


class AccountNotFoundError(LookupError):
  """Raised when no quota account exists for an owner id."""


class RewardUnavailableError(RuntimeError):
  """Raised when the daily reward cannot be granted (already claimed today, or not a free account)."""

  def __init__(self, reason: str) -> None:
    self.reason = reason
    super().__init__(reason)


@dataclass(frozen=True)
class QuotaAccount:
  """Snapshot of one account's allowance."""

  owner_id: str
  tier: AccountTier
  credit_balance: int = 0
  daily_usage_count: int = 0
  last_usage_date: datetime.date | None = None
  last_credit_update: datetime.datetime | None = None
  last_reward_date: datetime.date | None = None


@dataclass(frozen=True)
class LedgerEntry:
  owner_id: str
  job_id: str
  kind: LedgerEntryKind
  created_at: datetime.datetime


@dataclass(frozen=True)
class LedgerMutation:
  """New account state plus the ledger entry recorded with it."""

  account: QuotaAccount
  entry: LedgerEntry | None = None


@dataclass(frozen=True)
class Availability:
  allowed: bool
  reason: str | None = None
  bypass_ledger: bool = False


@dataclass(frozen=True)
class DebitReceipt:
  """Proof of a debit, held by the job worker until the job ends."""

  owner_id: str
  job_id: str
  tier: AccountTier
  charged: bool
  balance_after: int | None = None


def _utc_now() -> datetime.datetime:
  """Return timezone-aware current UTC time for deterministic day math."""
  return datetime.datetime.now(datetime.UTC)


def replenish_credits(account: QuotaAccount, *, now: datetime.datetime, cap: int) -> QuotaAccount:
  """Apply weekly free-credit replenishment; returns the account unchanged when nothing is due."""
  if account.tier != AccountTier.FREE:
    return account

  # Start the timer without granting anything.
  if account.last_credit_update is None:
    return replace(account, last_credit_update=now)

  elapsed = now - account.last_credit_update
  if elapsed < ONE_WEEK:
    return account

  # The timer stops while the balance is full.
  if account.credit_balance >= cap:
    return replace(account, last_credit_update=now)

  weeks = elapsed // ONE_WEEK
  return replace(account, credit_balance=min(account.credit_balance + weeks, cap), last_credit_update=account.last_credit_update + weeks * ONE_WEEK)


def effective_daily_usage(account: QuotaAccount, *, today: datetime.date) -> int:
  """Premium daily usage after calendar-day rollover."""
  if account.last_usage_date != today:
    return 0
  return account.daily_usage_count


def evaluate_availability(account: QuotaAccount, *, external_api_key: str | None, now: datetime.datetime, premium_daily_cap: int, free_credit_cap: int) -> Availability:
  """Pure availability rule for one account at one instant."""
  if account.tier == AccountTier.BRING_OWN_KEY:
    return Availability(allowed=True, bypass_ledger=True)

  if account.tier == AccountTier.PREMIUM:
    used = effective_daily_usage(account, today=now.date())
    if used < premium_daily_cap:
      return Availability(allowed=True)
    return Availability(allowed=False, reason=f"Daily analysis limit of {premium_daily_cap} reached.")

  # Free tier with a caller-supplied key skips the ledger for this job.
  if external_api_key:
    return Availability(allowed=True, bypass_ledger=True)

  current = replenish_credits(account, now=now, cap=free_credit_cap)
  if current.credit_balance > 0:
    return Availability(allowed=True)
  return Availability(allowed=False, reason="No analysis credits remaining.")


class QuotaLedger:
  """Owns every mutation of quota accounts."""

  def __init__(self, accounts: AccountsRepository, *, premium_daily_cap: int = 20, free_credit_cap: int = 3, clock: Callable[[], datetime.datetime] = _utc_now) -> None:
    self._accounts = accounts
    self._premium_daily_cap = premium_daily_cap
    self._free_credit_cap = free_credit_cap
    self._clock = clock

  @property
  def premium_daily_cap(self) -> int:
    return self._premium_daily_cap

  @property
  def free_credit_cap(self) -> int:
    return self._free_credit_cap

  async def get_account(self, owner_id: str) -> QuotaAccount:
    account = await self._accounts.get(owner_id)
    if account is None:
      raise AccountNotFoundError(owner_id)
    return account

  async def provision(self, owner_id: str) -> QuotaAccount:
    """Create a free account with a full credit balance unless one exists."""
    account = QuotaAccount(owner_id=owner_id, tier=AccountTier.FREE, credit_balance=self._free_credit_cap, last_credit_update=self._clock())
    stored = await self._accounts.ensure(account)
    logger.info("Ensured quota account owner_id=%s tier=%s", owner_id, stored.tier.value)
    return stored

  def check_availability(self, account: QuotaAccount, *, external_api_key: str | None = None, now: datetime.datetime | None = None) -> Availability:
    """Read-only availability check; callers must still debit through `debit`."""
    return evaluate_availability(account, external_api_key=external_api_key, now=now or self._clock(), premium_daily_cap=self._premium_daily_cap, free_credit_cap=self._free_credit_cap)

  def view(self, account: QuotaAccount, *, now: datetime.datetime | None = None) -> QuotaAccount:
    """Account as it would look after pending replenishment and day rollover."""
    moment = now or self._clock()
    current = replenish_credits(account, now=moment, cap=self._free_credit_cap)
    if current.tier == AccountTier.PREMIUM and current.last_usage_date != moment.date():
      current = replace(current, daily_usage_count=0)
    return current

  def daily_reward_available(self, account: QuotaAccount, *, now: datetime.datetime | None = None) -> bool:
    moment = now or self._clock()
    return account.tier == AccountTier.FREE and account.last_reward_date != moment.date()

  async def debit(self, owner_id: str, *, job_id: str, external_api_key: str | None = None) -> DebitReceipt:
    """Atomically re-check availability and consume one unit of allowance for `job_id`."""
    account = await self.get_account(owner_id)
    if account.tier == AccountTier.BRING_OWN_KEY or (account.tier == AccountTier.FREE and external_api_key):
      logger.info("Ledger bypassed job_id=%s owner_id=%s tier=%s", job_id, owner_id, account.tier.value)
      return DebitReceipt(owner_id=owner_id, job_id=job_id, tier=account.tier, charged=False)

    def apply(current: QuotaAccount, recorded: frozenset[str]) -> LedgerMutation:
      now = self._clock()
      if "debit" in recorded:
        raise LedgerInconsistencyError(f"Job {job_id} was already debited.")

      availability = evaluate_availability(current, external_api_key=None, now=now, premium_daily_cap=self._premium_daily_cap, free_credit_cap=self._free_credit_cap)
      if not availability.allowed:
        raise QuotaExhaustedError(availability.reason or "Quota exhausted.")

      entry = LedgerEntry(owner_id=owner_id, job_id=job_id, kind="debit", created_at=now)
      if current.tier == AccountTier.PREMIUM:
        used = effective_daily_usage(current, today=now.date())
        return LedgerMutation(account=replace(current, daily_usage_count=used + 1, last_usage_date=now.date()), entry=entry)

      replenished = replenish_credits(current, now=now, cap=self._free_credit_cap)
      return LedgerMutation(account=replace(replenished, credit_balance=replenished.credit_balance - 1), entry=entry)

    mutation = await self._accounts.update_account(owner_id, apply, job_id=job_id)
    if mutation is None:
      raise LedgerInconsistencyError(f"Debit for job {job_id} produced no mutation.")

    updated = mutation.account
    if updated.tier == AccountTier.PREMIUM:
      balance_after = updated.daily_usage_count
    else:
      balance_after = updated.credit_balance
    logger.info("Ledger debited job_id=%s owner_id=%s tier=%s balance_after=%s", job_id, owner_id, updated.tier.value, balance_after)
    return DebitReceipt(owner_id=owner_id, job_id=job_id, tier=updated.tier, charged=True, balance_after=balance_after)

  async def refund(self, receipt: DebitReceipt) -> int | None:
    """Return the credit of a failed free-tier job; a repeated refund is a no-op returning None."""
    if not receipt.charged or receipt.tier != AccountTier.FREE:
      raise LedgerInconsistencyError(f"Refund is only valid for a charged free-tier debit (job {receipt.job_id}, tier {receipt.tier.value}, charged={receipt.charged}).")

    def apply(current: QuotaAccount, recorded: frozenset[str]) -> LedgerMutation | None:
      if "debit" not in recorded:
        raise LedgerInconsistencyError(f"Refund requested for job {receipt.job_id} without a recorded debit.")
      if "refund" in recorded:
        return None
      entry = LedgerEntry(owner_id=receipt.owner_id, job_id=receipt.job_id, kind="refund", created_at=self._clock())
      return LedgerMutation(account=replace(current, credit_balance=current.credit_balance + 1), entry=entry)

    mutation = await self._accounts.update_account(receipt.owner_id, apply, job_id=receipt.job_id)
    if mutation is None:
      logger.warning("Ledger refund skipped; job_id=%s was already refunded", receipt.job_id)
      return None

    logger.info("Ledger refunded job_id=%s owner_id=%s balance_after=%d", receipt.job_id, receipt.owner_id, mutation.account.credit_balance)
    return mutation.account.credit_balance

  async def grant_daily_reward(self, owner_id: str) -> QuotaAccount:
    """Add one free credit, at most once per UTC calendar day.

    Pending weekly replenishment is applied first; the reward itself may lift
    the balance above the replenishment cap.
    """
    now = self._clock()
    today = now.date()
    reference = daily_reward_reference(owner_id, today)

    def apply(current: QuotaAccount, recorded: frozenset[str]) -> LedgerMutation:
      if current.tier != AccountTier.FREE:
        raise RewardUnavailableError(f"Daily rewards are only granted to free accounts (tier {current.tier.value}).")
      if current.last_reward_date == today or "reward" in recorded:
        raise RewardUnavailableError("Daily reward already claimed today.")

      replenished = replenish_credits(current, now=now, cap=self._free_credit_cap)
      entry = LedgerEntry(owner_id=owner_id, job_id=reference, kind="reward", created_at=now)
      return LedgerMutation(account=replace(replenished, credit_balance=replenished.credit_balance + 1, last_reward_date=today), entry=entry)

    mutation = await self._accounts.update_account(owner_id, apply, job_id=reference)
    if mutation is None:
      raise LedgerInconsistencyError(f"Daily reward for {owner_id} produced no mutation.")

    logger.info("Ledger granted daily reward owner_id=%s balance_after=%d", owner_id, mutation.account.credit_balance)
    return mutation.account


def daily_reward_reference(owner_id: str, day: datetime.date) -> str:
  """Ledger reference of one day's reward; unique per account and day."""
  return f"daily-reward:{owner_id}:{day.isoformat()}"
