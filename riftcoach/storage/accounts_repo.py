"""Storage interfaces for quota accounts and their ledger entries."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from riftcoach.services.quota_ledger import LedgerMutation, QuotaAccount

# Receives the locked account and the entry kinds already recorded for the job.
AccountMutator = Callable[[QuotaAccount, frozenset[str]], LedgerMutation | None]


class AccountsRepository(Protocol):
  """Repository contract for quota account persistence."""

  async def get(self, owner_id: str) -> QuotaAccount | None:
    """Fetch an account snapshot without locking."""

  async def ensure(self, account: QuotaAccount) -> QuotaAccount:
    """Insert `account` unless one already exists; return the stored account."""

  async def update_account(self, owner_id: str, apply: AccountMutator, *, job_id: str) -> LedgerMutation | None:
    """Run `apply` under the per-account lock and persist what it returns.

    Exceptions raised by `apply` propagate and nothing is written. A None
    result means no change.
    """

  async def list_entries(self, owner_id: str) -> list[tuple[str, str]]:
    """Return `(job_id, kind)` pairs recorded for the account, oldest first."""
