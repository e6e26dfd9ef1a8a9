"""In-process quota account repository with one asyncio lock per account."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from riftcoach.services.quota_ledger import AccountNotFoundError, LedgerMutation, QuotaAccount
from riftcoach.storage.accounts_repo import AccountMutator, AccountsRepository


class InMemoryAccountsRepository(AccountsRepository):
  def __init__(self, accounts: list[QuotaAccount] | None = None) -> None:
    self._accounts: dict[str, QuotaAccount] = {account.owner_id: account for account in accounts or []}
    self._entries: dict[str, list[tuple[str, str]]] = defaultdict(list)
    self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

  async def get(self, owner_id: str) -> QuotaAccount | None:
    return self._accounts.get(owner_id)

  async def ensure(self, account: QuotaAccount) -> QuotaAccount:
    async with self._locks[account.owner_id]:
      return self._accounts.setdefault(account.owner_id, account)

  async def update_account(self, owner_id: str, apply: AccountMutator, *, job_id: str) -> LedgerMutation | None:
    async with self._locks[owner_id]:
      account = self._accounts.get(owner_id)
      if account is None:
        raise AccountNotFoundError(owner_id)

      recorded = frozenset(kind for entry_job_id, kind in self._entries[owner_id] if entry_job_id == job_id)
      mutation = apply(account, recorded)
      if mutation is None:
        return None

      if mutation.account.credit_balance < 0:
        raise ValueError(f"credit_balance would become negative for {owner_id}")
      if mutation.entry is not None:
        if mutation.entry.kind in recorded:
          raise ValueError(f"Duplicate ledger entry {mutation.entry.kind} for job {job_id}")
        self._entries[owner_id].append((mutation.entry.job_id, mutation.entry.kind))
      self._accounts[owner_id] = mutation.account
      return mutation

  async def list_entries(self, owner_id: str) -> list[tuple[str, str]]:
    return list(self._entries.get(owner_id, []))
