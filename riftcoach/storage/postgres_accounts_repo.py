"""Postgres-backed quota accounts with row-locked mutations."""

from __future__ import annotations

from contextlib import asynccontextmanager

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from riftcoach.core.database import get_session_factory
from riftcoach.schema.quotas import QuotaAccountRow, QuotaLedgerEntryRow
from riftcoach.services.quota_ledger import AccountNotFoundError, AccountTier, LedgerMutation, QuotaAccount
from riftcoach.storage.accounts_repo import AccountMutator, AccountsRepository


def _to_account(row: QuotaAccountRow) -> QuotaAccount:
  return QuotaAccount(
    owner_id=row.owner_id,
    tier=AccountTier(row.tier),
    credit_balance=int(row.credit_balance),
    daily_usage_count=int(row.daily_usage_count),
    last_usage_date=row.last_usage_date,
    last_credit_update=row.last_credit_update,
    last_reward_date=row.last_reward_date,
  )


@asynccontextmanager
async def _ledger_transaction(session: AsyncSession):
  """Use a SAVEPOINT when the session already autobegan a transaction."""
  if session.in_transaction():
    async with session.begin_nested():
      yield
    return
  async with session.begin():
    yield


class PostgresAccountsRepository(AccountsRepository):
  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get(self, owner_id: str) -> QuotaAccount | None:
    async with self._session_factory() as session:
      row = await session.get(QuotaAccountRow, owner_id)
      if row is None:
        return None
      return _to_account(row)

  async def ensure(self, account: QuotaAccount) -> QuotaAccount:
    stmt = (
      insert(QuotaAccountRow)
      .values(
        owner_id=account.owner_id,
        tier=account.tier.value,
        credit_balance=account.credit_balance,
        daily_usage_count=account.daily_usage_count,
        last_usage_date=account.last_usage_date,
        last_credit_update=account.last_credit_update,
        last_reward_date=account.last_reward_date,
      )
      .on_conflict_do_nothing(index_elements=[QuotaAccountRow.owner_id])
    )
    async with self._session_factory() as session:
      await session.execute(stmt)
      await session.commit()
      row = (await session.execute(select(QuotaAccountRow).where(QuotaAccountRow.owner_id == account.owner_id))).scalar_one()
      return _to_account(row)

  async def update_account(self, owner_id: str, apply: AccountMutator, *, job_id: str) -> LedgerMutation | None:
    async with self._session_factory() as session:
      async with _ledger_transaction(session):
        # Lock the account row so the re-check and the write are one atomic step.
        stmt = select(QuotaAccountRow).where(QuotaAccountRow.owner_id == owner_id).with_for_update()
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
          raise AccountNotFoundError(owner_id)

        kinds_stmt = select(QuotaLedgerEntryRow.kind).where(QuotaLedgerEntryRow.owner_id == owner_id, QuotaLedgerEntryRow.job_id == job_id)
        recorded = frozenset((await session.execute(kinds_stmt)).scalars().all())

        mutation = apply(_to_account(row), recorded)
        if mutation is None:
          return None

        updated = mutation.account
        row.tier = updated.tier.value
        row.credit_balance = updated.credit_balance
        row.daily_usage_count = updated.daily_usage_count
        row.last_usage_date = updated.last_usage_date
        row.last_credit_update = updated.last_credit_update
        row.last_reward_date = updated.last_reward_date
        session.add(row)
        if mutation.entry is not None:
          session.add(QuotaLedgerEntryRow(owner_id=owner_id, job_id=mutation.entry.job_id, kind=mutation.entry.kind, created_at=mutation.entry.created_at))
        await session.flush()
      return mutation

  async def list_entries(self, owner_id: str) -> list[tuple[str, str]]:
    async with self._session_factory() as session:
      stmt = select(QuotaLedgerEntryRow.job_id, QuotaLedgerEntryRow.kind).where(QuotaLedgerEntryRow.owner_id == owner_id).order_by(QuotaLedgerEntryRow.id)
      rows = (await session.execute(stmt)).all()
      return [(row.job_id, row.kind) for row in rows]
