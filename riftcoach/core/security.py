from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Header, HTTPException, status

ACCOUNT_HEADER = "x-riftcoach-account"
PROVIDER_KEY_HEADER = "x-provider-api-key"


@dataclass(frozen=True)
class CallerIdentity:
  """Identity asserted by the upstream gateway plus an optional caller provider key."""

  owner_id: str
  external_api_key: str | None = None

  def __repr__(self) -> str:
    # Keep the caller key out of logs and tracebacks.
    return f"CallerIdentity(owner_id={self.owner_id!r}, has_external_api_key={self.external_api_key is not None})"


async def get_caller_identity(
  account: Annotated[str | None, Header(alias=ACCOUNT_HEADER)] = None,
  provider_key: Annotated[str | None, Header(alias=PROVIDER_KEY_HEADER)] = None,
) -> CallerIdentity:
  """Resolve the authenticated account id set by the upstream gateway."""
  owner_id = (account or "").strip()
  if not owner_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "AUTH_REQUIRED"})

  external_api_key = (provider_key or "").strip() or None
  return CallerIdentity(owner_id=owner_id, external_api_key=external_api_key)
