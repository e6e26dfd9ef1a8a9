"""Truth data source: Riot match-v5 timeline and match detail records."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx

from riftcoach.ai.backoff import ExponentialBackoff

logger = logging.getLogger(__name__)

_MATCH_ID_RE = re.compile(r"^[A-Z0-9]+_\d+$")
_REGIONS = {"americas", "asia", "europe", "sea"}


class MatchDataError(RuntimeError):
  """Raised when match records cannot be fetched."""


class MatchDataSource(Protocol):
  """Read-only provider of raw match records."""

  async def fetch_timeline(self, match_id: str) -> dict[str, Any]:
    """Return the chronological timeline record for a match."""

  async def fetch_match_detail(self, match_id: str) -> dict[str, Any]:
    """Return the match-detail record (participants, stats)."""


class _TtlCache:
  """Small bounded cache for immutable match records."""

  def __init__(self, ttl_seconds: float, max_entries: int, clock: Callable[[], float] = time.monotonic) -> None:
    self._ttl = ttl_seconds
    self._max_entries = max_entries
    self._clock = clock
    self._entries: dict[str, tuple[float, dict[str, Any]]] = {}

  def get(self, key: str) -> dict[str, Any] | None:
    entry = self._entries.get(key)
    if entry is None:
      return None
    expires_at, value = entry
    if expires_at <= self._clock():
      self._entries.pop(key, None)
      return None
    return value

  def put(self, key: str, value: dict[str, Any]) -> None:
    if key not in self._entries and len(self._entries) >= self._max_entries:
      # Evict the entry closest to expiry.
      oldest = min(self._entries, key=lambda item: self._entries[item][0])
      self._entries.pop(oldest, None)
    self._entries[key] = (self._clock() + self._ttl, value)


class RiotMatchDataSource(MatchDataSource):
  """Fetch match records from the Riot API with a TTL cache.

  Rate-limited (429) responses are retried up to `max_attempts` times, waiting
  for the `Retry-After` header when Riot sends one and the backoff delay
  otherwise.
  """

  def __init__(
    self,
    api_key: str | None,
    *,
    region: str = "asia",
    timeout: float = 10.0,
    cache_ttl_seconds: float = 3600.0,
    cache_max_entries: int = 256,
    max_attempts: int = 3,
    backoff: ExponentialBackoff | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
  ) -> None:
    if region not in _REGIONS:
      raise ValueError(f"Unsupported Riot routing region '{region}'.")
    if max_attempts < 1:
      raise ValueError("max_attempts must be >= 1")
    self._api_key = api_key
    self._base_url = f"https://{region}.api.riotgames.com"
    self._timeout = timeout
    self._transport = transport
    self._cache = _TtlCache(cache_ttl_seconds, cache_max_entries)
    self._max_attempts = max_attempts
    self._backoff = backoff or ExponentialBackoff(max_seconds=10.0)
    self._sleep = sleep

  def _build_client(self) -> httpx.AsyncClient:
    if not self._api_key:
      raise MatchDataError("RIOT_API_KEY is not configured.")
    return httpx.AsyncClient(base_url=self._base_url, headers={"X-Riot-Token": self._api_key}, timeout=self._timeout, transport=self._transport, trust_env=False)

  async def _get_json(self, path: str) -> dict[str, Any]:
    cached = self._cache.get(path)
    if cached is not None:
      return cached

    attempt = 0
    while True:
      attempt += 1
      try:
        async with self._build_client() as client:
          response = await client.get(path)
        if response.status_code == 429 and attempt < self._max_attempts:
          delay = self._retry_delay(response, attempt)
          logger.warning("Riot API rate limited %s attempt=%d; retrying in %.1fs", path, attempt, delay)
          await self._sleep(delay)
          continue
        response.raise_for_status()
      except httpx.HTTPStatusError as e:
        logger.warning("Riot API returned %s for %s", e.response.status_code, path)
        raise MatchDataError(f"Riot API returned {e.response.status_code} for {path}") from e
      except httpx.RequestError as e:
        logger.warning("Riot API request failed for %s: %s", path, e)
        raise MatchDataError(f"Riot API request failed for {path}") from e
      break

    payload = response.json()
    if not isinstance(payload, dict):
      raise MatchDataError(f"Riot API returned a non-object payload for {path}")
    self._cache.put(path, payload)
    return payload

  def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
    retry_after = response.headers.get("Retry-After", "")
    if retry_after.isdigit():
      return min(float(retry_after), self._backoff.max_seconds)
    return self._backoff.delay(attempt)

  @staticmethod
  def _validate_match_id(match_id: str) -> str:
    if not _MATCH_ID_RE.match(match_id):
      raise MatchDataError(f"Invalid match id '{match_id}'.")
    return match_id

  async def fetch_timeline(self, match_id: str) -> dict[str, Any]:
    return await self._get_json(f"/lol/match/v5/matches/{self._validate_match_id(match_id)}/timeline")

  async def fetch_match_detail(self, match_id: str) -> dict[str, Any]:
    return await self._get_json(f"/lol/match/v5/matches/{self._validate_match_id(match_id)}")
