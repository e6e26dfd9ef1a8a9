from __future__ import annotations

import json

import httpx
import pytest
from conftest import RecordingSleep

from riftcoach.services.item_catalog import StaticItemCatalog, load_item_catalog
from riftcoach.services.match_data import MatchDataError, RiotMatchDataSource, _TtlCache


def _transport(calls: list[httpx.Request], status_code: int = 200) -> httpx.MockTransport:
  def handler(request: httpx.Request) -> httpx.Response:
    calls.append(request)
    return httpx.Response(status_code, json={"metadata": {"matchId": "KR_1"}, "info": {"frames": []}})

  return httpx.MockTransport(handler)


@pytest.mark.anyio
async def test_fetches_timeline_with_token_and_caches() -> None:
  calls: list[httpx.Request] = []
  source = RiotMatchDataSource("riot-key", region="asia", transport=_transport(calls))

  first = await source.fetch_timeline("KR_1")
  second = await source.fetch_timeline("KR_1")

  assert first == second
  assert len(calls) == 1
  assert calls[0].url.host == "asia.api.riotgames.com"
  assert calls[0].url.path == "/lol/match/v5/matches/KR_1/timeline"
  assert calls[0].headers["X-Riot-Token"] == "riot-key"


@pytest.mark.anyio
async def test_http_errors_become_match_data_errors() -> None:
  source = RiotMatchDataSource("riot-key", transport=_transport([], status_code=404))

  with pytest.raises(MatchDataError):
    await source.fetch_match_detail("KR_1")


@pytest.mark.anyio
async def test_invalid_match_id_and_missing_key() -> None:
  calls: list[httpx.Request] = []

  with pytest.raises(MatchDataError):
    await RiotMatchDataSource("riot-key", transport=_transport(calls)).fetch_timeline("../../admin")
  with pytest.raises(MatchDataError):
    await RiotMatchDataSource(None, transport=_transport(calls)).fetch_timeline("KR_1")
  assert calls == []


def test_unknown_region_rejected() -> None:
  with pytest.raises(ValueError):
    RiotMatchDataSource("riot-key", region="mars")


def test_catalog_loads_data_dragon_file(tmp_path) -> None:
  path = tmp_path / "item.json"
  path.write_text(json.dumps({"type": "item", "data": {"3089": {"name": "Rabadon's Deathcap"}, "9999": {"gold": {}}}}), encoding="utf-8")

  catalog = StaticItemCatalog.from_file(path)

  assert catalog.names_by_id() == {"3089": "Rabadon's Deathcap"}


def test_catalog_accepts_flat_mapping_and_missing_path() -> None:
  assert len(StaticItemCatalog.from_payload({"3157": "Zhonya's Hourglass", "bad": 1})) == 1
  assert len(load_item_catalog(None)) == 0


def _scripted_transport(calls: list[httpx.Request], responses: list[httpx.Response]) -> httpx.MockTransport:
  def handler(request: httpx.Request) -> httpx.Response:
    calls.append(request)
    return responses.pop(0)

  return httpx.MockTransport(handler)


@pytest.mark.anyio
async def test_rate_limited_requests_are_retried() -> None:
  calls: list[httpx.Request] = []
  sleep = RecordingSleep()
  responses = [httpx.Response(429), httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(200, json={"info": {"frames": []}})]
  source = RiotMatchDataSource("riot-key", transport=_scripted_transport(calls, responses), sleep=sleep)

  payload = await source.fetch_timeline("KR_1")

  assert payload == {"info": {"frames": []}}
  assert len(calls) == 3
  assert sleep.delays == [2, 3]


@pytest.mark.anyio
async def test_rate_limit_that_persists_becomes_match_data_error() -> None:
  calls: list[httpx.Request] = []
  sleep = RecordingSleep()
  source = RiotMatchDataSource("riot-key", max_attempts=2, transport=_scripted_transport(calls, [httpx.Response(429), httpx.Response(429)]), sleep=sleep)

  with pytest.raises(MatchDataError):
    await source.fetch_match_detail("KR_1")
  assert len(calls) == 2
  assert sleep.delays == [2]


def test_cache_overwrite_does_not_evict_other_entries() -> None:
  now = [0.0]
  cache = _TtlCache(ttl_seconds=60, max_entries=2, clock=lambda: now[0])
  cache.put("a", {"n": 1})
  now[0] = 1.0
  cache.put("b", {"n": 2})
  cache.put("b", {"n": 3})

  assert cache.get("a") == {"n": 1}
  assert cache.get("b") == {"n": 3}
