from __future__ import annotations

import pytest

from riftcoach.analysis.contracts import GeneratedInsight, GroundingDiagnostics, RecommendedItem, TruthEvent, TruthEventType
from riftcoach.analysis.grounding import build_name_index, filter_insights, normalize_item_name, resolve_items


def _event(timestamp: int) -> TruthEvent:
  return TruthEvent(type=TruthEventType.KILL, timestamp=timestamp)


def _insight(timestamp: int) -> GeneratedInsight:
  return GeneratedInsight(timestamp=timestamp, title=f"t{timestamp}")


def test_insight_near_truth_event_is_kept_and_far_one_dropped() -> None:
  truth = [_event(60_000), _event(130_000), _event(300_000)]
  diagnostics = GroundingDiagnostics()

  kept = filter_insights([_insight(125_000), _insight(500_000)], truth, 60_000, diagnostics)

  assert [item.timestamp for item in kept] == [125_000]
  assert diagnostics.dropped_insights == 1


def test_tolerance_is_strict() -> None:
  truth = [_event(100_000)]

  assert filter_insights([_insight(160_000)], truth, 60_000) == []
  assert [item.timestamp for item in filter_insights([_insight(159_999), _insight(40_001)], truth, 60_000)] == [159_999, 40_001]


def test_every_retained_insight_has_a_close_event() -> None:
  truth = [_event(ts) for ts in (10_000, 250_000, 700_000)]
  insights = [_insight(ts) for ts in range(0, 1_000_000, 37_000)]

  kept = filter_insights(insights, truth)

  assert kept
  for item in kept:
    assert any(abs(item.timestamp - event.timestamp) < 60_000 for event in truth)


def test_empty_truth_set_drops_everything() -> None:
  diagnostics = GroundingDiagnostics()
  assert filter_insights([_insight(1_000)], [], diagnostics=diagnostics) == []
  assert diagnostics.dropped_insights == 1


def test_non_positive_tolerance_rejected() -> None:
  with pytest.raises(ValueError):
    filter_insights([], [], 0)


@pytest.mark.parametrize(
  ("raw", "expected"),
  [
    ("Rabadon's Deathcap", "rabadonsdeathcap"),
    ("  RABADONS  death-cap ", "rabadonsdeathcap"),
    ("Zhonya’s Hourglass", "zhonyashourglass"),
    ("Ｖｏｉｄ Ｓｔａｆｆ", "voidstaff"),
  ],
)
def test_normalize_item_name(raw: str, expected: str) -> None:
  assert normalize_item_name(raw) == expected


def test_unmatched_item_is_excluded_and_matched_one_resolved() -> None:
  catalog = {"3089": "Rabadon's Deathcap", "3157": "Zhonya's Hourglass"}
  diagnostics = GroundingDiagnostics()

  resolved = resolve_items([RecommendedItem(name="Infinity Orb of Doom"), RecommendedItem(name="zhonyas hourglass", reason="vs assassins")], catalog, diagnostics)

  assert len(resolved) == 1
  assert resolved[0].resolved_catalog_id == "3157"
  assert resolved[0].free_text_name == "zhonyas hourglass"
  assert resolved[0].reason == "vs assassins"
  assert diagnostics.dropped_items == 1
  assert diagnostics.dropped_item_names == ["Infinity Orb of Doom"]


def test_resolve_accepts_plain_strings() -> None:
  assert resolve_items(["Void Staff"], {"3135": "Void Staff"})[0].resolved_catalog_id == "3135"


def test_colliding_catalog_names_resolve_to_lowest_id() -> None:
  index = build_name_index({"223089": "Rabadon's Deathcap", "3089": "Rabadons Deathcap", "10": ""})
  assert index == {"rabadonsdeathcap": "3089"}
