"""Filter generated output against verified events and the item catalog."""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable, Mapping, Sequence

from riftcoach.analysis.contracts import GeneratedInsight, GroundingDiagnostics, ItemRecommendation, RecommendedItem, TruthEvent

DEFAULT_TOLERANCE_MS = 60_000


def normalize_item_name(name: str) -> str:
  """Fold an item name to the comparison key (NFKC, casefold, alphanumerics only)."""
  folded = unicodedata.normalize("NFKC", name).casefold()
  return "".join(char for char in folded if char.isalnum())


def filter_insights(insights: Iterable[GeneratedInsight], truth_events: Sequence[TruthEvent], tolerance_ms: int = DEFAULT_TOLERANCE_MS, diagnostics: GroundingDiagnostics | None = None) -> list[GeneratedInsight]:
  """Keep insights whose timestamp is strictly within `tolerance_ms` of a truth event."""
  if tolerance_ms <= 0:
    raise ValueError("tolerance_ms must be positive")

  timestamps = [event.timestamp for event in truth_events]
  kept: list[GeneratedInsight] = []
  dropped = 0
  for insight in insights:
    if any(abs(insight.timestamp - timestamp) < tolerance_ms for timestamp in timestamps):
      kept.append(insight)
    else:
      dropped += 1

  if diagnostics is not None:
    diagnostics.dropped_insights += dropped
  return kept


def build_name_index(catalog: Mapping[str, str]) -> dict[str, str]:
  """Map normalized catalog names to ids; colliding names resolve to the lowest id."""
  index: dict[str, str] = {}
  for catalog_id in sorted(catalog, key=_id_sort_key):
    key = normalize_item_name(catalog[catalog_id])
    if key:
      index.setdefault(key, catalog_id)
  return index


def _id_sort_key(catalog_id: str) -> tuple[int, int | str]:
  # Numeric ids compare numerically so "1001" sorts before "10010".
  if catalog_id.isdigit():
    return (0, int(catalog_id))
  return (1, catalog_id)


def resolve_items(recommendations: Iterable[RecommendedItem | str], catalog: Mapping[str, str], diagnostics: GroundingDiagnostics | None = None) -> list[ItemRecommendation]:
  """Resolve free-text recommendations to catalog ids, dropping anything unmatched.

  `catalog` maps catalog id to display name.
  """
  index = build_name_index(catalog)
  resolved: list[ItemRecommendation] = []
  for recommendation in recommendations:
    if isinstance(recommendation, str):
      name, reason = recommendation, None
    else:
      name, reason = recommendation.name, recommendation.reason

    catalog_id = index.get(normalize_item_name(name))
    if catalog_id is None:
      if diagnostics is not None:
        diagnostics.dropped_items += 1
        diagnostics.dropped_item_names.append(name)
      continue
    resolved.append(ItemRecommendation(free_text_name=name, resolved_catalog_id=catalog_id, reason=reason))

  return resolved
