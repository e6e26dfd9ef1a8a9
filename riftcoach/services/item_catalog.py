"""Canonical item catalog used to resolve free-text item recommendations."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ItemCatalog(Protocol):
  """Name lookup for canonical items."""

  def names_by_id(self) -> Mapping[str, str]:
    """Return catalog id -> display name."""


class StaticItemCatalog(ItemCatalog):
  """Immutable in-memory catalog."""

  def __init__(self, names: Mapping[str, str]) -> None:
    self._names = {str(key): str(value) for key, value in names.items() if str(value).strip()}

  def __len__(self) -> int:
    return len(self._names)

  def names_by_id(self) -> Mapping[str, str]:
    return self._names

  @classmethod
  def from_payload(cls, payload: Mapping[str, Any]) -> StaticItemCatalog:
    """Accept Data Dragon `item.json` (`{"data": {id: {"name": ...}}}`) or a flat `{id: name}` map."""
    data = payload.get("data")
    if isinstance(data, Mapping):
      names = {str(item_id): str(item["name"]) for item_id, item in data.items() if isinstance(item, Mapping) and item.get("name")}
      return cls(names)
    return cls({str(key): str(value) for key, value in payload.items() if isinstance(value, str)})

  @classmethod
  def from_file(cls, path: str | Path) -> StaticItemCatalog:
    catalog_path = Path(path)
    with catalog_path.open(encoding="utf-8") as handle:
      payload = json.load(handle)
    if not isinstance(payload, Mapping):
      raise ValueError(f"Item catalog at {catalog_path} must be a JSON object.")
    catalog = cls.from_payload(payload)
    logger.info("Loaded %d catalog items from %s", len(catalog), catalog_path)
    return catalog


def load_item_catalog(path: str | None) -> StaticItemCatalog:
  """Load the configured catalog; an unset path yields an empty catalog that resolves nothing."""
  if path is None:
    logger.warning("RIFTCOACH_ITEM_CATALOG_PATH is not set; item recommendations will be dropped")
    return StaticItemCatalog({})
  return StaticItemCatalog.from_file(path)
