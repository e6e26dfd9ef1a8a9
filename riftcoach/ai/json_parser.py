"""Lenient JSON parsing helpers for model outputs."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def strip_json_fences(raw: str) -> str:
  """Remove a surrounding markdown code fence if the model added one."""
  text = raw.strip()
  match = _FENCE_RE.match(text)
  if match:
    return match.group(1)
  return text


def parse_json_with_fallback(raw: str) -> Any:
  """Parse JSON, falling back to the first balanced block and trailing-comma cleanup."""
  text = strip_json_fences(raw)
  try:
    return json.loads(text)
  except json.JSONDecodeError as exc:
    last_error = exc

  # Models sometimes wrap the payload in prose.
  candidate = _extract_json_block(text)
  if candidate is None:
    raise last_error

  try:
    return json.loads(candidate)
  except json.JSONDecodeError as exc:
    last_error = exc

  try:
    return json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate))
  except json.JSONDecodeError:
    raise last_error from None


def _extract_json_block(raw: str) -> str | None:
  """Locate the first balanced JSON object or array, honoring string escapes."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char in "{[":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char in "{[":
      depth += 1
    elif char in "}]":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
