"""Error classification helpers for model backend failures."""

from __future__ import annotations

import re
from collections.abc import Iterable

_RATE_LIMIT_HINTS: tuple[str, ...] = ("too many requests", "resource exhausted", "resource_exhausted", "quota exceeded", "rate limit")
# SDKs prefix their messages with the HTTP status, e.g. "429 RESOURCE_EXHAUSTED. {...}".
_LEADING_STATUS = re.compile(r"^\s*429\b")


class ModelInvocationError(RuntimeError):
  """Raised by providers when a backend call or its output is unusable."""


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  for hint in hints:
    if hint in message:
      return True
  return False


def _status_of(exc: BaseException) -> int | None:
  # SDK errors expose the HTTP status under different attribute names.
  for attribute in ("status_code", "code", "status"):
    value = getattr(exc, attribute, None)
    if isinstance(value, int) and not isinstance(value, bool):
      return value
  return None


def is_rate_limit_error(exc: BaseException) -> bool:
  """Return True when an exception (or its cause) signals a rate limit.

  Unusable output (`ModelInvocationError`) is never a rate limit, whatever its
  message contains.
  """
  if isinstance(exc, ModelInvocationError):
    return False
  current: BaseException | None = exc
  seen: set[int] = set()
  while current is not None and id(current) not in seen:
    seen.add(id(current))
    if _status_of(current) == 429:
      return True
    message = str(current)
    if _LEADING_STATUS.match(message) or _match_hint(message.lower(), _RATE_LIMIT_HINTS):
      return True
    current = current.__cause__
  return False


def describe_failure(exc: BaseException) -> str:
  """Short single-line description of a failure for aggregate error reports."""
  message = " ".join(str(exc).split())
  if len(message) > 300:
    message = message[:297] + "..."
  if not message:
    return type(exc).__name__
  return f"{type(exc).__name__}: {message}"
