"""Backoff policy for rate-limited model calls."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExponentialBackoff:
  """Delay of `base ** attempt` seconds, capped at `max_seconds`.

  `attempt` is the 1-based number of the attempt that just failed, so with the
  default base the waits are 2s, 4s, 8s, ...
  """

  base_seconds: float = 2.0
  max_seconds: float = 30.0

  def __post_init__(self) -> None:
    if self.base_seconds <= 0:
      raise ValueError("base_seconds must be positive")
    if self.max_seconds < self.base_seconds:
      raise ValueError("max_seconds must be >= base_seconds")

  def delay(self, attempt: int) -> float:
    if attempt < 1:
      raise ValueError("attempt must be >= 1")
    # Avoid float overflow for very large attempt counts.
    try:
      raw = self.base_seconds**attempt
    except OverflowError:
      return self.max_seconds
    return min(raw, self.max_seconds)
