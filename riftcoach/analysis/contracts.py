"""Value types shared by truth extraction, generation and grounding."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class TruthEventType(str, enum.Enum):
  """Kinds of verified game events used as grounding facts."""

  OBJECTIVE = "OBJECTIVE"
  TURRET = "TURRET"
  KILL = "KILL"
  SKILL_UP = "SKILL_UP"


class KillCategory(str, enum.Enum):
  """Kill classification derived from the assist count."""

  SOLO_KILL = "SOLO_KILL"
  GROUP_KILL = "GROUP_KILL"


# Lower sorts first; truncation drops from the tail of this order.
EVENT_PRIORITY: dict[TruthEventType, int] = {TruthEventType.OBJECTIVE: 0, TruthEventType.TURRET: 1, TruthEventType.KILL: 2, TruthEventType.SKILL_UP: 3}


@dataclass(frozen=True)
class TruthEvent:
  """A verified event extracted from a match timeline."""

  type: TruthEventType
  timestamp: int
  participant_ids: tuple[int, ...] = ()
  derived_category: KillCategory | None = None
  detail: str = ""
  involves_subject: bool = False

  def as_prompt_fact(self) -> dict[str, object]:
    """Serialize the event for prompt injection."""
    fact: dict[str, object] = {"type": self.type.value, "timestamp": self.timestamp, "detail": self.detail, "participants": list(self.participant_ids), "involvesPlayer": self.involves_subject}
    if self.derived_category is not None:
      fact["category"] = self.derived_category.value
    return fact


class AnalysisMode(str, enum.Enum):
  """What evidence an analysis is built from."""

  # Timeline-only macro review.
  MACRO = "MACRO"
  # Timeline plus gameplay frames captured by the client.
  VISION = "VISION"


class TimeWindowPreset(str, enum.Enum):
  """Named analysis windows offered to callers."""

  EARLY = "EARLY"
  LATE = "LATE"
  FULL = "FULL"


@dataclass(frozen=True)
class TimeWindow:
  """Inclusive game-time window in milliseconds; `end_ms=None` means open ended."""

  start_ms: int = 0
  end_ms: int | None = None

  def __post_init__(self) -> None:
    if self.start_ms < 0:
      raise ValueError("start_ms must be >= 0")
    if self.end_ms is not None and self.end_ms < self.start_ms:
      raise ValueError("end_ms must be >= start_ms")

  def contains(self, timestamp: int) -> bool:
    if timestamp < self.start_ms:
      return False
    return self.end_ms is None or timestamp <= self.end_ms

  @classmethod
  def from_preset(cls, preset: TimeWindowPreset) -> TimeWindow | None:
    """Resolve a named preset; FULL returns None (unrestricted)."""
    if preset == TimeWindowPreset.EARLY:
      return cls(start_ms=0, end_ms=14 * 60_000)
    if preset == TimeWindowPreset.LATE:
      return cls(start_ms=20 * 60_000, end_ms=None)
    return None


InsightType = Literal["MISTAKE", "TURNING_POINT", "GOOD_PLAY", "INFO"]


class GeneratedInsight(BaseModel):
  """One coaching insight produced by a model backend."""

  timestamp: int = Field(ge=0, description="Game time of the moment in milliseconds.")
  title: StrictStr = Field(min_length=1)
  description: StrictStr = ""
  type: InsightType = "INFO"
  advice: StrictStr = ""
  model_config = ConfigDict(extra="ignore")

  @field_validator("type", mode="before")
  @classmethod
  def _upper_type(cls, value: object) -> object:
    if isinstance(value, str):
      return value.strip().upper()
    return value


class RecommendedItem(BaseModel):
  """Free-text item suggestion as produced by a model backend."""

  name: StrictStr = Field(min_length=1)
  reason: StrictStr | None = None
  model_config = ConfigDict(extra="ignore")


class CoachingReport(BaseModel):
  """Structured output every model backend must return."""

  summary: StrictStr
  insights: list[GeneratedInsight] = Field(default_factory=list)
  item_recommendations: list[RecommendedItem] = Field(default_factory=list)
  model_config = ConfigDict(extra="ignore")


class ItemRecommendation(BaseModel):
  """Item suggestion after catalog resolution."""

  free_text_name: StrictStr
  resolved_catalog_id: StrictStr | None = None
  reason: StrictStr | None = None


class AnalysisResult(BaseModel):
  """Grounded result persisted on a completed job."""

  summary: StrictStr
  insights: list[GeneratedInsight] = Field(default_factory=list)
  item_recommendations: list[ItemRecommendation] = Field(default_factory=list)
  used_model: StrictStr


@dataclass
class GroundingDiagnostics:
  """Internal counters describing what grounding removed."""

  dropped_insights: int = 0
  dropped_items: int = 0
  dropped_item_names: list[str] = field(default_factory=list)
