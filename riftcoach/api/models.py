from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator, model_validator

from riftcoach.ai.providers.base import Attachment
from riftcoach.analysis.contracts import AnalysisMode, AnalysisResult, TimeWindow, TimeWindowPreset

MAX_FRAMES = 30


class CustomTimeWindow(BaseModel):
  """Explicit inclusive window in game milliseconds."""

  start_ms: StrictInt = Field(ge=0)
  end_ms: StrictInt | None = Field(default=None, ge=0)
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _ordered(self) -> CustomTimeWindow:
    if self.end_ms is not None and self.end_ms < self.start_ms:
      raise ValueError("end_ms must be >= start_ms")
    return self


class EvidencePayload(BaseModel):
  """Gameplay frames captured client-side, as base64 data URLs in chronological order."""

  frames: list[StrictStr] = Field(default_factory=list, max_length=MAX_FRAMES)
  model_config = ConfigDict(extra="forbid")

  @field_validator("frames")
  @classmethod
  def _decodable(cls, frames: list[str]) -> list[str]:
    for index, frame in enumerate(frames):
      try:
        attachment = Attachment.from_data_url(frame)
      except ValueError as exc:
        raise ValueError(f"frame {index}: {exc}") from exc
      if not attachment.mime_type.startswith("image/"):
        raise ValueError(f"frame {index}: only image frames are accepted")
    return frames


class AnalysisJobCreate(BaseModel):
  """Request payload for starting an analysis job."""

  subject_id: StrictStr = Field(min_length=1, max_length=128, description="Player puuid (or timeline participant id).")
  match_id: StrictStr = Field(min_length=1, max_length=64, description="Riot match id, e.g. KR_1234567890.")
  mode: AnalysisMode = AnalysisMode.MACRO
  time_window: TimeWindowPreset | CustomTimeWindow | None = None
  evidence: EvidencePayload | None = None
  question: StrictStr | None = Field(default=None, max_length=500)
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _vision_needs_frames(self) -> AnalysisJobCreate:
    if self.mode == AnalysisMode.VISION and (self.evidence is None or not self.evidence.frames):
      raise ValueError("VISION analyses require evidence.frames")
    return self

  def resolve_window(self) -> TimeWindow | None:
    if self.time_window is None:
      return None
    if isinstance(self.time_window, CustomTimeWindow):
      return TimeWindow(start_ms=self.time_window.start_ms, end_ms=self.time_window.end_ms)
    return TimeWindow.from_preset(self.time_window)

  def attachments(self) -> list[Attachment]:
    if self.evidence is None:
      return []
    return [Attachment.from_data_url(frame) for frame in self.evidence.frames]

  def job_metadata(self) -> dict[str, Any]:
    """Persistable request summary; frame bytes are never stored."""
    metadata = self.model_dump(mode="json", exclude={"evidence"})
    metadata["frame_count"] = len(self.evidence.frames) if self.evidence else 0
    return metadata


class AnalysisJobAccepted(BaseModel):
  job_id: StrictStr
  poll_interval_seconds: int


class JobStatusResponse(BaseModel):
  """What a caller sees when polling; internal diagnostics are never included."""

  job_id: StrictStr
  match_id: StrictStr | None = None
  status: Literal["processing", "completed", "failed"]
  result: AnalysisResult | None = None
  error: StrictStr | None = None
  error_code: StrictStr | None = None
  created_at: StrictStr
  completed_at: StrictStr | None = None


class QuotaStatusResponse(BaseModel):
  tier: StrictStr
  credit_balance: int
  daily_usage_count: int
  daily_cap: int | None = None
  credit_cap: int | None = None
  allowed: bool
  reason: StrictStr | None = None
  bypass_ledger: bool = False
  daily_reward_available: bool = False


class DailyRewardResponse(BaseModel):
  credit_balance: int
  claimed_on: StrictStr
