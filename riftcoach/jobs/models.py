"""Domain models for asynchronous analysis jobs."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Literal

JobStatus = Literal["processing", "completed", "failed"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class JobErrorCode(str, enum.Enum):
  """Stable error codes surfaced to callers."""

  QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
  AUTH_REQUIRED = "AUTH_REQUIRED"
  ALL_MODELS_FAILED = "ALL_MODELS_FAILED"
  ANALYSIS_TIMEOUT = "ANALYSIS_TIMEOUT"
  INTERNAL_ERROR = "INTERNAL_ERROR"


# Short user-visible reasons keyed by error code.
ERROR_MESSAGES: dict[JobErrorCode, str] = {
  JobErrorCode.QUOTA_EXHAUSTED: "No analysis allowance remaining.",
  JobErrorCode.AUTH_REQUIRED: "Authentication required.",
  JobErrorCode.ALL_MODELS_FAILED: "All analysis models failed.",
  JobErrorCode.ANALYSIS_TIMEOUT: "Analysis timed out.",
  JobErrorCode.INTERNAL_ERROR: "Analysis failed due to an internal error.",
}


@dataclass
class JobRecord:
  """Represents a background analysis job."""

  job_id: str
  owner_id: str
  status: JobStatus
  request: dict[str, Any]
  created_at: str
  result_json: dict[str, Any] | None = None
  error: str | None = None
  error_code: JobErrorCode | None = None
  diagnostics: dict[str, Any] | None = None
  completed_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES
