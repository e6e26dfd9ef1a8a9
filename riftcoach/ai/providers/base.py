"""Base interfaces for model backends."""

from __future__ import annotations

import base64
import binascii
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)


@dataclass(frozen=True)
class Attachment:
  """Binary evidence (a gameplay frame) sent alongside the prompt."""

  mime_type: str
  data: bytes

  def __repr__(self) -> str:
    return f"Attachment(mime_type={self.mime_type!r}, size={len(self.data)})"

  @classmethod
  def from_data_url(cls, data_url: str) -> Attachment:
    """Decode a `data:<mime>;base64,<payload>` URL."""
    match = _DATA_URL_RE.match(data_url.strip())
    if match is None:
      raise ValueError("Attachment must be a base64 data URL.")
    try:
      data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
      raise ValueError("Attachment payload is not valid base64.") from exc
    return cls(mime_type=match.group("mime"), data=data)

  def to_data_url(self) -> str:
    return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


@dataclass
class StructuredModelResponse:
  """Structured model response structure."""

  content: dict[str, Any]
  usage: dict[str, int] | None = None


class AIModel(ABC):
  """Abstract base class for AI models."""

  name: str
  supports_attachments: bool = False

  @abstractmethod
  async def generate_structured(self, prompt: str, schema: dict[str, Any], attachments: Sequence[Attachment] = ()) -> StructuredModelResponse:
    """Generate structured output that conforms to the provided JSON schema."""


class Provider(ABC):
  """Abstract base class for AI providers."""

  name: str

  @abstractmethod
  def get_model(self, model: str | None = None) -> AIModel:
    """Return the model client for the provider."""
