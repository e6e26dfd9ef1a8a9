"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, Final

from google import genai
from google.genai import types

from riftcoach.ai.errors import ModelInvocationError
from riftcoach.ai.json_parser import parse_json_with_fallback
from riftcoach.ai.providers.base import AIModel, Attachment, Provider, StructuredModelResponse

logger = logging.getLogger(__name__)


class GeminiModel(AIModel):
  """Gemini model client with JSON-mode structured output and inline image parts."""

  def __init__(self, name: str, api_key: str | None) -> None:
    self.name: str = name
    self.supports_attachments = True

    if not api_key:
      raise ValueError("A Gemini API key is required")

    self._client = genai.Client(api_key=api_key)

  async def generate_structured(self, prompt: str, schema: dict[str, Any], attachments: Sequence[Attachment] = ()) -> StructuredModelResponse:
    """Generate structured JSON output using Gemini's JSON mode."""
    contents: list[Any] = [types.Part.from_bytes(data=item.data, mime_type=item.mime_type) for item in attachments]
    contents.append(prompt)

    # Rate-limit errors propagate untouched so the gateway can classify them.
    response = await self._client.aio.models.generate_content(model=self.name, contents=contents, config={"response_mime_type": "application/json", "response_schema": schema})
    text = response.text or ""
    logger.debug("Gemini %s structured response: %d chars", self.name, len(text))

    usage = None
    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}

    try:
      parsed = parse_json_with_fallback(text)
    except json.JSONDecodeError as e:
      raise ModelInvocationError(f"Gemini returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
      raise ModelInvocationError("Gemini returned a JSON value that is not an object")
    return StructuredModelResponse(content=parsed, usage=usage)


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"
  _AVAILABLE_MODELS: Final[set[str]] = {"gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash", "gemini-2.0-flash-001", "gemini-2.0-flash-lite", "gemini-1.5-pro", "gemini-1.5-flash"}

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key)
