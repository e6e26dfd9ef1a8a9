"""OpenRouter provider implementation using the openai SDK."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, Final

from openai import AsyncOpenAI

from riftcoach.ai.errors import ModelInvocationError
from riftcoach.ai.json_parser import parse_json_with_fallback
from riftcoach.ai.providers.base import AIModel, Attachment, Provider, StructuredModelResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterModel(AIModel):
  """OpenRouter model client with structured output support."""

  _VISION_MODELS: Final[set[str]] = {"google/gemini-2.0-flash-001", "openai/gpt-4o-mini", "google/gemma-3-27b-it:free"}

  def __init__(self, name: str, api_key: str | None, base_url: str | None = None) -> None:
    self.name: str = name
    self.supports_attachments = name in self._VISION_MODELS

    if not api_key:
      raise ValueError("An OpenRouter API key is required")

    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or DEFAULT_BASE_URL)

  def _user_content(self, prompt: str, attachments: Sequence[Attachment]) -> str | list[dict[str, Any]]:
    if not attachments:
      return prompt
    if not self.supports_attachments:
      raise ModelInvocationError(f"Model '{self.name}' does not accept image attachments.")
    parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
    parts.extend({"type": "image_url", "image_url": {"url": item.to_data_url()}} for item in attachments)
    return parts

  async def generate_structured(self, prompt: str, schema: dict[str, Any], attachments: Sequence[Attachment] = ()) -> StructuredModelResponse:
    """Generate structured JSON output using the json_schema response format."""
    # The schema is repeated in the system message for models that ignore response_format.
    schema_str = json.dumps(schema, indent=2)
    system_msg = f"You are a League of Legends coach that outputs valid JSON.\nYou MUST strictly output JSON adhering to this schema:\n```json\n{schema_str}\n```\nOutput valid JSON only, no markdown formatting."

    response = await self._client.chat.completions.create(
      model=self.name,
      messages=[{"role": "system", "content": system_msg}, {"role": "user", "content": self._user_content(prompt, attachments)}],
      response_format={"type": "json_schema", "json_schema": {"name": "coaching_report", "schema": schema}},
    )

    content = response.choices[0].message.content or ""
    logger.debug("OpenRouter %s structured response: %d chars", self.name, len(content))
    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    try:
      parsed = parse_json_with_fallback(content)
    except json.JSONDecodeError as e:
      raise ModelInvocationError(f"OpenRouter returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
      raise ModelInvocationError("OpenRouter returned a JSON value that is not an object")
    return StructuredModelResponse(content=parsed, usage=usage)


class OpenRouterProvider(Provider):
  """OpenRouter provider."""

  _DEFAULT_MODEL: Final[str] = "google/gemini-2.0-flash-001"
  _AVAILABLE_MODELS: Final[set[str]] = {
    "google/gemini-2.0-flash-001",
    "google/gemma-3-27b-it:free",
    "openai/gpt-4o-mini",
    "openai/gpt-oss-20b:free",
    "meta-llama/llama-3.3-70b-instruct:free",
    "deepseek/deepseek-r1-0528:free",
  }

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openrouter"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenRouter model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported OpenRouter model '{model_name}'.")
    return OpenRouterModel(model_name, api_key=self._api_key, base_url=self._base_url)
