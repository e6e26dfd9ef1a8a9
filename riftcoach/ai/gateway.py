"""Ordered model fallback with rate-limit retries.

The gateway walks a list of model ids, retrying each one only while it reports
rate limiting, and returns the first response that validates against the
requested pydantic schema. Any other failure moves on to the next model. When
every model has failed the caller gets one error listing each model's last
failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from riftcoach.ai.backoff import ExponentialBackoff
from riftcoach.ai.errors import describe_failure, is_rate_limit_error
from riftcoach.ai.providers.base import AIModel, Attachment, Provider
from riftcoach.ai.providers.gemini import GeminiProvider
from riftcoach.ai.providers.openrouter import OpenRouterProvider

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

OPENROUTER_PREFIX = "openrouter/"


@dataclass(frozen=True)
class ProviderCredentials:
  """Backend keys resolved once per job; never persisted or logged."""

  gemini_api_key: str | None = None
  openrouter_api_key: str | None = None
  openrouter_base_url: str | None = None
  caller_supplied: bool = False

  def __repr__(self) -> str:
    return f"ProviderCredentials(gemini={self.gemini_api_key is not None}, openrouter={self.openrouter_api_key is not None}, caller_supplied={self.caller_supplied})"


ProviderFactory = Callable[[ProviderCredentials], Provider]


def default_provider_factories() -> dict[str, ProviderFactory]:
  return {
    "gemini": lambda credentials: GeminiProvider(api_key=credentials.gemini_api_key),
    "openrouter": lambda credentials: OpenRouterProvider(api_key=credentials.openrouter_api_key, base_url=credentials.openrouter_base_url),
  }


def split_model_id(model_id: str) -> tuple[str, str]:
  """Route `openrouter/<vendor>/<model>` to OpenRouter and everything else to Gemini."""
  if model_id.startswith(OPENROUTER_PREFIX):
    return "openrouter", model_id[len(OPENROUTER_PREFIX) :]
  return "gemini", model_id


@dataclass(frozen=True)
class ModelFailure:
  model: str
  reason: str
  attempts: int


class AllModelsFailedError(RuntimeError):
  """Raised when every model in the order failed; carries each model's last failure."""

  def __init__(self, failures: Sequence[ModelFailure]) -> None:
    self.failures = list(failures)
    summary = " | ".join(f"{failure.model}: {failure.reason}" for failure in self.failures) or "no models configured"
    super().__init__(f"All models failed: {summary}")


@dataclass
class GatewayResult(Generic[T]):
  result: T
  used_model: str
  attempts: int
  usage: dict[str, int] | None = None
  failures: list[ModelFailure] = field(default_factory=list)


class ModelGateway:
  """Stateless fallback/retry driver shared by all jobs."""

  def __init__(
    self,
    *,
    max_attempts: int = 3,
    backoff: ExponentialBackoff | None = None,
    provider_factories: Mapping[str, ProviderFactory] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
  ) -> None:
    if max_attempts < 1:
      raise ValueError("max_attempts must be >= 1")
    self._max_attempts = max_attempts
    self._backoff = backoff or ExponentialBackoff()
    self._provider_factories = dict(provider_factories or default_provider_factories())
    self._sleep = sleep

  def _resolve_model(self, model_id: str, credentials: ProviderCredentials) -> AIModel:
    provider_name, model_name = split_model_id(model_id)
    factory = self._provider_factories.get(provider_name)
    if factory is None:
      raise ValueError(f"No provider registered for '{provider_name}'.")
    return factory(credentials).get_model(model_name)

  async def generate(
    self,
    prompt: str,
    attachments: Sequence[Attachment],
    model_order: Sequence[str],
    response_model: type[T],
    credentials: ProviderCredentials,
    *,
    job_id: str | None = None,
  ) -> GatewayResult[T]:
    """Return the first schema-valid response, trying models in order."""
    schema = response_model.model_json_schema()
    failures: list[ModelFailure] = []
    total_attempts = 0

    for model_id in model_order:
      try:
        model = self._resolve_model(model_id, credentials)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Model unavailable job_id=%s model=%s reason=%s", job_id, model_id, describe_failure(exc))
        failures.append(ModelFailure(model=model_id, reason=describe_failure(exc), attempts=0))
        continue

      attempt = 0
      while True:
        attempt += 1
        total_attempts += 1
        logger.info("Model attempt job_id=%s model=%s attempt=%d/%d", job_id, model_id, attempt, self._max_attempts)
        try:
          response = await model.generate_structured(prompt, schema, attachments)
        except Exception as exc:  # noqa: BLE001
          if is_rate_limit_error(exc) and attempt < self._max_attempts:
            delay = self._backoff.delay(attempt)
            logger.warning("Rate limited job_id=%s model=%s attempt=%d; retrying in %.1fs", job_id, model_id, attempt, delay)
            await self._sleep(delay)
            continue

          reason = describe_failure(exc)
          logger.warning("Model failed job_id=%s model=%s attempts=%d reason=%s", job_id, model_id, attempt, reason)
          failures.append(ModelFailure(model=model_id, reason=reason, attempts=attempt))
          break

        # Schema violations are never retried on the same model.
        try:
          result = response_model.model_validate(response.content)
        except ValidationError as exc:
          reason = describe_failure(exc)
          logger.warning("Model output rejected job_id=%s model=%s attempts=%d reason=%s", job_id, model_id, attempt, reason)
          failures.append(ModelFailure(model=model_id, reason=reason, attempts=attempt))
          break

        logger.info("Model succeeded job_id=%s model=%s attempts=%d", job_id, model_id, attempt)
        return GatewayResult(result=result, used_model=model_id, attempts=total_attempts, usage=response.usage, failures=failures)

    raise AllModelsFailedError(failures)
