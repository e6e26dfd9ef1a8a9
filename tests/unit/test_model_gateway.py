from __future__ import annotations

import pytest
from conftest import RateLimitError, RecordingSleep, ScriptedModel, build_gateway, insight, report_payload

from riftcoach.ai.errors import ModelInvocationError
from riftcoach.ai.gateway import AllModelsFailedError, ModelGateway, ProviderCredentials, split_model_id
from riftcoach.ai.providers.base import Attachment
from riftcoach.analysis.contracts import CoachingReport

CREDENTIALS = ProviderCredentials(gemini_api_key="k")


@pytest.mark.anyio
async def test_retries_rate_limits_then_falls_back_to_next_model() -> None:
  first = ScriptedModel("gemini-2.5-flash", [RateLimitError()])
  second = ScriptedModel("gemini-2.0-flash", [report_payload(insights=[insight(1_000)])])
  sleep = RecordingSleep()
  gateway = build_gateway([first, second], sleep=sleep)

  result = await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash"], CoachingReport, CREDENTIALS)

  assert first.calls == 3
  assert second.calls == 1
  assert result.used_model == "gemini-2.0-flash"
  assert result.attempts == 4
  assert sleep.delays == [2, 4]
  assert result.failures[0].model == "gemini-2.5-flash"
  assert result.failures[0].attempts == 3


@pytest.mark.anyio
async def test_rate_limit_then_success_on_same_model() -> None:
  model = ScriptedModel("gemini-2.5-flash", [RuntimeError("429 RESOURCE_EXHAUSTED"), report_payload()])
  gateway = build_gateway([model])

  result = await gateway.generate("prompt", [], ["gemini-2.5-flash"], CoachingReport, CREDENTIALS)

  assert model.calls == 2
  assert result.used_model == "gemini-2.5-flash"


@pytest.mark.anyio
async def test_non_rate_limit_error_moves_on_immediately() -> None:
  first = ScriptedModel("gemini-2.5-flash", [RuntimeError("Gemini returned invalid JSON")])
  second = ScriptedModel("gemini-2.0-flash", [report_payload()])
  sleep = RecordingSleep()
  gateway = build_gateway([first, second], sleep=sleep)

  result = await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash"], CoachingReport, CREDENTIALS)

  assert first.calls == 1
  assert sleep.delays == []
  assert result.used_model == "gemini-2.0-flash"


@pytest.mark.anyio
async def test_schema_violation_counts_as_model_failure() -> None:
  first = ScriptedModel("gemini-2.5-flash", [{"insights": "not-a-list"}])
  second = ScriptedModel("gemini-2.0-flash", [report_payload()])
  gateway = build_gateway([first, second])

  result = await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash"], CoachingReport, CREDENTIALS)

  assert result.used_model == "gemini-2.0-flash"
  assert "ValidationError" in result.failures[0].reason


@pytest.mark.anyio
async def test_schema_violation_echoing_429_is_not_retried() -> None:
  # The validation message echoes the timestamp, which contains "429".
  first = ScriptedModel("gemini-2.5-flash", [{"summary": "x", "insights": [{"timestamp": 429000, "description": "no title"}]}])
  second = ScriptedModel("gemini-2.0-flash", [report_payload()])
  sleep = RecordingSleep()
  gateway = build_gateway([first, second], sleep=sleep)

  result = await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash"], CoachingReport, CREDENTIALS)

  assert first.calls == 1
  assert sleep.delays == []
  assert result.used_model == "gemini-2.0-flash"
  assert result.failures[0].attempts == 1


@pytest.mark.anyio
async def test_unparsable_output_mentioning_429_moves_on() -> None:
  first = ScriptedModel("gemini-2.5-flash", [ModelInvocationError("Gemini returned invalid JSON: Expecting ',' delimiter: line 1 column 430 (char 429)")])
  second = ScriptedModel("gemini-2.0-flash", [report_payload()])
  sleep = RecordingSleep()
  gateway = build_gateway([first, second], sleep=sleep)

  result = await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash"], CoachingReport, CREDENTIALS)

  assert first.calls == 1
  assert sleep.delays == []
  assert result.used_model == "gemini-2.0-flash"


@pytest.mark.anyio
async def test_first_success_short_circuits() -> None:
  first = ScriptedModel("gemini-2.5-flash", [report_payload()])
  second = ScriptedModel("gemini-2.0-flash", [report_payload()])
  gateway = build_gateway([first, second])

  await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash"], CoachingReport, CREDENTIALS)

  assert first.calls == 1
  assert second.calls == 0


@pytest.mark.anyio
async def test_all_models_failed_lists_every_model() -> None:
  first = ScriptedModel("gemini-2.5-flash", [RateLimitError("429 quota exceeded")])
  second = ScriptedModel("gemini-2.0-flash", [ValueError("bad output")])
  gateway = build_gateway([first, second])

  with pytest.raises(AllModelsFailedError) as excinfo:
    await gateway.generate("prompt", [], ["gemini-2.5-flash", "gemini-2.0-flash", "gemini-unknown"], CoachingReport, CREDENTIALS)

  failures = excinfo.value.failures
  assert [failure.model for failure in failures] == ["gemini-2.5-flash", "gemini-2.0-flash", "gemini-unknown"]
  assert [failure.attempts for failure in failures] == [3, 1, 0]
  assert "bad output" in failures[1].reason
  assert str(excinfo.value).startswith("All models failed:")


@pytest.mark.anyio
async def test_attachments_are_passed_through() -> None:
  model = ScriptedModel("gemini-2.5-flash", [report_payload()])
  gateway = build_gateway([model])
  frame = Attachment(mime_type="image/jpeg", data=b"\xff\xd8")

  await gateway.generate("prompt", [frame], ["gemini-2.5-flash"], CoachingReport, CREDENTIALS)

  assert list(model.last_attachments) == [frame]


@pytest.mark.anyio
async def test_missing_credentials_fail_that_model_only() -> None:
  gateway = ModelGateway(sleep=RecordingSleep())

  with pytest.raises(AllModelsFailedError) as excinfo:
    await gateway.generate("prompt", [], ["gemini-2.5-flash", "openrouter/openai/gpt-4o-mini"], CoachingReport, ProviderCredentials())

  assert [failure.attempts for failure in excinfo.value.failures] == [0, 0]
  assert "API key" in excinfo.value.failures[0].reason


def test_model_prefix_routing() -> None:
  assert split_model_id("openrouter/openai/gpt-4o-mini") == ("openrouter", "openai/gpt-4o-mini")
  assert split_model_id("gemini-2.5-flash") == ("gemini", "gemini-2.5-flash")


def test_credentials_repr_hides_keys() -> None:
  assert "secret" not in repr(ProviderCredentials(gemini_api_key="secret"))


def test_gateway_rejects_zero_attempts() -> None:
  with pytest.raises(ValueError):
    ModelGateway(max_attempts=0)
