from __future__ import annotations

import json

import pytest

from riftcoach.ai.backoff import ExponentialBackoff
from riftcoach.ai.errors import ModelInvocationError, describe_failure, is_rate_limit_error
from riftcoach.ai.json_parser import parse_json_with_fallback, strip_json_fences
from riftcoach.ai.prompts import build_coaching_prompt, format_game_time
from riftcoach.ai.providers.base import Attachment
from riftcoach.analysis.contracts import AnalysisMode, GeneratedInsight, TimeWindow, TruthEvent, TruthEventType


def test_backoff_doubles_and_caps() -> None:
  backoff = ExponentialBackoff(base_seconds=2, max_seconds=30)
  assert [backoff.delay(attempt) for attempt in (1, 2, 3, 4, 5)] == [2, 4, 8, 16, 30]
  assert backoff.delay(10_000) == 30


def test_backoff_rejects_bad_values() -> None:
  with pytest.raises(ValueError):
    ExponentialBackoff(base_seconds=0)
  with pytest.raises(ValueError):
    ExponentialBackoff(base_seconds=4, max_seconds=2)
  with pytest.raises(ValueError):
    ExponentialBackoff().delay(0)


class _StatusError(Exception):
  def __init__(self, status: int) -> None:
    super().__init__("backend error")
    self.status_code = status


def test_rate_limit_detection() -> None:
  assert is_rate_limit_error(_StatusError(429))
  assert is_rate_limit_error(RuntimeError("RESOURCE_EXHAUSTED: quota"))
  assert not is_rate_limit_error(_StatusError(500))
  assert not is_rate_limit_error(ValueError("bad json"))

  wrapped = RuntimeError("generation failed")
  wrapped.__cause__ = _StatusError(429)
  assert is_rate_limit_error(wrapped)


def test_digits_inside_messages_are_not_rate_limits() -> None:
  assert is_rate_limit_error(RuntimeError("429 Too Many Requests"))
  assert not is_rate_limit_error(ValueError("Expecting value: line 1 column 430 (char 429)"))
  assert not is_rate_limit_error(ModelInvocationError("Gemini returned invalid JSON: line 1 column 430 (char 429)"))
  assert not is_rate_limit_error(ModelInvocationError("rate limit reached in output text"))


def test_describe_failure_is_single_line() -> None:
  assert describe_failure(ValueError("line one\nline two")) == "ValueError: line one line two"
  assert describe_failure(TimeoutError()) == "TimeoutError"
  assert len(describe_failure(RuntimeError("x" * 1000))) < 330


def test_json_parser_handles_fences_prose_and_trailing_commas() -> None:
  assert strip_json_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
  assert parse_json_with_fallback('Here you go: {"summary": "ok", "insights": [],} thanks') == {"summary": "ok", "insights": []}
  assert parse_json_with_fallback('{"text": "brace } inside"}') == {"text": "brace } inside"}

  with pytest.raises(json.JSONDecodeError):
    parse_json_with_fallback("no json at all")


def test_attachment_data_url_round_trip_and_rejection() -> None:
  attachment = Attachment.from_data_url("data:image/jpeg;base64,/9j/4AAQ")
  assert attachment.mime_type == "image/jpeg"
  assert Attachment.from_data_url(attachment.to_data_url()) == attachment

  with pytest.raises(ValueError):
    Attachment.from_data_url("data:image/png;base64,@@@")
  with pytest.raises(ValueError):
    Attachment.from_data_url("https://example.com/frame.png")


def test_insight_type_is_normalized() -> None:
  parsed = GeneratedInsight.model_validate({"timestamp": 1000, "title": "Gank", "type": "turning_point", "extra": "ignored"})
  assert parsed.type == "TURNING_POINT"


def test_prompt_lists_verified_events_and_question() -> None:
  events = [TruthEvent(type=TruthEventType.OBJECTIVE, timestamp=125_000, detail="DRAGON")]

  prompt = build_coaching_prompt(mode=AnalysisMode.VISION, truth_events=events, subject_summary={"champion": "Ahri"}, window=TimeWindow(0, 840_000), question="Why did we lose drake?", frame_count=3)

  assert format_game_time(125_000) == "02:05"
  assert '"time": "02:05"' in prompt
  assert "00:00 to 14:00" in prompt
  assert "3 gameplay frames" in prompt
  assert "Why did we lose drake?" in prompt
