from __future__ import annotations

import pytest

from riftcoach.config import get_settings


@pytest.fixture
def fresh_settings(monkeypatch):
  get_settings.cache_clear()
  yield monkeypatch
  get_settings.cache_clear()


def test_defaults(fresh_settings) -> None:
  fresh_settings.delenv("RIFTCOACH_MODEL_ORDER", raising=False)
  fresh_settings.delenv("RIFTCOACH_GROUNDING_TOLERANCE_MS", raising=False)

  settings = get_settings()

  assert settings.model_order[0] == "gemini-2.5-flash"
  assert settings.grounding_tolerance_ms == 60_000
  assert settings.model_max_attempts == 3
  assert settings.free_credit_cap == 3
  assert settings.premium_daily_cap == 20


def test_model_order_is_parsed(fresh_settings) -> None:
  fresh_settings.setenv("RIFTCOACH_MODEL_ORDER", " gemini-2.0-flash , openrouter/openai/gpt-4o-mini ,")

  assert get_settings().model_order == ("gemini-2.0-flash", "openrouter/openai/gpt-4o-mini")


@pytest.mark.parametrize("origins", ["", "*", " , "])
def test_invalid_origins_rejected(fresh_settings, origins: str) -> None:
  fresh_settings.setenv("RIFTCOACH_ALLOWED_ORIGINS", origins)

  with pytest.raises(ValueError):
    get_settings()


def test_postgres_backend_requires_dsn(fresh_settings) -> None:
  fresh_settings.setenv("RIFTCOACH_STORAGE_BACKEND", "postgres")
  fresh_settings.delenv("RIFTCOACH_PG_DSN", raising=False)
  fresh_settings.delenv("DATABASE_URL", raising=False)

  with pytest.raises(ValueError):
    get_settings()


def test_non_positive_numbers_rejected(fresh_settings) -> None:
  fresh_settings.setenv("RIFTCOACH_GROUNDING_TOLERANCE_MS", "0")

  with pytest.raises(ValueError):
    get_settings()


def test_entrypoint_serves_riftcoach_app() -> None:
  from scripts.entrypoint import build_uvicorn_args

  args = build_uvicorn_args({"PORT": "9000"})

  assert args[:2] == ["uvicorn", "riftcoach.main:app"]
  assert args[args.index("--port") + 1] == "9000"
  assert args[args.index("--workers") + 1] == "1"
