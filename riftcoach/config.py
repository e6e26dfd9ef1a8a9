"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from riftcoach.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_DEFAULT_MODEL_ORDER = ("gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.0-flash-lite")
_STORAGE_BACKENDS = {"memory", "postgres"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Riftcoach service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  storage_backend: str
  pg_dsn: str | None
  pg_connect_timeout: int
  auto_create_tables: bool
  auto_provision_accounts: bool
  gemini_api_key: str | None
  openrouter_api_key: str | None
  openrouter_base_url: str | None
  riot_api_key: str | None
  riot_region: str
  item_catalog_path: str | None
  model_order: tuple[str, ...]
  model_max_attempts: int
  backoff_base_seconds: float
  backoff_max_seconds: float
  premium_daily_cap: int
  free_credit_cap: int
  truth_max_events: int
  grounding_tolerance_ms: int
  job_deadline_seconds: float
  poll_interval_seconds: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("RIFTCOACH_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("RIFTCOACH_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("RIFTCOACH_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_model_order(raw: str | None) -> tuple[str, ...]:
  if raw is None or raw.strip() == "":
    return _DEFAULT_MODEL_ORDER
  models = tuple(model.strip() for model in raw.split(",") if model.strip())
  if not models:
    raise ValueError("RIFTCOACH_MODEL_ORDER must list at least one model.")
  return models


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("RIFTCOACH_ENV", "development").lower()
  debug = _parse_bool(os.getenv("RIFTCOACH_DEBUG"))

  log_backup_count = int(os.getenv("RIFTCOACH_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("RIFTCOACH_LOG_BACKUP_COUNT must be zero or a positive integer.")

  storage_backend = (os.getenv("RIFTCOACH_STORAGE_BACKEND") or "memory").strip().lower()
  if storage_backend not in _STORAGE_BACKENDS:
    raise ValueError(f"RIFTCOACH_STORAGE_BACKEND must be one of {sorted(_STORAGE_BACKENDS)}.")

  pg_dsn = _optional_str(os.getenv("RIFTCOACH_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  if storage_backend == "postgres" and not pg_dsn:
    raise ValueError("RIFTCOACH_PG_DSN must be set when RIFTCOACH_STORAGE_BACKEND=postgres.")

  backoff_base_seconds = _positive_float("RIFTCOACH_BACKOFF_BASE_SECONDS", "2")
  backoff_max_seconds = _positive_float("RIFTCOACH_BACKOFF_MAX_SECONDS", "30")
  if backoff_max_seconds < backoff_base_seconds:
    raise ValueError("RIFTCOACH_BACKOFF_MAX_SECONDS must be >= RIFTCOACH_BACKOFF_BASE_SECONDS.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("RIFTCOACH_ALLOWED_ORIGINS")),
    log_dir=(os.getenv("RIFTCOACH_LOG_DIR") or "./logs").strip(),
    log_max_bytes=_positive_int("RIFTCOACH_LOG_MAX_BYTES", "5242880"),
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("RIFTCOACH_LOG_HTTP_4XX")),
    storage_backend=storage_backend,
    pg_dsn=pg_dsn,
    pg_connect_timeout=_positive_int("RIFTCOACH_PG_CONNECT_TIMEOUT", "5"),
    auto_create_tables=_parse_bool(os.getenv("RIFTCOACH_AUTO_CREATE_TABLES")),
    auto_provision_accounts=_parse_bool(os.getenv("RIFTCOACH_AUTO_PROVISION_ACCOUNTS")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    openrouter_base_url=_optional_str(os.getenv("OPENROUTER_BASE_URL")),
    riot_api_key=_optional_str(os.getenv("RIOT_API_KEY")),
    riot_region=(os.getenv("RIFTCOACH_RIOT_REGION") or "asia").strip().lower(),
    item_catalog_path=_optional_str(os.getenv("RIFTCOACH_ITEM_CATALOG_PATH")),
    model_order=_parse_model_order(os.getenv("RIFTCOACH_MODEL_ORDER")),
    model_max_attempts=_positive_int("RIFTCOACH_MODEL_MAX_ATTEMPTS", "3"),
    backoff_base_seconds=backoff_base_seconds,
    backoff_max_seconds=backoff_max_seconds,
    premium_daily_cap=_positive_int("RIFTCOACH_PREMIUM_DAILY_CAP", "20"),
    free_credit_cap=_positive_int("RIFTCOACH_FREE_CREDIT_CAP", "3"),
    truth_max_events=_positive_int("RIFTCOACH_TRUTH_MAX_EVENTS", "40"),
    grounding_tolerance_ms=_positive_int("RIFTCOACH_GROUNDING_TOLERANCE_MS", "60000"),
    job_deadline_seconds=_positive_float("RIFTCOACH_JOB_DEADLINE_SECONDS", "300"),
    poll_interval_seconds=_positive_int("RIFTCOACH_POLL_INTERVAL_SECONDS", "3"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("RIFTCOACH_DEBUG"))
  pg_connect_timeout = _positive_int("RIFTCOACH_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = _optional_str(os.getenv("RIFTCOACH_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
