import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from riftcoach.config import get_settings
from riftcoach.core.database import create_tables, dispose_engine
from riftcoach.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging and storage on startup and drain running jobs on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("riftcoach.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # Keep serving with default logging when the log directory is unusable.
    logger.warning("Logging setup failed; continuing with default handlers.", exc_info=True)

  if settings.storage_backend == "postgres" and settings.auto_create_tables:
    logger.info("Creating missing tables (RIFTCOACH_AUTO_CREATE_TABLES enabled)")
    await create_tables()

  yield

  orchestrator = getattr(app.state, "orchestrator", None)
  if orchestrator is not None:
    await orchestrator.shutdown()
  if settings.storage_backend == "postgres":
    await dispose_engine()
  logger.info("Shutdown complete.")
