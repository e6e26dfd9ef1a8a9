"""Container entrypoint: replace this process with uvicorn serving the Riftcoach API."""

import logging
import os
from collections.abc import Mapping

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("riftcoach.entrypoint")


def build_uvicorn_args(env: Mapping[str, str]) -> list[str]:
  port = env.get("PORT", "8080")
  workers = env.get("RIFTCOACH_WORKERS", "1")
  # Each uvicorn worker supervises only the jobs it accepted.
  return ["uvicorn", "riftcoach.main:app", "--host", "0.0.0.0", "--port", port, "--workers", workers, "--no-server-header", "--timeout-graceful-shutdown", "15"]


def main() -> None:
  """Launch the service; schema migrations run as a separate `alembic upgrade head` step."""
  args = build_uvicorn_args(os.environ)
  logger.info("Starting Riftcoach API: %s", " ".join(args))
  # execvp hands signals (SIGTERM) directly to uvicorn so running jobs are drained.
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
