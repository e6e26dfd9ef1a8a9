from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from riftcoach import __version__
from riftcoach.api.routes import analysis, quotas
from riftcoach.config import get_settings
from riftcoach.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from riftcoach.core.lifespan import lifespan
from riftcoach.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from riftcoach.core.security import ACCOUNT_HEADER, PROVIDER_KEY_HEADER

settings = get_settings()

app = FastAPI(title="Riftcoach Analysis Service", version=__version__, lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", ACCOUNT_HEADER, PROVIDER_KEY_HEADER], expose_headers=["x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(analysis.router, prefix="/v1/analysis", tags=["analysis"])
app.include_router(quotas.router, prefix="/v1/quota", tags=["quota"])
