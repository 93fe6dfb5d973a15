"""Integration Hub API — FastAPI entry point.

Registers middleware, routers, error mapping and lifecycle hooks.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import TenantMiddleware
from api.routes.integrations import router as integrations_router
from api.routes.webhooks import router as webhooks_router
from hub.database import close_db
from hub.integrations.errors import (
    AuthenticationError,
    ConfigurationError,
    DecryptionError,
    IntegrationError,
    IntegrationNotFoundError,
    IntegrationNotPermitted,
    InvalidParamsError,
    ProviderError,
    ReauthenticationRequired,
    UnknownActionError,
    UnknownProviderError,
    UsageLimitExceeded,
)
from hub.logging_config import setup_logging
from hub.observability.otel_setup import setup_otel

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
).split(",")
VERSION = "0.1.0"

# Most specific class first
ERROR_STATUS: list[tuple[type[IntegrationError], int]] = [
    (IntegrationNotFoundError, 404),
    (UnknownProviderError, 404),
    (ReauthenticationRequired, 401),
    (AuthenticationError, 400),
    (UsageLimitExceeded, 402),
    (IntegrationNotPermitted, 403),
    (UnknownActionError, 400),
    (InvalidParamsError, 422),
    (ProviderError, 502),
    (DecryptionError, 500),
    (ConfigurationError, 503),
]


def status_for(exc: IntegrationError) -> int:
    for cls, status in ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 400


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown hooks."""
    setup_logging()
    setup_otel(service_name=os.getenv("OTEL_SERVICE_NAME", "integration-hub"))
    logger.info("Integration Hub API started")
    yield
    await close_db()
    logger.info("Integration Hub API shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Integration Hub",
    description="Multi-tenant adapters for email, SMS, calendar, CRM, payments, documents and webhooks",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Multi-tenant middleware
app.add_middleware(TenantMiddleware)


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    body = {"error": exc.message, "type": type(exc).__name__, "provider": exc.provider}
    if isinstance(exc, ReauthenticationRequired):
        body["reconnect"] = True
    if isinstance(exc, UsageLimitExceeded):
        body.update({"channel": exc.channel, "used": exc.used, "limit": exc.limit, "plan": exc.plan})
    return JSONResponse(status_code=status, content=body)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(integrations_router, prefix="/api/integrations", tags=["Integrations"])
app.include_router(webhooks_router, prefix="/api/webhooks", tags=["Webhooks"])


# ---------------------------------------------------------------------------
# Health & root
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


@app.get("/")
async def root():
    return {
        "name": "Integration Hub",
        "version": VERSION,
        "docs": "/docs",
    }
