"""Invulnerable FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from invulnerable import __version__
from invulnerable.api import images, scans, vulnerabilities, webhook_configs
from invulnerable.config import settings
from invulnerable.db import init_db
from invulnerable.exceptions import (
    CrossImageError,
    DeliveryError,
    InvulnerableError,
    NotFoundError,
    ValidationError,
)
from invulnerable.services.notifications.webhook import create_http_client

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[InvulnerableError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    CrossImageError: 400,
    DeliveryError: 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name} {__version__}...")
    await init_db()

    # One client for every webhook delivery
    app.state.http_client = create_http_client()
    logger.info(f"Webhook client ready (timeout {settings.webhook_timeout_seconds}s)")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await app.state.http_client.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Container image vulnerability lifecycle and SLA compliance tracking",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(InvulnerableError)
async def invulnerable_error_handler(request: Request, exc: InvulnerableError) -> JSONResponse:
    """Map domain errors onto HTTP status codes."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


# Include routers
app.include_router(images.router, prefix="/api/v1/images", tags=["Images"])
app.include_router(scans.router, prefix="/api/v1/scans", tags=["Scans"])
app.include_router(
    vulnerabilities.router, prefix="/api/v1/vulnerabilities", tags=["Vulnerabilities"]
)
app.include_router(
    webhook_configs.router, prefix="/api/v1/webhook-configs", tags=["Webhook Configs"]
)
