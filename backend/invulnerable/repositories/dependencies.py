"""Dependency injection for repositories."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.db import get_db
from invulnerable.repositories.image_repository import ImageRepository
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.repositories.vulnerability_repository import VulnerabilityRepository
from invulnerable.repositories.webhook_config_repository import WebhookConfigRepository
from invulnerable.services.notifications.webhook import WebhookClient
from invulnerable.services.status_tracker import VulnerabilityStatusTracker


def get_image_repository(db: AsyncSession = Depends(get_db)) -> ImageRepository:
    """
    Get ImageRepository instance.

    Args:
        db: Database session from dependency

    Returns:
        ImageRepository instance
    """
    return ImageRepository(db)


def get_scan_repository(db: AsyncSession = Depends(get_db)) -> ScanRepository:
    """
    Get ScanRepository instance.

    Args:
        db: Database session from dependency

    Returns:
        ScanRepository instance
    """
    return ScanRepository(db)


def get_vulnerability_repository(
    db: AsyncSession = Depends(get_db),
) -> VulnerabilityRepository:
    """
    Get VulnerabilityRepository instance.

    Args:
        db: Database session from dependency

    Returns:
        VulnerabilityRepository instance
    """
    return VulnerabilityRepository(db)


def get_webhook_config_repository(
    db: AsyncSession = Depends(get_db),
) -> WebhookConfigRepository:
    """
    Get WebhookConfigRepository instance.

    Args:
        db: Database session from dependency

    Returns:
        WebhookConfigRepository instance
    """
    return WebhookConfigRepository(db)


def get_status_tracker(db: AsyncSession = Depends(get_db)) -> VulnerabilityStatusTracker:
    """
    Get VulnerabilityStatusTracker instance.

    Args:
        db: Database session from dependency

    Returns:
        VulnerabilityStatusTracker instance
    """
    return VulnerabilityStatusTracker(db)


def get_webhook_client(request: Request) -> WebhookClient | None:
    """
    Get a WebhookClient around the shared HTTP client created at startup.

    Returns:
        WebhookClient, or None when the application was started without one
    """
    http_client = getattr(request.app.state, "http_client", None)
    if http_client is None:
        return None
    return WebhookClient(http_client)


def get_actor(request: Request) -> str:
    """
    Identity recorded on audited updates.

    Taken from the auth proxy headers; authentication itself happens upstream.
    """
    return (
        request.headers.get("X-Auth-Request-Email")
        or request.headers.get("X-Auth-Request-User")
        or "unknown"
    )
