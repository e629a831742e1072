"""Repository pattern implementation for database queries."""

from invulnerable.repositories.image_repository import ImageRepository
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.repositories.vulnerability_repository import VulnerabilityRepository
from invulnerable.repositories.webhook_config_repository import WebhookConfigRepository

__all__ = [
    "ImageRepository",
    "ScanRepository",
    "VulnerabilityRepository",
    "WebhookConfigRepository",
]
