"""Database models for Invulnerable."""

from invulnerable.models.image import Image
from invulnerable.models.scan import Scan, scan_vulnerabilities
from invulnerable.models.vulnerability import Vulnerability, VulnerabilityKey
from invulnerable.models.vulnerability_history import VulnerabilityHistory
from invulnerable.models.webhook_config import WebhookConfig

__all__ = [
    "Image",
    "Scan",
    "Vulnerability",
    "VulnerabilityHistory",
    "VulnerabilityKey",
    "WebhookConfig",
    "scan_vulnerabilities",
]
