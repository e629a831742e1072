"""Webhook configuration repository, keyed by scanning policy (namespace, name)."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.models import WebhookConfig

logger = logging.getLogger(__name__)

# Fields a PUT may set; anything else on the model is bookkeeping
CONFIG_FIELDS = (
    "webhook_url",
    "webhook_format",
    "scan_min_severity",
    "scan_only_fixable",
    "status_change_enabled",
    "status_change_min_severity",
    "status_change_only_fixable",
    "status_change_transitions",
    "status_change_include_notes",
)


class WebhookConfigRepository:
    """Repository for WebhookConfig model."""

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository.

        Args:
            db: AsyncSession database session
        """
        self.db = db

    async def get(self, namespace: str | None, name: str | None) -> WebhookConfig | None:
        """
        Resolve the config for a scanning policy.

        A missing policy context or a missing row means "no notifications
        configured" and yields None rather than an error.
        """
        if not namespace or not name:
            return None

        result = await self.db.execute(
            select(WebhookConfig).where(
                WebhookConfig.namespace == namespace, WebhookConfig.name == name
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, namespace: str, name: str, **values) -> WebhookConfig:
        """
        Create or replace the config for a scanning policy.

        Args:
            namespace: Scanning policy namespace
            name: Scanning policy name
            **values: Any of CONFIG_FIELDS

        Returns:
            Persisted config (flushed, not committed)
        """
        config = await self.get(namespace, name)
        if config is None:
            config = WebhookConfig(namespace=namespace, name=name)
            self.db.add(config)
            logger.info(f"Creating webhook config for {namespace}/{name}")

        for field in CONFIG_FIELDS:
            if field in values:
                setattr(config, field, values[field])

        await self.db.flush()
        return config

    async def delete(self, namespace: str, name: str) -> bool:
        """
        Delete the config for a scanning policy.

        Returns:
            True if a config was deleted
        """
        config = await self.get(namespace, name)
        if config is None:
            return False

        await self.db.delete(config)
        await self.db.flush()
        logger.info(f"Deleted webhook config for {namespace}/{name}")
        return True
