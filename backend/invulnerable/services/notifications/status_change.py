"""Routes operator status changes to the owning scanning policy's webhook."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.exceptions import DeliveryError
from invulnerable.models import Vulnerability
from invulnerable.repositories.image_repository import ImageRepository
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.repositories.webhook_config_repository import WebhookConfigRepository
from invulnerable.services.notifications.base import NotificationOutcome, StatusChangeDetails
from invulnerable.services.notifications.policy import (
    NotificationPolicyEvaluator,
    StatusChangePolicy,
)
from invulnerable.services.notifications.webhook import WebhookClient
from invulnerable.services.status_tracker import FieldChange, UpdateContext
from invulnerable.utils.log_redaction import redact_url

logger = logging.getLogger(__name__)


class StatusChangeNotifier:
    """Evaluates and delivers status-change notifications after an update."""

    def __init__(
        self,
        db: AsyncSession,
        webhook_client: WebhookClient,
        evaluator: NotificationPolicyEvaluator | None = None,
    ):
        self.configs = WebhookConfigRepository(db)
        self.images = ImageRepository(db)
        self.scans = ScanRepository(db)
        self.webhook_client = webhook_client
        self.evaluator = evaluator or NotificationPolicyEvaluator()

    async def _image_name(self, vulnerability: Vulnerability, context: UpdateContext | None) -> str | None:
        if context and context.image_name:
            return context.image_name
        scan = await self.scans.get_latest_for_vulnerability(vulnerability.id)
        if scan is None:
            return None
        image = await self.images.get_by_id(scan.image_id)
        return image.full_name if image else None

    async def notify(
        self,
        vulnerability: Vulnerability,
        changes: list[FieldChange],
        context: UpdateContext | None = None,
    ) -> NotificationOutcome:
        """
        Notify about the changes an update made to one vulnerability.

        ``changes`` come from the tracker, so the old status is the value the
        vulnerability actually had before the update. Delivery failures are
        logged and reported in the outcome, never raised.
        """
        status_change = next((c for c in changes if c.field_name == "status"), None)
        notes_changed = any(c.field_name == "notes" for c in changes)
        if status_change is None and not notes_changed:
            return NotificationOutcome(sent=False, reason="nothing changed")

        config = await self.configs.get(
            vulnerability.imagescan_namespace, vulnerability.imagescan_name
        )
        if config is None:
            return NotificationOutcome(sent=False, reason="no webhook configured")

        policy = StatusChangePolicy.from_config(config)
        if status_change is None and not policy.include_notes:
            return NotificationOutcome(sent=False, reason="note changes are not notified")

        old_status = status_change.old_value if status_change else vulnerability.status
        details = StatusChangeDetails(
            cve_id=vulnerability.cve_id,
            package_name=vulnerability.package_name,
            package_version=vulnerability.package_version,
            severity=vulnerability.severity,
            fix_version=vulnerability.fix_version,
            old_status=old_status or "",
            new_status=vulnerability.status,
            changed_by=vulnerability.updated_by or "unknown",
            notes=vulnerability.notes,
            image_name=await self._image_name(vulnerability, context),
            vulnerability_id=vulnerability.id,
            changed_at=vulnerability.updated_at,
        )

        decision = self.evaluator.evaluate_status_change(policy, details)
        if not decision.notify:
            logger.info(
                f"Skipping status change notification for {vulnerability.cve_id}: {decision.reason}"
            )
            return NotificationOutcome(sent=False, reason=decision.reason)

        try:
            await self.webhook_client.post(policy.webhook_url, decision.payload)
        except DeliveryError as e:
            logger.error(
                f"Failed to send status change notification for {vulnerability.cve_id} "
                f"to {redact_url(policy.webhook_url)}: {e}"
            )
            return NotificationOutcome(sent=False, reason=decision.reason, error=str(e))

        return NotificationOutcome(sent=True, reason=decision.reason)
