"""
Scan ingestion.

Stores a Grype report as a Scan, upserts its vulnerabilities by identity,
diffs against the previous scan of the image (auto-fixing what disappeared)
and sends the scan-completion notification. Notification failures never
fail ingestion.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.constants import (
    SYSTEM_ACTOR,
    VulnerabilityStatus,
    WebhookFormat,
    normalize_severity,
)
from invulnerable.exceptions import DeliveryError
from invulnerable.models import Scan, Vulnerability, VulnerabilityKey
from invulnerable.repositories.image_repository import ImageRepository
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.repositories.vulnerability_repository import VulnerabilityRepository
from invulnerable.repositories.webhook_config_repository import WebhookConfigRepository
from invulnerable.schemas.scan import ScanIngestRequest
from invulnerable.services.notifications.base import NotificationOutcome, SeverityCounts
from invulnerable.services.notifications.policy import (
    NotificationPolicyEvaluator,
    ScanCompletionPolicy,
)
from invulnerable.services.notifications.webhook import WebhookClient
from invulnerable.services.scan_diff import ScanDiff, ScanDiffEngine
from invulnerable.services.status_tracker import UpdateContext, VulnerabilityStatusTracker
from invulnerable.utils.log_redaction import redact_url, sanitize_for_log
from invulnerable.utils.timezone import get_now

logger = logging.getLogger(__name__)

# Triaged as not actionable; never counted in scan notifications
TRIAGED_STATUSES = frozenset({VulnerabilityStatus.IGNORED.value, VulnerabilityStatus.ACCEPTED.value})


@dataclass
class IngestionResult:
    scan: Scan
    vulnerability_count: int
    diff: ScanDiff
    notification: NotificationOutcome | None = None


class ScanIngestionService:
    """Turns an inbound scan report into stored scans, vulnerabilities and notifications."""

    def __init__(
        self,
        db: AsyncSession,
        webhook_client: WebhookClient | None = None,
        evaluator: NotificationPolicyEvaluator | None = None,
    ):
        """
        Initialize the service.

        Args:
            db: AsyncSession database session
            webhook_client: Delivery client; notifications are skipped without one
            evaluator: Notification policy evaluator
        """
        self.db = db
        self.images = ImageRepository(db)
        self.scans = ScanRepository(db)
        self.vulns = VulnerabilityRepository(db)
        self.configs = WebhookConfigRepository(db)
        self.tracker = VulnerabilityStatusTracker(db)
        self.diff_engine = ScanDiffEngine(db, self.tracker)
        self.webhook_client = webhook_client
        self.evaluator = evaluator or NotificationPolicyEvaluator()

    async def ingest(self, request: ScanIngestRequest, *, now: datetime | None = None) -> IngestionResult:
        """
        Ingest one scan report.

        Args:
            request: Parsed ingestion request
            now: Scan time, defaults to the current UTC time

        Returns:
            IngestionResult
        """
        now = now or get_now()
        namespace = request.imagescan_context.namespace if request.imagescan_context else None
        policy_name = request.imagescan_context.name if request.imagescan_context else None
        if namespace is None:
            logger.warning(f"Received scan without ImageScan context for {sanitize_for_log(request.image)}")

        image = await self.images.get_or_create(request.image, request.image_digest)
        sla = request.sla_config
        scan = await self.scans.create(
            image_id=image.id,
            scan_date=now,
            scanner_version=request.grype_result.descriptor.version
            if request.grype_result.descriptor
            else None,
            sla_critical=sla.critical if sla else None,
            sla_high=sla.high if sla else None,
            sla_medium=sla.medium if sla else None,
            sla_low=sla.low if sla else None,
            imagescan_namespace=namespace,
            imagescan_name=policy_name,
        )

        context = UpdateContext(image_id=image.id, image_name=image.full_name)
        reverted: set[VulnerabilityKey] = set()
        linked: set[int] = set()

        for match in request.grype_result.matches:
            key = VulnerabilityKey(match.vulnerability.id, match.artifact.name, match.artifact.version)
            existing = await self.vulns.get_by_key(key)
            if existing is not None and key not in reverted and self._should_revert(existing):
                logger.info(
                    f"Reverting {key.cve_id} in {sanitize_for_log(key.package_name)} to active: "
                    f"still detected after being fixed by {sanitize_for_log(existing.updated_by)}"
                )
                await self.tracker.update(
                    existing.id,
                    status=VulnerabilityStatus.ACTIVE.value,
                    actor=SYSTEM_ACTOR,
                    context=context,
                    now=now,
                )
                reverted.add(key)

            vuln, _ = await self.vulns.upsert(
                key,
                severity=normalize_severity(match.vulnerability.severity),
                fix_version=match.vulnerability.fix_version,
                package_type=match.artifact.type,
                url=match.vulnerability.url,
                description=match.vulnerability.description,
                seen_at=now,
                imagescan_namespace=namespace,
                imagescan_name=policy_name,
            )
            if vuln.id not in linked:
                await self.scans.link_vulnerability(scan.id, vuln.id)
                linked.add(vuln.id)

        await self.db.commit()
        logger.info(
            f"Stored scan {scan.id} for {sanitize_for_log(image.full_name)} "
            f"with {len(linked)} vulnerabilities"
        )

        diff = await self.diff_engine.diff(scan.id, now=now)

        notification = await self._notify_scan_completion(request, scan, namespace, policy_name)
        return IngestionResult(
            scan=diff.scan,
            vulnerability_count=len(linked),
            diff=diff,
            notification=notification,
        )

    @staticmethod
    def _should_revert(vuln: Vulnerability) -> bool:
        """An operator marked it fixed but the scanner still sees it."""
        return vuln.status == VulnerabilityStatus.FIXED.value and vuln.updated_by != SYSTEM_ACTOR

    async def _resolve_policy(
        self, request: ScanIngestRequest, namespace: str | None, name: str | None
    ) -> ScanCompletionPolicy | None:
        if request.webhook_config is not None:
            inline = request.webhook_config
            return ScanCompletionPolicy(
                webhook_url=inline.url,
                webhook_format=WebhookFormat.parse(inline.format),
                min_severity=inline.min_severity,
                only_fixable=inline.only_fixable,
            )

        config = await self.configs.get(namespace, name)
        if config is None:
            return None
        return ScanCompletionPolicy.from_config(config)

    async def _notify_scan_completion(
        self,
        request: ScanIngestRequest,
        scan: Scan,
        namespace: str | None,
        name: str | None,
    ) -> NotificationOutcome | None:
        policy = await self._resolve_policy(request, namespace, name)
        if policy is None:
            return None
        if self.webhook_client is None:
            logger.warning(f"Webhook configured for scan {scan.id} but no delivery client available")
            return None

        vulns = await self.scans.get_vulnerabilities(scan.id)
        matching = [
            v
            for v in vulns
            if v.status not in TRIAGED_STATUSES and (v.has_fix or not policy.only_fixable)
        ]
        counts = SeverityCounts.from_severities(v.severity for v in matching)

        decision = self.evaluator.evaluate_scan_completion(
            policy,
            counts,
            len(matching),
            image_name=request.image,
            scan_id=scan.id,
            digest=request.image_digest,
        )
        if not decision.notify:
            logger.info(f"Skipping scan notification for scan {scan.id}: {decision.reason}")
            return NotificationOutcome(sent=False, reason=decision.reason)

        try:
            await self.webhook_client.post(policy.webhook_url, decision.payload)
        except DeliveryError as e:
            logger.error(
                f"Failed to send scan notification for scan {scan.id} "
                f"to {redact_url(policy.webhook_url)}: {e}"
            )
            return NotificationOutcome(sent=False, reason=decision.reason, error=str(e))

        logger.info(f"Sent scan notification for scan {scan.id} ({len(matching)} vulnerabilities)")
        return NotificationOutcome(sent=True, reason=decision.reason)
