"""Scan API endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.db import get_db
from invulnerable.exceptions import NotFoundError
from invulnerable.models import Image, Scan, Vulnerability
from invulnerable.repositories.dependencies import get_scan_repository, get_webhook_client
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.schemas.scan import (
    DiffVulnerability,
    NotificationResult,
    ScanDiffResponse,
    ScanIngestRequest,
    ScanIngestResponse,
)
from invulnerable.schemas.scan import Scan as ScanSchema
from invulnerable.schemas.vulnerability import ComplianceInfo
from invulnerable.schemas.vulnerability import Vulnerability as VulnSchema
from invulnerable.services.notifications.webhook import WebhookClient
from invulnerable.services.scan_diff import ScanDiffEngine
from invulnerable.services.scan_ingestion import ScanIngestionService
from invulnerable.services.sla_compliance import SLAThresholds, compliance_for_vulnerability

logger = logging.getLogger(__name__)

router = APIRouter()


async def build_scan_response(db: AsyncSession, scan: Scan) -> ScanSchema:
    """Scan summary with image details and per-severity counts."""
    image = await db.get(Image, scan.image_id)
    counts = await ScanRepository(db).get_severity_counts(scan.id)
    return ScanSchema(
        id=scan.id,
        image_id=scan.image_id,
        image_name=image.full_name if image else "",
        image_digest=image.digest if image else None,
        scan_date=scan.scan_date,
        status=scan.status,
        scanner_version=scan.scanner_version,
        sla_critical=scan.sla_critical,
        sla_high=scan.sla_high,
        sla_medium=scan.sla_medium,
        sla_low=scan.sla_low,
        imagescan_namespace=scan.imagescan_namespace,
        imagescan_name=scan.imagescan_name,
        severity_counts=counts,
        total_vulnerabilities=sum(counts.values()),
    )


@router.post("", response_model=ScanIngestResponse, status_code=201)
async def create_scan(
    request: ScanIngestRequest,
    db: AsyncSession = Depends(get_db),
    webhook_client: WebhookClient | None = Depends(get_webhook_client),
):
    """Ingest a Grype report for an image."""
    service = ScanIngestionService(db, webhook_client=webhook_client)
    result = await service.ingest(request)

    notification = None
    if result.notification is not None:
        notification = NotificationResult(
            sent=result.notification.sent,
            reason=result.notification.reason,
            error=result.notification.error,
        )

    return ScanIngestResponse(
        scan=await build_scan_response(db, result.scan),
        vulnerability_count=result.vulnerability_count,
        diff=result.diff.counts,
        notification=notification,
    )


@router.get("/{scan_id}", response_model=ScanSchema)
async def get_scan(
    scan_id: int,
    db: AsyncSession = Depends(get_db),
    scan_repo: ScanRepository = Depends(get_scan_repository),
):
    """Get a scan with its severity counts."""
    scan = await scan_repo.get_by_id(scan_id)
    if scan is None:
        raise NotFoundError("scan", scan_id)
    return await build_scan_response(db, scan)


@router.get("/{scan_id}/diff", response_model=ScanDiffResponse)
async def get_scan_diff(
    scan_id: int,
    previous_scan_id: int | None = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Compare a scan with an earlier scan of the same image.

    Defaults to the most recent earlier scan. Each vulnerability carries its SLA
    standing against the current scan's thresholds.
    """
    diff = await ScanDiffEngine(db).diff(scan_id, previous_scan_id)
    thresholds = SLAThresholds.from_scan(diff.scan)

    def with_compliance(vulns: list[Vulnerability]) -> list[DiffVulnerability]:
        items = []
        for vuln in vulns:
            compliance = compliance_for_vulnerability(vuln, thresholds)
            items.append(
                DiffVulnerability(
                    **VulnSchema.model_validate(vuln).model_dump(),
                    compliance=ComplianceInfo(**compliance.to_dict()),
                )
            )
        return items

    return ScanDiffResponse(
        scan_id=diff.scan.id,
        previous_scan_id=diff.previous_scan.id if diff.previous_scan else None,
        new=with_compliance(diff.new),
        fixed=with_compliance(diff.fixed),
        persistent=with_compliance(diff.persistent),
        summary=diff.counts,
    )
