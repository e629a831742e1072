"""Vulnerability API endpoints."""

import csv
import io
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.config import settings
from invulnerable.db import get_db
from invulnerable.exceptions import NotFoundError
from invulnerable.models import Vulnerability
from invulnerable.repositories.dependencies import (
    get_actor,
    get_scan_repository,
    get_status_tracker,
    get_vulnerability_repository,
    get_webhook_client,
)
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.repositories.vulnerability_repository import VulnerabilityRepository
from invulnerable.schemas.vulnerability import (
    ComplianceInfo,
    UpdateResponse,
    VulnerabilityBulkUpdate,
    VulnerabilityCompliance,
    VulnerabilityHistoryEntry,
    VulnerabilityList,
    VulnerabilityUpdate,
)
from invulnerable.schemas.vulnerability import Vulnerability as VulnSchema
from invulnerable.services.notifications.status_change import StatusChangeNotifier
from invulnerable.services.notifications.webhook import WebhookClient
from invulnerable.services.sla_compliance import (
    ComplianceResult,
    SLAThresholds,
    compliance_for_vulnerability,
)
from invulnerable.services.status_tracker import (
    StatusUpdateResult,
    UpdateContext,
    VulnerabilityStatusTracker,
)

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_COLUMNS = [
    "cve_id",
    "package_name",
    "package_version",
    "severity",
    "fix_version",
    "status",
    "first_detected_at",
    "remediation_date",
    "sla_days",
    "sla_status",
    "days_remaining",
    "days_to_fix",
]


async def _compliance(
    vuln: Vulnerability,
    scan_repo: ScanRepository,
    vuln_repo: VulnerabilityRepository,
) -> tuple[int | None, ComplianceResult]:
    """SLA standing judged against the latest scan that detected the vulnerability."""
    scan = await scan_repo.get_latest_for_vulnerability(vuln.id)
    thresholds = SLAThresholds.from_scan(scan) if scan else SLAThresholds.from_settings()
    last_change = await vuln_repo.get_last_status_change_at(vuln.id)
    return (scan.id if scan else None), compliance_for_vulnerability(vuln, thresholds, last_change)


async def _send_notifications(
    db: AsyncSession,
    webhook_client: WebhookClient | None,
    vuln_repo: VulnerabilityRepository,
    result: StatusUpdateResult,
    context: UpdateContext,
) -> tuple[int, list[str]]:
    """
    Evaluate status-change notifications for every updated vulnerability.

    Returns:
        Number of notifications delivered and the delivery errors encountered
    """
    if webhook_client is None or not result.updated_ids:
        return 0, []

    notifier = StatusChangeNotifier(db, webhook_client)
    sent = 0
    errors: list[str] = []
    for vuln_id in result.updated_ids:
        vuln = await vuln_repo.get_by_id(vuln_id)
        if vuln is None:
            continue
        outcome = await notifier.notify(vuln, result.changes_for(vuln_id), context)
        if outcome.sent:
            sent += 1
        elif outcome.error:
            errors.append(f"vulnerability {vuln_id}: {outcome.error}")
    return sent, errors


@router.get("", response_model=VulnerabilityList)
async def list_vulnerabilities(
    severity: str | None = None,
    status: str | None = None,
    has_fix: bool | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
):
    """List vulnerabilities with filters and pagination."""
    vulns = await vuln_repo.get_filtered(
        severity=severity, status=status, has_fix=has_fix, limit=limit, offset=offset
    )
    total = await vuln_repo.count(severity=severity, status=status, has_fix=has_fix)
    return VulnerabilityList(
        vulnerabilities=[VulnSchema.model_validate(v) for v in vulns],
        total=total,
        limit=limit,
        offset=offset,
    )


# Specific routes must come before path parameter routes


@router.get("/export")
async def export_vulnerabilities(
    format: str = Query("csv", pattern="^(csv|json)$"),
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
    scan_repo: ScanRepository = Depends(get_scan_repository),
):
    """Export an SLA compliance report for every vulnerability as CSV or JSON."""
    vulns = await vuln_repo.list_all()
    last_changes = await vuln_repo.get_last_status_changes([v.id for v in vulns])
    default_thresholds = SLAThresholds.from_settings()

    rows = []
    for vuln in vulns:
        scan = await scan_repo.get_latest_for_vulnerability(vuln.id)
        thresholds = SLAThresholds.from_scan(scan) if scan else default_thresholds
        compliance = compliance_for_vulnerability(vuln, thresholds, last_changes.get(vuln.id))
        rows.append(
            {
                "cve_id": vuln.cve_id,
                "package_name": vuln.package_name,
                "package_version": vuln.package_version,
                "severity": vuln.severity,
                "fix_version": vuln.fix_version,
                "status": vuln.status,
                "first_detected_at": vuln.first_detected_at.isoformat(),
                "remediation_date": vuln.remediation_date.isoformat()
                if vuln.remediation_date
                else None,
                "sla_days": compliance.sla_days,
                "sla_status": compliance.status.value,
                "days_remaining": compliance.days_remaining,
                "days_to_fix": compliance.days_to_fix,
            }
        )

    if format == "csv":
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow({k: "" if v is None else v for k, v in row.items()})

        return StreamingResponse(
            io.BytesIO(output.getvalue().encode()),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=sla-compliance.csv"},
        )

    return StreamingResponse(
        io.BytesIO(json.dumps(rows, indent=2).encode()),
        media_type="application/json",
        headers={"Content-Disposition": "attachment; filename=sla-compliance.json"},
    )


@router.patch("/bulk", response_model=UpdateResponse)
async def bulk_update_vulnerabilities(
    update: VulnerabilityBulkUpdate,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    tracker: VulnerabilityStatusTracker = Depends(get_status_tracker),
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
    webhook_client: WebhookClient | None = Depends(get_webhook_client),
):
    """Apply the same status/notes to many vulnerabilities."""
    if len(update.vulnerability_ids) > settings.bulk_update_limit:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.bulk_update_limit} vulnerabilities per bulk update",
        )

    context = UpdateContext(image_id=update.image_id, image_name=update.image_name)
    result = await tracker.bulk_update(
        update.vulnerability_ids,
        status=update.status,
        notes=update.notes,
        actor=actor,
        context=context,
    )
    sent, errors = await _send_notifications(db, webhook_client, vuln_repo, result, context)
    return UpdateResponse(
        updated_ids=result.updated_ids,
        warnings=result.warnings,
        notifications_sent=sent,
        notification_errors=errors,
    )


# Path parameter routes must come last
@router.get("/{vuln_id}", response_model=VulnSchema)
async def get_vulnerability(
    vuln_id: int,
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
):
    """Get vulnerability by ID."""
    vuln = await vuln_repo.get_by_id(vuln_id)
    if vuln is None:
        raise NotFoundError("vulnerability", vuln_id)
    return VulnSchema.model_validate(vuln)


@router.get("/{vuln_id}/history", response_model=list[VulnerabilityHistoryEntry])
async def get_vulnerability_history(
    vuln_id: int,
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
):
    """Audit trail for a vulnerability, newest first."""
    if await vuln_repo.get_by_id(vuln_id) is None:
        raise NotFoundError("vulnerability", vuln_id)
    history = await vuln_repo.get_history(vuln_id)
    return [VulnerabilityHistoryEntry.model_validate(entry) for entry in history]


@router.get("/{vuln_id}/compliance", response_model=VulnerabilityCompliance)
async def get_vulnerability_compliance(
    vuln_id: int,
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
    scan_repo: ScanRepository = Depends(get_scan_repository),
):
    """SLA standing of a vulnerability against the latest scan that detected it."""
    vuln = await vuln_repo.get_by_id(vuln_id)
    if vuln is None:
        raise NotFoundError("vulnerability", vuln_id)

    scan_id, compliance = await _compliance(vuln, scan_repo, vuln_repo)
    return VulnerabilityCompliance(
        vulnerability_id=vuln.id,
        scan_id=scan_id,
        compliance=ComplianceInfo(**compliance.to_dict()),
    )


@router.patch("/{vuln_id}", response_model=UpdateResponse)
async def update_vulnerability(
    vuln_id: int,
    update: VulnerabilityUpdate,
    actor: str = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
    tracker: VulnerabilityStatusTracker = Depends(get_status_tracker),
    vuln_repo: VulnerabilityRepository = Depends(get_vulnerability_repository),
    webhook_client: WebhookClient | None = Depends(get_webhook_client),
):
    """Update a vulnerability's status and/or notes."""
    context = UpdateContext(image_id=update.image_id, image_name=update.image_name)
    result = await tracker.update(
        vuln_id, status=update.status, notes=update.notes, actor=actor, context=context
    )
    sent, errors = await _send_notifications(db, webhook_client, vuln_repo, result, context)
    return UpdateResponse(
        updated_ids=result.updated_ids,
        warnings=result.warnings,
        notifications_sent=sent,
        notification_errors=errors,
    )
