"""Scan ingestion and diff schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from invulnerable.schemas.grype import GrypeReport
from invulnerable.schemas.vulnerability import ComplianceInfo, Vulnerability


class InlineWebhookConfig(BaseModel):
    """Webhook settings sent along with a scan; takes precedence over the stored config."""

    url: str = Field(..., min_length=1)
    format: str = "slack"
    min_severity: str = "High"
    only_fixable: bool = False


class SLAConfig(BaseModel):
    """SLA policy in days, captured on the scan."""

    critical: int = Field(7, ge=0)
    high: int = Field(30, ge=0)
    medium: int = Field(90, ge=0)
    low: int = Field(180, ge=0)


class ImageScanContext(BaseModel):
    """Scanning policy (ImageScan resource) that produced the scan."""

    namespace: str = Field(..., min_length=1, max_length=253)
    name: str = Field(..., min_length=1, max_length=253)


class ScanIngestRequest(BaseModel):
    """Body of POST /api/v1/scans."""

    image: str = Field(..., min_length=1, max_length=1024)
    image_digest: str | None = None
    grype_result: GrypeReport
    webhook_config: InlineWebhookConfig | None = None
    sla_config: SLAConfig | None = None
    imagescan_context: ImageScanContext | None = None


class NotificationResult(BaseModel):
    sent: bool
    reason: str
    error: str | None = None


class Scan(BaseModel):
    """Scan summary."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    image_id: int
    image_name: str
    image_digest: str | None = None
    scan_date: datetime
    status: str
    scanner_version: str | None = None
    sla_critical: int
    sla_high: int
    sla_medium: int
    sla_low: int
    imagescan_namespace: str | None = None
    imagescan_name: str | None = None
    severity_counts: dict[str, int] = Field(default_factory=dict)
    total_vulnerabilities: int = 0


class ScanIngestResponse(BaseModel):
    scan: Scan
    vulnerability_count: int
    diff: dict[str, int]
    notification: NotificationResult | None = None


class DiffVulnerability(Vulnerability):
    """Vulnerability in a diff, with SLA standing against the current scan's policy."""

    compliance: ComplianceInfo


class ScanDiffResponse(BaseModel):
    scan_id: int
    previous_scan_id: int | None
    new: list[DiffVulnerability]
    fixed: list[DiffVulnerability]
    persistent: list[DiffVulnerability]
    summary: dict[str, int]
