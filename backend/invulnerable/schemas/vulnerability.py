"""Vulnerability schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Vulnerability(BaseModel):
    """Vulnerability schema for API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    cve_id: str
    package_name: str
    package_version: str
    package_type: str | None = None
    severity: str
    fix_version: str | None = None
    url: str | None = None
    description: str | None = None
    status: str
    first_detected_at: datetime
    last_seen_at: datetime
    remediation_date: datetime | None = None
    notes: str | None = None
    updated_by: str | None = None
    imagescan_namespace: str | None = None
    imagescan_name: str | None = None


class VulnerabilityList(BaseModel):
    """Paginated vulnerability list."""

    vulnerabilities: list[Vulnerability]
    total: int
    limit: int
    offset: int


class VulnerabilityUpdate(BaseModel):
    """Status/notes change for one vulnerability. Status is validated by the tracker."""

    status: str | None = None
    notes: str | None = Field(None, max_length=10000)
    image_id: int | None = None
    image_name: str | None = None


class VulnerabilityBulkUpdate(VulnerabilityUpdate):
    vulnerability_ids: list[int] = Field(..., min_length=1)


class UpdateResponse(BaseModel):
    """Result of a status/notes update, audit failures included as warnings."""

    updated_ids: list[int]
    warnings: list[str] = Field(default_factory=list)
    notifications_sent: int = 0
    notification_errors: list[str] = Field(default_factory=list)


class VulnerabilityHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vulnerability_id: int
    field_name: str
    old_value: str | None
    new_value: str | None
    changed_by: str
    changed_at: datetime
    image_id: int | None = None
    image_name: str | None = None


class ComplianceInfo(BaseModel):
    """SLA standing of a vulnerability."""

    status: str
    sla_days: int | None = None
    days_open: int | None = None
    days_remaining: int | None = None
    days_to_fix: int | None = None


class VulnerabilityCompliance(BaseModel):
    vulnerability_id: int
    scan_id: int | None
    compliance: ComplianceInfo
