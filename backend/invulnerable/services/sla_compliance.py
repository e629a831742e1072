"""
SLA compliance calculation.

Pure functions: given a vulnerability's severity, detection date, lifecycle
status and the SLA thresholds captured on a scan, work out whether the
remediation deadline is being met. Used for API responses and report export.

All day arithmetic is in whole calendar days (truncated), with ``now``
injectable so results are deterministic under test.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from invulnerable.config import settings
from invulnerable.constants import Severity, VulnerabilityStatus
from invulnerable.utils.timezone import as_utc, get_now

if TYPE_CHECKING:
    from invulnerable.models import Scan


class ComplianceStatus(str, Enum):
    """Outcome of an SLA compliance check."""

    COMPLIANT = "compliant"
    WARNING = "warning"
    EXCEEDED = "exceeded"
    FIXED = "fixed"
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    EXCLUDED = "excluded"


TERMINAL_STATUSES: dict[str, ComplianceStatus] = {
    VulnerabilityStatus.FIXED.value: ComplianceStatus.FIXED,
    VulnerabilityStatus.ACCEPTED.value: ComplianceStatus.ACCEPTED,
    VulnerabilityStatus.IGNORED.value: ComplianceStatus.IGNORED,
}


@dataclass(frozen=True)
class SLAThresholds:
    """Remediation budget in days per severity."""

    critical: int
    high: int
    medium: int
    low: int

    @classmethod
    def from_scan(cls, scan: Scan) -> SLAThresholds:
        """Thresholds captured on a scan at ingestion time."""
        return cls(
            critical=scan.sla_critical,
            high=scan.sla_high,
            medium=scan.sla_medium,
            low=scan.sla_low,
        )

    @classmethod
    def from_settings(cls) -> SLAThresholds:
        """Thresholds currently configured for new scans."""
        return cls(
            critical=settings.sla_critical_days,
            high=settings.sla_high_days,
            medium=settings.sla_medium_days,
            low=settings.sla_low_days,
        )

    def budget_for(self, severity: str | None) -> int | None:
        """Day budget for a severity; None when the severity is not SLA-tracked."""
        return {
            Severity.CRITICAL.value: self.critical,
            Severity.HIGH.value: self.high,
            Severity.MEDIUM.value: self.medium,
            Severity.LOW.value: self.low,
        }.get(severity or "")


@dataclass(frozen=True)
class ComplianceResult:
    """
    SLA standing of one vulnerability.

    ``days_remaining`` is set for open vulnerabilities (negative means overdue
    by that many days); ``days_to_fix`` is set for terminal statuses when a
    terminal date is known.
    """

    status: ComplianceStatus
    sla_days: int | None = None
    days_open: int | None = None
    days_remaining: int | None = None
    days_to_fix: int | None = None

    @property
    def is_overdue(self) -> bool:
        return self.status == ComplianceStatus.EXCEEDED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


def days_between(start: datetime, end: datetime) -> int:
    """Whole calendar days from ``start`` to ``end``, never negative."""
    return max(0, (as_utc(end) - as_utc(start)).days)


def compute_compliance(
    first_detected_at: datetime,
    severity: str | None,
    thresholds: SLAThresholds,
    status: str,
    remediation_date: datetime | None = None,
    last_status_change_at: datetime | None = None,
    *,
    now: datetime | None = None,
    warning_fraction: float | None = None,
) -> ComplianceResult:
    """
    Compute SLA compliance for a single vulnerability.

    Rules, in order:
      * ``false_positive`` is excluded from SLA accounting.
      * ``fixed``/``accepted``/``ignored`` report the days it took to reach that
        status, measured to ``remediation_date`` or, failing that, the last
        status change.
      * Severities without a budget (Negligible, Unknown) are excluded.
      * Otherwise ``days_remaining = budget - days_open``: below zero is
        ``exceeded``; zero up to ``budget * warning_fraction`` is ``warning``;
        anything larger is ``compliant``. A fraction of 0 disables the warning
        band, so the deadline day itself is then ``compliant``.

    Args:
        first_detected_at: When the vulnerability was first seen
        severity: Normalised severity
        thresholds: SLA policy to judge against (usually the scan's)
        status: Current lifecycle status
        remediation_date: When the vulnerability was first marked fixed
        last_status_change_at: Time of the most recent status change
        now: Reference time, defaults to the current UTC time
        warning_fraction: Share of the budget treated as the warning band,
            defaults to ``settings.sla_warning_fraction``

    Returns:
        ComplianceResult
    """
    if status == VulnerabilityStatus.FALSE_POSITIVE.value:
        return ComplianceResult(status=ComplianceStatus.EXCLUDED)

    budget = thresholds.budget_for(severity)

    terminal = TERMINAL_STATUSES.get(status)
    if terminal is not None:
        terminal_date = remediation_date or last_status_change_at
        days_to_fix = days_between(first_detected_at, terminal_date) if terminal_date else None
        return ComplianceResult(status=terminal, sla_days=budget, days_to_fix=days_to_fix)

    if budget is None:
        return ComplianceResult(status=ComplianceStatus.EXCLUDED)

    if warning_fraction is None:
        warning_fraction = settings.sla_warning_fraction

    days_open = days_between(first_detected_at, now or get_now())
    days_remaining = budget - days_open

    if days_remaining < 0:
        compliance = ComplianceStatus.EXCEEDED
    elif warning_fraction > 0 and days_remaining <= budget * warning_fraction:
        compliance = ComplianceStatus.WARNING
    else:
        compliance = ComplianceStatus.COMPLIANT

    return ComplianceResult(
        status=compliance,
        sla_days=budget,
        days_open=days_open,
        days_remaining=days_remaining,
    )


def compliance_for_vulnerability(
    vulnerability: Any,
    thresholds: SLAThresholds,
    last_status_change_at: datetime | None = None,
    *,
    now: datetime | None = None,
    warning_fraction: float | None = None,
) -> ComplianceResult:
    """
    Convenience wrapper over ``compute_compliance`` for a Vulnerability row.

    Terminal statuses with no remediation date and no recorded status change
    fall back to ``updated_at`` as their terminal date.
    """
    if last_status_change_at is None and vulnerability.status in TERMINAL_STATUSES:
        last_status_change_at = vulnerability.updated_at

    return compute_compliance(
        vulnerability.first_detected_at,
        vulnerability.severity,
        thresholds,
        vulnerability.status,
        remediation_date=vulnerability.remediation_date,
        last_status_change_at=last_status_change_at,
        now=now,
        warning_fraction=warning_fraction,
    )
