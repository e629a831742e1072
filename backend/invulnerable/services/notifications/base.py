"""Shared notification types and the abstract payload renderer."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from invulnerable.constants import SEVERITY_ORDER, Severity, WebhookFormat
from invulnerable.utils.timezone import to_local

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M %Z"


@dataclass(frozen=True)
class SeverityCounts:
    """Per-severity vulnerability counts for a scan-completion event."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    negligible: int = 0

    @classmethod
    def from_severities(cls, severities: Iterable[str]) -> "SeverityCounts":
        """Tally severities; anything below Low (including Unknown) counts as negligible."""
        tally = {"critical": 0, "high": 0, "medium": 0, "low": 0, "negligible": 0}
        buckets = {
            Severity.CRITICAL.value: "critical",
            Severity.HIGH.value: "high",
            Severity.MEDIUM.value: "medium",
            Severity.LOW.value: "low",
        }
        for severity in severities:
            tally[buckets.get(severity, "negligible")] += 1
        return cls(**tally)

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low + self.negligible

    def by_level(self) -> dict[int, int]:
        """Counts keyed by severity order (Critical=5 ... Negligible=1)."""
        return {
            SEVERITY_ORDER[Severity.CRITICAL.value]: self.critical,
            SEVERITY_ORDER[Severity.HIGH.value]: self.high,
            SEVERITY_ORDER[Severity.MEDIUM.value]: self.medium,
            SEVERITY_ORDER[Severity.LOW.value]: self.low,
            SEVERITY_ORDER[Severity.NEGLIGIBLE.value]: self.negligible,
        }


@dataclass(frozen=True)
class ScanSummary:
    """Everything rendered into a scan-completion payload."""

    image_name: str
    counts: SeverityCounts
    total: int
    digest: str | None = None
    scan_url: str | None = None


@dataclass(frozen=True)
class StatusChangeDetails:
    """A status (or notes) change on one vulnerability, as seen by notification policy."""

    cve_id: str
    package_name: str
    package_version: str
    severity: str
    fix_version: str | None
    old_status: str
    new_status: str
    changed_by: str
    notes: str | None = None
    image_name: str | None = None
    vulnerability_id: int | None = None
    url: str | None = None
    changed_at: datetime | None = None


def format_timestamp(value: datetime) -> str:
    """Render a timestamp in the configured display timezone."""
    return to_local(value).strftime(TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class NotificationDecision:
    """Whether to notify, why, and the rendered payload when notifying."""

    notify: bool
    reason: str
    payload: dict[str, Any] | None = None

    @classmethod
    def skip(cls, reason: str) -> "NotificationDecision":
        return cls(notify=False, reason=reason)


@dataclass(frozen=True)
class NotificationOutcome:
    """What happened when a caller acted on a decision."""

    sent: bool
    reason: str
    error: str | None = None


class PayloadRenderer(ABC):
    """Renders notification events into one webhook wire format."""

    webhook_format: WebhookFormat

    @abstractmethod
    def scan_completion(self, summary: ScanSummary) -> dict[str, Any]:
        """Render a scan-completion payload."""

    @abstractmethod
    def status_change(self, details: StatusChangeDetails, include_notes: bool) -> dict[str, Any]:
        """Render a status-change payload; notes only when ``include_notes``."""
