"""
Shared vocabulary for severities, lifecycle statuses and webhook formats.

Every module that compares severities or validates a status imports from
here so the ordering and the recognised values have a single definition.
"""

from enum import Enum


class Severity(str, Enum):
    """Normalised scanner severity."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NEGLIGIBLE = "Negligible"
    UNKNOWN = "Unknown"


class VulnerabilityStatus(str, Enum):
    """Lifecycle status of a vulnerability."""

    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    FIXED = "fixed"
    IGNORED = "ignored"
    ACCEPTED = "accepted"
    FALSE_POSITIVE = "false_positive"


class WebhookFormat(str, Enum):
    """Outbound webhook payload shape."""

    SLACK = "slack"
    TEAMS = "teams"

    @classmethod
    def parse(cls, value: "str | WebhookFormat | None") -> "WebhookFormat":
        """Resolve a configured format, defaulting to Slack for anything unrecognised."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.SLACK


# ============================================================================
# Severity ordering
# ============================================================================

SEVERITY_ORDER: dict[str, int] = {
    Severity.CRITICAL.value: 5,
    Severity.HIGH.value: 4,
    Severity.MEDIUM.value: 3,
    Severity.LOW.value: 2,
    Severity.NEGLIGIBLE.value: 1,
}
"""Total order used by notification thresholds. Unlisted severities rank 0."""

DEFAULT_MIN_SEVERITY = Severity.HIGH.value
"""Scan-completion threshold applied when a configured minimum severity is not recognised."""


def severity_level(severity: str | None) -> int:
    """Return the order of a severity, 0 for unknown or missing values."""
    return SEVERITY_ORDER.get(severity or "", 0)


def normalize_severity(raw: str | None) -> str:
    """Map scanner severities (any casing) onto the canonical names."""
    mapping = {
        "CRITICAL": Severity.CRITICAL.value,
        "HIGH": Severity.HIGH.value,
        "MEDIUM": Severity.MEDIUM.value,
        "LOW": Severity.LOW.value,
        "NEGLIGIBLE": Severity.NEGLIGIBLE.value,
    }
    return mapping.get((raw or "").strip().upper(), Severity.UNKNOWN.value)


# ============================================================================
# Lifecycle
# ============================================================================

VALID_STATUSES: tuple[str, ...] = tuple(status.value for status in VulnerabilityStatus)
"""Statuses accepted by the status tracker."""

SYSTEM_ACTOR = "system"
"""Actor recorded for automated transitions."""

TRANSITION_ARROW = "→"
"""Separator used in status transition strings, e.g. ``active→fixed``."""


def transition_key(old_status: str, new_status: str) -> str:
    """Render the allow-list key for a status transition."""
    return f"{old_status}{TRANSITION_ARROW}{new_status}"
