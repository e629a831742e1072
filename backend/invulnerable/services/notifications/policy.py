"""
Notification policy evaluation.

Decides whether a scan-completion or status-change event should notify a
webhook, and renders the payload in the configured format when it should.
Evaluation is pure: delivery is the caller's job (see ``webhook.py``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from invulnerable.config import settings
from invulnerable.constants import (
    DEFAULT_MIN_SEVERITY,
    SEVERITY_ORDER,
    WebhookFormat,
    severity_level,
    transition_key,
)
from invulnerable.services.notifications.base import (
    NotificationDecision,
    PayloadRenderer,
    ScanSummary,
    SeverityCounts,
    StatusChangeDetails,
)
from invulnerable.services.notifications.slack import SlackRenderer
from invulnerable.services.notifications.teams import TeamsRenderer

if TYPE_CHECKING:
    from invulnerable.models import WebhookConfig

RENDERERS: dict[WebhookFormat, PayloadRenderer] = {
    WebhookFormat.SLACK: SlackRenderer(),
    WebhookFormat.TEAMS: TeamsRenderer(),
}


def get_renderer(webhook_format: WebhookFormat | str | None) -> PayloadRenderer:
    """Renderer for a format; unrecognised formats fall back to Slack."""
    return RENDERERS[WebhookFormat.parse(webhook_format)]


def threshold_level(min_severity: str | None) -> int:
    """Scan-completion threshold order, falling back to High when unrecognised."""
    return severity_level(min_severity) or SEVERITY_ORDER[DEFAULT_MIN_SEVERITY]


@dataclass(frozen=True)
class ScanCompletionPolicy:
    """Scan-completion notification settings."""

    webhook_url: str
    webhook_format: WebhookFormat = WebhookFormat.SLACK
    min_severity: str = DEFAULT_MIN_SEVERITY
    only_fixable: bool = False

    @classmethod
    def from_config(cls, config: WebhookConfig) -> ScanCompletionPolicy:
        return cls(
            webhook_url=config.webhook_url,
            webhook_format=WebhookFormat.parse(config.webhook_format),
            min_severity=config.scan_min_severity or DEFAULT_MIN_SEVERITY,
            only_fixable=bool(config.scan_only_fixable),
        )


@dataclass(frozen=True)
class StatusChangePolicy:
    """Status-change notification settings."""

    webhook_url: str
    enabled: bool = False
    webhook_format: WebhookFormat = WebhookFormat.SLACK
    min_severity: str = DEFAULT_MIN_SEVERITY
    only_fixable: bool = False
    # Empty means every transition passes
    transitions: tuple[str, ...] = ()
    include_notes: bool = False

    @classmethod
    def from_config(cls, config: WebhookConfig) -> StatusChangePolicy:
        return cls(
            webhook_url=config.webhook_url,
            enabled=bool(config.status_change_enabled),
            webhook_format=WebhookFormat.parse(config.webhook_format),
            min_severity=config.status_change_min_severity or DEFAULT_MIN_SEVERITY,
            only_fixable=bool(config.status_change_only_fixable),
            transitions=tuple(config.status_change_transitions or ()),
            include_notes=bool(config.status_change_include_notes),
        )


class NotificationPolicyEvaluator:
    """Applies notification policy to events and renders payloads."""

    def __init__(self, frontend_url: str | None = None):
        """
        Initialize the evaluator.

        Args:
            frontend_url: Base URL for scan/vulnerability links; defaults to
                ``settings.frontend_url``
        """
        base = frontend_url if frontend_url is not None else settings.frontend_url
        self.frontend_url = base.rstrip("/") if base else None

    def scan_url(self, scan_id: int | None) -> str | None:
        if not self.frontend_url or scan_id is None:
            return None
        return f"{self.frontend_url}/scans/{scan_id}"

    def vulnerability_url(self, vulnerability_id: int | None) -> str | None:
        if not self.frontend_url or vulnerability_id is None:
            return None
        return f"{self.frontend_url}/vulnerabilities/{vulnerability_id}"

    def evaluate_scan_completion(
        self,
        policy: ScanCompletionPolicy,
        counts: SeverityCounts,
        total_matching: int,
        *,
        image_name: str,
        scan_id: int | None = None,
        digest: str | None = None,
        scan_url: str | None = None,
    ) -> NotificationDecision:
        """
        Decide whether a completed scan should notify.

        ``counts`` and ``total_matching`` must already exclude anything the
        caller filtered out (triaged statuses, the fix-only filter).

        Args:
            policy: Scan-completion settings
            counts: Per-severity counts of matching vulnerabilities
            total_matching: Number of matching vulnerabilities
            image_name: Image reference shown in the payload
            scan_id: Used to build the scan link when ``scan_url`` is not given
            digest: Optional image digest
            scan_url: Explicit scan link

        Returns:
            NotificationDecision
        """
        if total_matching == 0:
            return NotificationDecision.skip("no matching vulnerabilities")

        minimum = threshold_level(policy.min_severity)
        if not any(count > 0 for level, count in counts.by_level().items() if level >= minimum):
            return NotificationDecision.skip(
                f"no vulnerabilities at or above {policy.min_severity} severity"
            )

        summary = ScanSummary(
            image_name=image_name,
            counts=counts,
            total=total_matching,
            digest=digest,
            scan_url=scan_url or self.scan_url(scan_id),
        )
        payload = get_renderer(policy.webhook_format).scan_completion(summary)
        return NotificationDecision(notify=True, reason="severity threshold met", payload=payload)

    def evaluate_status_change(
        self, policy: StatusChangePolicy, details: StatusChangeDetails
    ) -> NotificationDecision:
        """
        Decide whether a status change should notify.

        The enabled flag, severity threshold, fix-only filter and transition
        allow-list must all pass; the first failing check names the skip reason.
        """
        if not policy.enabled:
            return NotificationDecision.skip("status change notifications disabled")

        # Unrecognised minimums rank 0 and pass every severity
        if severity_level(details.severity) < severity_level(policy.min_severity):
            return NotificationDecision.skip(
                f"severity {details.severity} below minimum {policy.min_severity}"
            )

        if policy.only_fixable and not details.fix_version:
            return NotificationDecision.skip("no fix available")

        transition = transition_key(details.old_status, details.new_status)
        if policy.transitions and transition not in policy.transitions:
            return NotificationDecision.skip(f"transition {transition} not in allow-list")

        if details.url is None and details.vulnerability_id is not None:
            details = replace(details, url=self.vulnerability_url(details.vulnerability_id))

        payload = get_renderer(policy.webhook_format).status_change(details, policy.include_notes)
        return NotificationDecision(notify=True, reason=f"transition {transition}", payload=payload)
