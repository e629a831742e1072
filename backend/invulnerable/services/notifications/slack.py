"""Slack incoming-webhook payloads."""

from typing import Any

from invulnerable.constants import TRANSITION_ARROW, VulnerabilityStatus, WebhookFormat
from invulnerable.services.notifications.base import (
    PayloadRenderer,
    ScanSummary,
    SeverityCounts,
    StatusChangeDetails,
    format_timestamp,
)

# Attachment colors by new status
STATUS_COLOR_MAP = {
    VulnerabilityStatus.FIXED.value: "good",  # Green
    VulnerabilityStatus.ACTIVE.value: "danger",  # Red
    VulnerabilityStatus.IN_PROGRESS.value: "warning",  # Orange
    VulnerabilityStatus.IGNORED.value: "#808080",  # Gray
    VulnerabilityStatus.FALSE_POSITIVE.value: "#439fe0",  # Blue
}
DEFAULT_STATUS_COLOR = "#808080"


def severity_color(counts: SeverityCounts) -> str:
    """Attachment color for the most severe non-zero bucket."""
    if counts.critical > 0:
        return "danger"  # Red
    if counts.high > 0:
        return "warning"  # Orange
    if counts.medium > 0:
        return "#ffcc00"  # Yellow
    return "good"  # Green


def _field(title: str, value: object, short: bool = True) -> dict[str, Any]:
    return {"title": title, "value": str(value), "short": short}


class SlackRenderer(PayloadRenderer):
    """Slack-compatible ``{text, attachments}`` payloads."""

    webhook_format = WebhookFormat.SLACK

    def scan_completion(self, summary: ScanSummary) -> dict[str, Any]:
        if summary.total == 0:
            text = f"✅ No vulnerabilities found in `{summary.image_name}`"
        else:
            text = f"⚠️ Found {summary.total} vulnerabilities in `{summary.image_name}`"

        fields = [
            _field("Critical", summary.counts.critical),
            _field("High", summary.counts.high),
            _field("Medium", summary.counts.medium),
            _field("Low", summary.counts.low),
            _field("Total", summary.total),
        ]
        if summary.digest:
            fields.append(_field("Digest", summary.digest, short=False))
        if summary.scan_url:
            fields.append(
                _field("View Scan", f"<{summary.scan_url}|View full scan results>", short=False)
            )

        return {
            "text": text,
            "attachments": [
                {
                    "color": severity_color(summary.counts),
                    "text": "Vulnerability Summary",
                    "fields": fields,
                }
            ],
        }

    def status_change(self, details: StatusChangeDetails, include_notes: bool) -> dict[str, Any]:
        if details.image_name:
            text = f"🔄 Vulnerability {details.cve_id} changed status in `{details.image_name}`"
        else:
            text = f"🔄 Vulnerability {details.cve_id} changed status"

        fields = [
            _field("CVE", details.cve_id),
            _field("Package", f"{details.package_name} {details.package_version}"),
            _field("Severity", details.severity),
            _field("Status", f"{details.old_status} {TRANSITION_ARROW} {details.new_status}"),
            _field("Changed By", details.changed_by),
        ]
        if details.changed_at:
            fields.append(_field("Changed At", format_timestamp(details.changed_at)))
        if details.fix_version:
            fields.append(_field("Fix Version", details.fix_version))
        if include_notes and details.notes:
            fields.append(_field("Notes", details.notes, short=False))
        if details.url:
            fields.append(
                _field("View Vulnerability", f"<{details.url}|View vulnerability details>", short=False)
            )

        return {
            "text": text,
            "attachments": [
                {
                    "color": STATUS_COLOR_MAP.get(details.new_status, DEFAULT_STATUS_COLOR),
                    "text": "Status Change",
                    "fields": fields,
                }
            ],
        }
