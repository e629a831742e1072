"""Microsoft Teams MessageCard payloads."""

from typing import Any

from invulnerable.constants import TRANSITION_ARROW, VulnerabilityStatus, WebhookFormat
from invulnerable.services.notifications.base import (
    PayloadRenderer,
    ScanSummary,
    SeverityCounts,
    StatusChangeDetails,
    format_timestamp,
)

MESSAGE_CARD_CONTEXT = "https://schema.org/extensions"

STATUS_COLOR_MAP = {
    VulnerabilityStatus.FIXED.value: "00FF00",  # Green
    VulnerabilityStatus.ACTIVE.value: "FF0000",  # Red
    VulnerabilityStatus.IN_PROGRESS.value: "FFA500",  # Orange
    VulnerabilityStatus.IGNORED.value: "808080",  # Gray
    VulnerabilityStatus.FALSE_POSITIVE.value: "0078D7",  # Blue
}
DEFAULT_STATUS_COLOR = "808080"


def theme_color(counts: SeverityCounts) -> str:
    if counts.critical > 0:
        return "FF0000"  # Red
    if counts.high > 0:
        return "FFA500"  # Orange
    if counts.medium > 0:
        return "FFCC00"  # Yellow
    return "00FF00"  # Green


def _fact(name: str, value: object) -> dict[str, str]:
    return {"name": name, "value": str(value)}


def _open_uri(name: str, uri: str) -> list[dict[str, Any]]:
    return [{"@type": "OpenUri", "name": name, "targets": [{"os": "default", "uri": uri}]}]


class TeamsRenderer(PayloadRenderer):
    """Teams-compatible MessageCard payloads."""

    webhook_format = WebhookFormat.TEAMS

    def scan_completion(self, summary: ScanSummary) -> dict[str, Any]:
        if summary.total == 0:
            title = f"✅ Image Scan Passed: {summary.image_name}"
            text = "No vulnerabilities found"
        else:
            title = f"Image Scan Results: {summary.image_name}"
            text = f"Found {summary.total} vulnerabilities"

        facts = [
            _fact("Critical", summary.counts.critical),
            _fact("High", summary.counts.high),
            _fact("Medium", summary.counts.medium),
            _fact("Low", summary.counts.low),
            _fact("Total Vulnerabilities", summary.total),
        ]
        if summary.digest:
            facts.append(_fact("Image Digest", summary.digest))

        payload: dict[str, Any] = {
            "@type": "MessageCard",
            "@context": MESSAGE_CARD_CONTEXT,
            "summary": text,
            "themeColor": theme_color(summary.counts),
            "title": title,
            "sections": [{"activityTitle": "Vulnerability Summary", "facts": facts}],
        }
        if summary.scan_url:
            payload["potentialAction"] = _open_uri("View Scan Results", summary.scan_url)
        return payload

    def status_change(self, details: StatusChangeDetails, include_notes: bool) -> dict[str, Any]:
        transition = f"{details.old_status} {TRANSITION_ARROW} {details.new_status}"
        facts = [
            _fact("CVE", details.cve_id),
            _fact("Package", f"{details.package_name} {details.package_version}"),
            _fact("Severity", details.severity),
            _fact("Status", transition),
            _fact("Changed By", details.changed_by),
        ]
        if details.changed_at:
            facts.append(_fact("Changed At", format_timestamp(details.changed_at)))
        if details.fix_version:
            facts.append(_fact("Fix Version", details.fix_version))
        if include_notes and details.notes:
            facts.append(_fact("Notes", details.notes))

        section: dict[str, Any] = {"activityTitle": "Status Change", "facts": facts}
        if details.image_name:
            section["activitySubtitle"] = details.image_name

        payload: dict[str, Any] = {
            "@type": "MessageCard",
            "@context": MESSAGE_CARD_CONTEXT,
            "summary": f"{details.cve_id}: {transition}",
            "themeColor": STATUS_COLOR_MAP.get(details.new_status, DEFAULT_STATUS_COLOR),
            "title": f"Vulnerability Status Changed: {details.cve_id}",
            "sections": [section],
        }
        if details.url:
            payload["potentialAction"] = _open_uri("View Vulnerability", details.url)
        return payload
