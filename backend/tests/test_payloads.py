"""Tests for Slack and Teams payload rendering."""

from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from invulnerable.services.notifications.base import (
    ScanSummary,
    SeverityCounts,
    StatusChangeDetails,
)
from invulnerable.services.notifications.policy import get_renderer
from invulnerable.services.notifications.slack import SlackRenderer, severity_color
from invulnerable.services.notifications.teams import TeamsRenderer, theme_color


def summary(**overrides) -> ScanSummary:
    defaults = {
        "image_name": "ghcr.io/acme/api:2.1",
        "counts": SeverityCounts(critical=1, high=2, medium=3, low=4),
        "total": 10,
    }
    return ScanSummary(**{**defaults, **overrides})


def details(**overrides) -> StatusChangeDetails:
    defaults = {
        "cve_id": "CVE-2024-0001",
        "package_name": "openssl",
        "package_version": "1.1.1",
        "severity": "Critical",
        "fix_version": None,
        "old_status": "active",
        "new_status": "fixed",
        "changed_by": "system",
    }
    return StatusChangeDetails(**{**defaults, **overrides})


class TestSeverityCounts:
    def test_from_severities(self):
        counts = SeverityCounts.from_severities(
            ["Critical", "High", "High", "Low", "Negligible", "Unknown"]
        )
        assert counts == SeverityCounts(critical=1, high=2, medium=0, low=1, negligible=2)
        assert counts.total == 6

    def test_by_level(self):
        assert SeverityCounts(high=2, negligible=1).by_level() == {5: 0, 4: 2, 3: 0, 2: 0, 1: 1}


class TestColors:
    @pytest.mark.parametrize(
        "counts,slack,teams",
        [
            (SeverityCounts(critical=1, low=5), "danger", "FF0000"),
            (SeverityCounts(high=1), "warning", "FFA500"),
            (SeverityCounts(medium=1), "#ffcc00", "FFCC00"),
            (SeverityCounts(low=1), "good", "00FF00"),
            (SeverityCounts(), "good", "00FF00"),
        ],
    )
    def test_scan_colors(self, counts, slack, teams):
        assert severity_color(counts) == slack
        assert theme_color(counts) == teams

    @pytest.mark.parametrize(
        "status,slack,teams",
        [
            ("fixed", "good", "00FF00"),
            ("active", "danger", "FF0000"),
            ("ignored", "#808080", "808080"),
            ("in_progress", "warning", "FFA500"),
            ("false_positive", "#439fe0", "0078D7"),
            ("accepted", "#808080", "808080"),
        ],
    )
    def test_status_palette(self, status, slack, teams):
        assert SlackRenderer().status_change(details(new_status=status), False)["attachments"][0][
            "color"
        ] == slack
        assert TeamsRenderer().status_change(details(new_status=status), False)["themeColor"] == teams


class TestSlackRenderer:
    def test_scan_completion(self):
        payload = SlackRenderer().scan_completion(
            summary(digest="sha256:abc", scan_url="https://ui/scans/3")
        )

        assert payload["text"] == "⚠️ Found 10 vulnerabilities in `ghcr.io/acme/api:2.1`"
        (attachment,) = payload["attachments"]
        assert attachment["text"] == "Vulnerability Summary"
        assert attachment["fields"] == [
            {"title": "Critical", "value": "1", "short": True},
            {"title": "High", "value": "2", "short": True},
            {"title": "Medium", "value": "3", "short": True},
            {"title": "Low", "value": "4", "short": True},
            {"title": "Total", "value": "10", "short": True},
            {"title": "Digest", "value": "sha256:abc", "short": False},
            {"title": "View Scan", "value": "<https://ui/scans/3|View full scan results>", "short": False},
        ]

    def test_clean_scan(self):
        payload = SlackRenderer().scan_completion(summary(counts=SeverityCounts(), total=0))
        assert payload["text"] == "✅ No vulnerabilities found in `ghcr.io/acme/api:2.1`"
        totals = [f for f in payload["attachments"][0]["fields"] if f["title"] == "Total"]
        assert totals == [{"title": "Total", "value": "0", "short": True}]

    def test_status_change(self):
        payload = SlackRenderer().status_change(
            details(image_name="nginx:1.25", fix_version="3.0.0", notes="rebuilt"), True
        )

        assert payload["text"] == "🔄 Vulnerability CVE-2024-0001 changed status in `nginx:1.25`"
        fields = {f["title"]: f["value"] for f in payload["attachments"][0]["fields"]}
        assert fields["Status"] == "active → fixed"
        assert fields["Package"] == "openssl 1.1.1"
        assert fields["Fix Version"] == "3.0.0"
        assert fields["Notes"] == "rebuilt"
        assert payload["attachments"][0]["text"] == "Status Change"

    def test_notes_hidden_unless_included(self):
        payload = SlackRenderer().status_change(details(notes="internal only"), False)

        titles = [f["title"] for f in payload["attachments"][0]["fields"]]
        assert "Notes" not in titles
        assert payload["text"] == "🔄 Vulnerability CVE-2024-0001 changed status"

    def test_changed_at_rendered_in_display_timezone(self):
        changed_at = datetime(2024, 6, 1, 12, 30, tzinfo=UTC)
        with patch("invulnerable.utils.timezone.settings") as mock_settings:
            mock_settings.timezone = "UTC"
            payload = SlackRenderer().status_change(details(changed_at=changed_at), False)

        fields = {f["title"]: f["value"] for f in payload["attachments"][0]["fields"]}
        assert fields["Changed At"] == "2024-06-01 12:30 UTC"


class TestTeamsRenderer:
    def test_scan_completion(self):
        payload = TeamsRenderer().scan_completion(
            summary(digest="sha256:abc", scan_url="https://ui/scans/3")
        )

        assert payload["@type"] == "MessageCard"
        assert payload["@context"] == "https://schema.org/extensions"
        assert payload["title"] == "Image Scan Results: ghcr.io/acme/api:2.1"
        assert payload["summary"] == "Found 10 vulnerabilities"
        (section,) = payload["sections"]
        assert section["activityTitle"] == "Vulnerability Summary"
        facts = {f["name"]: f["value"] for f in section["facts"]}
        assert facts["Total Vulnerabilities"] == "10"
        assert facts["Image Digest"] == "sha256:abc"
        assert payload["potentialAction"] == [
            {
                "@type": "OpenUri",
                "name": "View Scan Results",
                "targets": [{"os": "default", "uri": "https://ui/scans/3"}],
            }
        ]

    def test_clean_scan_without_link(self):
        payload = TeamsRenderer().scan_completion(summary(counts=SeverityCounts(), total=0))

        assert payload["title"] == "✅ Image Scan Passed: ghcr.io/acme/api:2.1"
        assert payload["summary"] == "No vulnerabilities found"
        assert "potentialAction" not in payload

    def test_status_change(self):
        payload = TeamsRenderer().status_change(
            details(image_name="nginx:1.25", url="https://ui/vulnerabilities/1"), False
        )

        assert payload["title"] == "Vulnerability Status Changed: CVE-2024-0001"
        assert payload["summary"] == "CVE-2024-0001: active → fixed"
        (section,) = payload["sections"]
        assert section["activitySubtitle"] == "nginx:1.25"
        assert payload["potentialAction"][0]["name"] == "View Vulnerability"


@pytest.mark.parametrize(
    "value,expected", [("teams", TeamsRenderer), ("TEAMS", TeamsRenderer), ("discord", SlackRenderer), (None, SlackRenderer)]
)
def test_get_renderer(value, expected):
    assert isinstance(get_renderer(value), expected)
