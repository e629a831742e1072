"""Tests for repository classes."""

from datetime import timedelta

import pytest
from sqlalchemy.orm import registry

from conftest import NOW
from invulnerable.models import Image, VulnerabilityKey
from invulnerable.repositories import (
    ImageRepository,
    ScanRepository,
    VulnerabilityRepository,
    WebhookConfigRepository,
)
from invulnerable.repositories.image_repository import parse_image_name


@pytest.mark.parametrize(
    "reference,expected",
    [
        ("nginx", ("docker.io", "nginx", "latest")),
        ("nginx:1.25", ("docker.io", "nginx", "1.25")),
        ("library/nginx:1.25", ("docker.io", "library/nginx", "1.25")),
        ("ghcr.io/acme/api:2.1", ("ghcr.io", "acme/api", "2.1")),
        ("localhost:5000/app", ("localhost:5000", "app", "latest")),
        ("localhost:5000/team/app:dev", ("localhost:5000", "team/app", "dev")),
    ],
)
def test_parse_image_name(reference, expected):
    assert parse_image_name(reference) == expected


def test_image_registry_host_maps_registry_column():
    assert isinstance(Image.registry, registry)
    assert Image.registry_host.property.columns[0] is Image.__table__.c.registry


@pytest.mark.asyncio
class TestImageRepository:
    @pytest.fixture
    def repository(self, db_session):
        return ImageRepository(db_session)

    async def test_get_or_create_is_idempotent(self, repository):
        first = await repository.get_or_create("ghcr.io/acme/api:2.1")
        second = await repository.get_or_create("ghcr.io/acme/api:2.1", digest="sha256:new")

        assert first.id == second.id
        assert second.digest == "sha256:new"
        assert second.full_name == "ghcr.io/acme/api:2.1"

    async def test_get_or_create_keeps_digest_when_none_given(self, repository):
        await repository.get_or_create("app:1", digest="sha256:old")
        image = await repository.get_or_create("app:1")

        assert image.digest == "sha256:old"

    async def test_list_with_stats(
        self, repository, db_session, make_scan, make_vulnerability, link_vulnerabilities
    ):
        scanned = await repository.get_or_create("ghcr.io/acme/api:2.1")
        unscanned = await repository.get_or_create("ghcr.io/acme/worker:1.0")
        critical = make_vulnerability(severity="Critical")
        high = make_vulnerability(severity="High")
        fixed = make_vulnerability(severity="High", status="fixed")
        db_session.add_all([critical, high, fixed])
        await db_session.commit()
        first = make_scan(image_id=scanned.id, scan_date=NOW - timedelta(days=1))
        second = make_scan(image_id=scanned.id, scan_date=NOW)
        db_session.add_all([first, second])
        await db_session.commit()
        await link_vulnerabilities(first, [critical, high, fixed])
        await link_vulnerabilities(second, [critical])

        stats = {item.image.id: item for item in await repository.list_with_stats()}

        assert stats[scanned.id].scan_count == 2
        assert stats[scanned.id].last_scan_date.replace(tzinfo=None) == NOW.replace(tzinfo=None)
        assert stats[scanned.id].active_counts == {"Critical": 1, "High": 1}
        assert stats[unscanned.id].scan_count == 0
        assert stats[unscanned.id].last_scan_date is None
        assert stats[unscanned.id].active_counts == {}
        assert await repository.count() == 2


@pytest.mark.asyncio
class TestVulnerabilityRepository:
    @pytest.fixture
    def repository(self, db_session):
        return VulnerabilityRepository(db_session)

    async def test_upsert_creates_then_updates(self, repository):
        key = VulnerabilityKey("CVE-2024-0002", "curl", "7.74.0")

        vuln, created = await repository.upsert(
            key, severity="Medium", seen_at=NOW - timedelta(days=3)
        )
        assert created
        vuln.status = "in_progress"

        again, created = await repository.upsert(
            key,
            severity="High",
            fix_version="7.75.0",
            seen_at=NOW,
            imagescan_namespace="prod",
            imagescan_name="nightly",
        )

        assert not created
        assert again.id == vuln.id
        assert again.severity == "High"
        assert again.fix_version == "7.75.0"
        assert again.status == "in_progress"
        assert again.first_detected_at == NOW - timedelta(days=3)
        assert again.last_seen_at == NOW
        assert again.imagescan_namespace == "prod"

    async def test_upsert_keeps_policy_context_without_one(self, repository):
        key = VulnerabilityKey("CVE-2024-0002", "curl", "7.74.0")
        await repository.upsert(key, severity="High", imagescan_namespace="prod", imagescan_name="nightly")

        vuln, _ = await repository.upsert(key, severity="High")

        assert (vuln.imagescan_namespace, vuln.imagescan_name) == ("prod", "nightly")

    async def test_get_filtered_orders_by_severity(self, repository, db_session, make_vulnerability):
        db_session.add_all(
            [
                make_vulnerability(severity="Low"),
                make_vulnerability(severity="Unknown"),
                make_vulnerability(severity="Critical"),
                make_vulnerability(severity="Medium"),
            ]
        )
        await db_session.commit()

        vulns = await repository.get_filtered()

        assert [v.severity for v in vulns] == ["Critical", "Medium", "Low", "Unknown"]
        assert await repository.count(severity="Low") == 1

    async def test_last_status_changes(self, repository, db_session, make_vulnerability):
        vuln = make_vulnerability()
        db_session.add(vuln)
        await db_session.commit()
        await repository.add_history(vuln.id, "status", "active", "fixed", "system", changed_at=NOW - timedelta(days=2))
        await repository.add_history(vuln.id, "status", "fixed", "active", "system", changed_at=NOW)
        await repository.add_history(vuln.id, "notes", "", "x", "bob", changed_at=NOW + timedelta(days=1))

        last = await repository.get_last_status_change_at(vuln.id)

        assert last.replace(tzinfo=None) == NOW.replace(tzinfo=None)
        history = await repository.get_history(vuln.id)
        assert [h.field_name for h in history] == ["notes", "status", "status"]


@pytest.mark.asyncio
class TestScanRepository:
    @pytest.fixture
    def repository(self, db_session):
        return ScanRepository(db_session)

    async def test_create_captures_default_sla(self, repository, image):
        scan = await repository.create(image_id=image.id, sla_critical=1)

        assert (scan.sla_critical, scan.sla_high, scan.sla_medium, scan.sla_low) == (1, 30, 90, 180)

    async def test_link_vulnerability_once(self, repository, db_session, image, make_vulnerability):
        scan = await repository.create(image_id=image.id, scan_date=NOW)
        vuln = make_vulnerability(severity="High")
        db_session.add(vuln)
        await db_session.flush()

        assert await repository.link_vulnerability(scan.id, vuln.id) is True
        assert await repository.link_vulnerability(scan.id, vuln.id) is False
        assert await repository.get_severity_counts(scan.id) == {"High": 1}

    async def test_list_for_image_newest_first(
        self, repository, db_session, image, make_image, make_vulnerability
    ):
        other = make_image()
        vuln = make_vulnerability()
        db_session.add_all([other, vuln])
        await db_session.flush()
        oldest = await repository.create(image_id=image.id, scan_date=NOW - timedelta(days=9))
        middle = await repository.create(image_id=image.id, scan_date=NOW - timedelta(days=2))
        newest = await repository.create(image_id=image.id, scan_date=NOW)
        foreign = await repository.create(image_id=other.id, scan_date=NOW + timedelta(days=1))
        await repository.link_vulnerability(middle.id, vuln.id)
        await repository.link_vulnerability(foreign.id, vuln.id)

        scans = await repository.list_for_image(image.id)
        page = await repository.list_for_image(image.id, limit=1, offset=1)

        assert [s.id for s in scans] == [newest.id, middle.id, oldest.id]
        assert [s.id for s in page] == [middle.id]
        assert await repository.count_for_image(image.id) == 3
        latest = await repository.get_latest_for_vulnerability(vuln.id)
        assert latest.id == foreign.id


@pytest.mark.asyncio
class TestWebhookConfigRepository:
    @pytest.fixture
    def repository(self, db_session):
        return WebhookConfigRepository(db_session)

    @pytest.mark.parametrize("namespace,name", [(None, "nightly"), ("prod", None), ("", "")])
    async def test_get_without_context(self, repository, namespace, name):
        assert await repository.get(namespace, name) is None

    async def test_upsert_and_delete(self, repository):
        config = await repository.upsert(
            "prod", "nightly", webhook_url="https://example.com/hook", unknown_field="ignored"
        )
        assert config.webhook_url == "https://example.com/hook"

        assert await repository.delete("prod", "nightly") is True
        assert await repository.delete("prod", "nightly") is False
