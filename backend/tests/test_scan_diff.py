"""Tests for the scan diff engine."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from conftest import NOW
from invulnerable.exceptions import CrossImageError, NotFoundError
from invulnerable.models import VulnerabilityHistory
from invulnerable.services.scan_diff import ScanDiffEngine, classify


@pytest.fixture
def add_scan(db_session, make_scan, link_vulnerabilities):
    """Persist a scan of ``image`` at ``scan_date`` detecting ``vulnerabilities``."""

    async def _add_scan(image, scan_date, vulnerabilities):
        scan = make_scan(image_id=image.id, scan_date=scan_date)
        db_session.add(scan)
        await db_session.commit()
        await link_vulnerabilities(scan, vulnerabilities)
        return scan

    return _add_scan


@pytest.fixture
def add_vulnerabilities(db_session, make_vulnerability):
    async def _add(*overrides):
        vulns = [make_vulnerability(**values) for values in overrides]
        db_session.add_all(vulns)
        await db_session.commit()
        return vulns

    return _add


async def history_count(db_session) -> int:
    result = await db_session.execute(select(func.count(VulnerabilityHistory.id)))
    return result.scalar_one()


class TestClassify:
    def test_set_properties(self, make_vulnerability):
        shared = [
            make_vulnerability(cve_id="CVE-1", package_name="a", package_version="1"),
            make_vulnerability(cve_id="CVE-2", package_name="b", package_version="1"),
        ]
        only_previous = make_vulnerability(cve_id="CVE-3", package_name="c", package_version="1")
        only_current = make_vulnerability(cve_id="CVE-4", package_name="d", package_version="1")
        previous = [*shared, only_previous]
        current = [*shared, only_current]

        new, fixed, persistent = classify(current, previous)

        assert new == [only_current]
        assert fixed == [only_previous]
        assert persistent == shared
        assert len(new) + len(persistent) == len(current)
        assert len(fixed) + len(persistent) == len(previous)

    def test_same_cve_different_package_version_is_distinct(self, make_vulnerability):
        old = make_vulnerability(cve_id="CVE-1", package_name="curl", package_version="7.74.0")
        upgraded = make_vulnerability(cve_id="CVE-1", package_name="curl", package_version="7.75.0")

        new, fixed, persistent = classify([upgraded], [old])

        assert new == [upgraded]
        assert fixed == [old]
        assert persistent == []

    def test_delimiter_in_package_name_does_not_collide(self, make_vulnerability):
        a = make_vulnerability(cve_id="CVE-1", package_name="a:b", package_version="c")
        b = make_vulnerability(cve_id="CVE-1", package_name="a", package_version="b:c")

        new, fixed, persistent = classify([a], [b])

        assert persistent == []
        assert new == [a]
        assert fixed == [b]


@pytest.mark.asyncio
class TestScanDiffEngine:
    async def test_no_previous_scan_everything_new(self, db_session, image, add_scan, add_vulnerabilities):
        vulns = await add_vulnerabilities({"severity": "High"}, {"severity": "Low"})
        scan = await add_scan(image, NOW, vulns)

        diff = await ScanDiffEngine(db_session).diff(scan.id, now=NOW)

        assert diff.previous_scan is None
        assert {v.id for v in diff.new} == {v.id for v in vulns}
        assert diff.fixed == []
        assert diff.persistent == []
        assert diff.status_update is None

    async def test_concrete_fixed_scenario(
        self, db_session, image, add_scan, add_vulnerabilities
    ):
        openssl, curl = await add_vulnerabilities(
            {
                "cve_id": "CVE-2024-0001",
                "package_name": "openssl",
                "package_version": "1.1.1",
                "severity": "Critical",
            },
            {
                "cve_id": "CVE-2024-0002",
                "package_name": "curl",
                "package_version": "7.74.0",
                "severity": "High",
                "fix_version": "7.75.0",
            },
        )
        await add_scan(image, NOW - timedelta(days=1), [openssl, curl])
        scan2 = await add_scan(image, NOW, [curl])

        diff = await ScanDiffEngine(db_session).diff(scan2.id, now=NOW)

        assert diff.new == []
        assert [v.cve_id for v in diff.fixed] == ["CVE-2024-0001"]
        assert [v.cve_id for v in diff.persistent] == ["CVE-2024-0002"]
        assert diff.counts == {"new": 0, "fixed": 1, "persistent": 1}

        await db_session.refresh(openssl)
        assert openssl.status == "fixed"
        assert openssl.remediation_date is not None
        assert openssl.updated_by == "system"

        history = (
            await db_session.execute(
                select(VulnerabilityHistory).where(
                    VulnerabilityHistory.vulnerability_id == openssl.id
                )
            )
        ).scalars().all()
        assert len(history) == 1
        entry = history[0]
        assert entry.field_name == "status"
        assert entry.old_value == "active"
        assert entry.new_value == "fixed"
        assert entry.changed_by == "system"
        assert entry.image_id == image.id
        assert entry.image_name == "docker.io/library/nginx:1.25"

        await db_session.refresh(curl)
        assert curl.status == "active"

    async def test_rediff_is_idempotent(self, db_session, image, add_scan, add_vulnerabilities):
        gone, stays = await add_vulnerabilities({}, {})
        await add_scan(image, NOW - timedelta(days=1), [gone, stays])
        scan2 = await add_scan(image, NOW, [stays])
        engine = ScanDiffEngine(db_session)

        first = await engine.diff(scan2.id, now=NOW)
        assert await history_count(db_session) == 1

        second = await engine.diff(scan2.id, now=NOW + timedelta(hours=1))

        assert [v.id for v in second.fixed] == [v.id for v in first.fixed]
        assert [v.id for v in second.persistent] == [v.id for v in first.persistent]
        assert second.status_update.updated_ids == []
        assert await history_count(db_session) == 1

        await db_session.refresh(gone)
        # Remediation date keeps the first fix time
        assert gone.remediation_date.replace(tzinfo=None) == NOW.replace(tzinfo=None)

    async def test_previous_scan_is_strictly_earlier(
        self, db_session, image, add_scan, add_vulnerabilities
    ):
        (vuln,) = await add_vulnerabilities({})
        await add_scan(image, NOW - timedelta(days=2), [])
        middle = await add_scan(image, NOW - timedelta(days=1), [vuln])
        latest = await add_scan(image, NOW, [vuln])
        await add_scan(image, NOW + timedelta(days=1), [])

        diff = await ScanDiffEngine(db_session).diff(latest.id)

        assert diff.previous_scan.id == middle.id
        assert [v.id for v in diff.persistent] == [vuln.id]

    async def test_explicit_previous_scan(self, db_session, image, add_scan, add_vulnerabilities):
        a, b = await add_vulnerabilities({}, {})
        oldest = await add_scan(image, NOW - timedelta(days=2), [a])
        await add_scan(image, NOW - timedelta(days=1), [a, b])
        latest = await add_scan(image, NOW, [b])

        diff = await ScanDiffEngine(db_session).diff(latest.id, oldest.id, now=NOW)

        assert diff.previous_scan.id == oldest.id
        assert [v.id for v in diff.new] == [b.id]
        assert [v.id for v in diff.fixed] == [a.id]

    async def test_unknown_scan(self, db_session):
        with pytest.raises(NotFoundError):
            await ScanDiffEngine(db_session).diff(999)

    async def test_unknown_previous_scan(self, db_session, image, add_scan):
        scan = await add_scan(image, NOW, [])
        with pytest.raises(NotFoundError):
            await ScanDiffEngine(db_session).diff(scan.id, 999)

    async def test_cross_image_comparison_rejected(
        self, db_session, image, make_image, add_scan
    ):
        other = make_image(repository="library/redis", tag="7")
        db_session.add(other)
        await db_session.commit()
        scan = await add_scan(image, NOW, [])
        foreign = await add_scan(other, NOW - timedelta(days=1), [])

        with pytest.raises(CrossImageError) as exc_info:
            await ScanDiffEngine(db_session).diff(scan.id, foreign.id)

        assert exc_info.value.previous_scan_id == foreign.id
        assert await history_count(db_session) == 0
