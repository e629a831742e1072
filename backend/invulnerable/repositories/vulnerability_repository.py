"""Vulnerability repository for identity upserts, filtered listing and audit history."""

from datetime import datetime

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.constants import Severity
from invulnerable.models import Vulnerability, VulnerabilityHistory, VulnerabilityKey
from invulnerable.utils.timezone import get_now

# Critical first, Unknown last
SEVERITY_SORT = case(
    (Vulnerability.severity == Severity.CRITICAL.value, 1),
    (Vulnerability.severity == Severity.HIGH.value, 2),
    (Vulnerability.severity == Severity.MEDIUM.value, 3),
    (Vulnerability.severity == Severity.LOW.value, 4),
    (Vulnerability.severity == Severity.NEGLIGIBLE.value, 5),
    else_=6,
)


class VulnerabilityRepository:
    """Repository for Vulnerability and VulnerabilityHistory models."""

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository.

        Args:
            db: AsyncSession database session
        """
        self.db = db

    def _apply_filters(
        self,
        query,
        severity: str | None = None,
        status: str | None = None,
        has_fix: bool | None = None,
    ):
        if severity:
            query = query.where(Vulnerability.severity == severity)
        if status:
            query = query.where(Vulnerability.status == status)
        if has_fix is True:
            query = query.where(Vulnerability.fix_version.is_not(None), Vulnerability.fix_version != "")
        elif has_fix is False:
            query = query.where((Vulnerability.fix_version.is_(None)) | (Vulnerability.fix_version == ""))
        return query

    async def get_by_id(self, vulnerability_id: int) -> Vulnerability | None:
        """Get a vulnerability by primary key."""
        result = await self.db.execute(
            select(Vulnerability).where(Vulnerability.id == vulnerability_id)
        )
        return result.scalar_one_or_none()

    async def get_by_key(self, key: VulnerabilityKey) -> Vulnerability | None:
        """Get a vulnerability by its (cve_id, package_name, package_version) identity."""
        result = await self.db.execute(
            select(Vulnerability).where(
                Vulnerability.cve_id == key.cve_id,
                Vulnerability.package_name == key.package_name,
                Vulnerability.package_version == key.package_version,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        key: VulnerabilityKey,
        *,
        severity: str,
        fix_version: str | None = None,
        package_type: str | None = None,
        url: str | None = None,
        description: str | None = None,
        seen_at: datetime | None = None,
        imagescan_namespace: str | None = None,
        imagescan_name: str | None = None,
    ) -> tuple[Vulnerability, bool]:
        """
        Insert a vulnerability on first sighting or refresh its scanner metadata.

        Re-detection updates severity, fix_version, url, description, last_seen_at
        and the scanning-policy context. Identity, first_detected_at and status
        are never touched here; status only changes through the status tracker.

        Args:
            key: Identity triple
            severity: Normalised severity
            fix_version: First fix version reported by the scanner
            package_type: Package ecosystem (deb, npm, ...)
            url: Advisory URL
            description: Advisory description
            seen_at: Detection time, defaults to now
            imagescan_namespace: Scanning policy namespace
            imagescan_name: Scanning policy name

        Returns:
            Tuple of (vulnerability, created)
        """
        seen_at = seen_at or get_now()
        vuln = await self.get_by_key(key)
        created = vuln is None

        if vuln is None:
            vuln = Vulnerability(
                cve_id=key.cve_id,
                package_name=key.package_name,
                package_version=key.package_version,
                package_type=package_type,
                first_detected_at=seen_at,
                last_seen_at=seen_at,
            )
            self.db.add(vuln)
        else:
            vuln.last_seen_at = seen_at

        vuln.severity = severity
        vuln.fix_version = fix_version
        vuln.url = url
        vuln.description = description
        if imagescan_namespace and imagescan_name:
            vuln.imagescan_namespace = imagescan_namespace
            vuln.imagescan_name = imagescan_name

        await self.db.flush()
        return vuln, created

    async def get_filtered(
        self,
        severity: str | None = None,
        status: str | None = None,
        has_fix: bool | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Vulnerability]:
        """
        List vulnerabilities, most severe first and newest first within a severity.

        Args:
            severity: Optional severity filter
            status: Optional status filter
            has_fix: Optional fix availability filter
            limit: Maximum number of results
            offset: Pagination offset

        Returns:
            List of vulnerabilities
        """
        query = self._apply_filters(select(Vulnerability), severity, status, has_fix)
        query = (
            query.order_by(SEVERITY_SORT, Vulnerability.first_detected_at.desc(), Vulnerability.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count(
        self,
        severity: str | None = None,
        status: str | None = None,
        has_fix: bool | None = None,
    ) -> int:
        """Count vulnerabilities matching the same filters as ``get_filtered``."""
        query = self._apply_filters(select(func.count(Vulnerability.id)), severity, status, has_fix)
        result = await self.db.execute(query)
        return result.scalar_one()

    async def list_all(self) -> list[Vulnerability]:
        """Every vulnerability, for report export."""
        result = await self.db.execute(
            select(Vulnerability).order_by(SEVERITY_SORT, Vulnerability.cve_id, Vulnerability.id)
        )
        return list(result.scalars().all())

    async def add_history(
        self,
        vulnerability_id: int,
        field_name: str,
        old_value: str | None,
        new_value: str | None,
        changed_by: str,
        image_id: int | None = None,
        image_name: str | None = None,
        changed_at: datetime | None = None,
    ) -> VulnerabilityHistory:
        """
        Append one audit row. Flushes so write failures surface to the caller.
        """
        entry = VulnerabilityHistory(
            vulnerability_id=vulnerability_id,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by,
            changed_at=changed_at or get_now(),
            image_id=image_id,
            image_name=image_name,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_history(self, vulnerability_id: int) -> list[VulnerabilityHistory]:
        """Audit trail for a vulnerability, newest first."""
        result = await self.db.execute(
            select(VulnerabilityHistory)
            .where(VulnerabilityHistory.vulnerability_id == vulnerability_id)
            .order_by(VulnerabilityHistory.changed_at.desc(), VulnerabilityHistory.id.desc())
        )
        return list(result.scalars().all())

    async def get_last_status_change_at(self, vulnerability_id: int) -> datetime | None:
        """When the status of a vulnerability last changed, if ever."""
        changes = await self.get_last_status_changes([vulnerability_id])
        return changes.get(vulnerability_id)

    async def get_last_status_changes(self, vulnerability_ids: list[int]) -> dict[int, datetime]:
        """
        Latest status-change timestamp per vulnerability.

        Args:
            vulnerability_ids: Vulnerabilities to look up

        Returns:
            Mapping of vulnerability ID to last status change; IDs without any
            recorded status change are absent
        """
        if not vulnerability_ids:
            return {}

        result = await self.db.execute(
            select(VulnerabilityHistory.vulnerability_id, func.max(VulnerabilityHistory.changed_at))
            .where(
                VulnerabilityHistory.vulnerability_id.in_(vulnerability_ids),
                VulnerabilityHistory.field_name == "status",
            )
            .group_by(VulnerabilityHistory.vulnerability_id)
        )
        return {vuln_id: changed_at for vuln_id, changed_at in result.all()}
