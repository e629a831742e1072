"""Scan repository for centralized scan queries."""

from datetime import datetime

from sqlalchemy import desc, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invulnerable.config import settings
from invulnerable.models import Scan, Vulnerability, scan_vulnerabilities
from invulnerable.repositories.vulnerability_repository import SEVERITY_SORT
from invulnerable.utils.timezone import get_now


class ScanRepository:
    """Repository for Scan model."""

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository.

        Args:
            db: AsyncSession database session
        """
        self.db = db

    async def create(
        self,
        *,
        image_id: int,
        scan_date: datetime | None = None,
        scanner_version: str | None = None,
        sla_critical: int | None = None,
        sla_high: int | None = None,
        sla_medium: int | None = None,
        sla_low: int | None = None,
        imagescan_namespace: str | None = None,
        imagescan_name: str | None = None,
    ) -> Scan:
        """
        Create a scan, capturing the SLA policy in effect right now.

        Thresholds that are not supplied fall back to the configured defaults so
        later policy changes never rewrite the SLA of historical scans.
        """
        scan = Scan(
            image_id=image_id,
            scan_date=scan_date or get_now(),
            status="completed",
            scanner_version=scanner_version,
            sla_critical=sla_critical if sla_critical is not None else settings.sla_critical_days,
            sla_high=sla_high if sla_high is not None else settings.sla_high_days,
            sla_medium=sla_medium if sla_medium is not None else settings.sla_medium_days,
            sla_low=sla_low if sla_low is not None else settings.sla_low_days,
            imagescan_namespace=imagescan_namespace,
            imagescan_name=imagescan_name,
        )
        self.db.add(scan)
        await self.db.flush()
        return scan

    async def get_by_id(self, scan_id: int) -> Scan | None:
        """Return a scan with its image eagerly loaded."""
        result = await self.db.execute(
            select(Scan).options(selectinload(Scan.image)).where(Scan.id == scan_id)
        )
        return result.scalar_one_or_none()

    async def get_previous_scan(self, image_id: int, before: datetime) -> Scan | None:
        """
        Return the most recent scan of an image strictly earlier than ``before``.

        Args:
            image_id: Image the scans belong to
            before: Exclusive upper bound on scan_date

        Returns:
            Previous scan, or None for the first scan of an image
        """
        result = await self.db.execute(
            select(Scan)
            .where(Scan.image_id == image_id, Scan.scan_date < before)
            .order_by(desc(Scan.scan_date), desc(Scan.id))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_vulnerabilities(self, scan_id: int) -> list[Vulnerability]:
        """List the vulnerabilities linked to a scan, most severe first."""
        result = await self.db.execute(
            select(Vulnerability)
            .join(scan_vulnerabilities, scan_vulnerabilities.c.vulnerability_id == Vulnerability.id)
            .where(scan_vulnerabilities.c.scan_id == scan_id)
            .order_by(SEVERITY_SORT, Vulnerability.cve_id, Vulnerability.package_name)
        )
        return list(result.scalars().all())

    async def link_vulnerability(self, scan_id: int, vulnerability_id: int) -> bool:
        """
        Associate a vulnerability with a scan.

        Returns:
            True if a new link was created, False if it already existed
        """
        existing = await self.db.execute(
            select(scan_vulnerabilities.c.scan_id).where(
                scan_vulnerabilities.c.scan_id == scan_id,
                scan_vulnerabilities.c.vulnerability_id == vulnerability_id,
            )
        )
        if existing.first() is not None:
            return False

        await self.db.execute(
            insert(scan_vulnerabilities).values(
                scan_id=scan_id, vulnerability_id=vulnerability_id, created_at=get_now()
            )
        )
        return True

    async def get_severity_counts(self, scan_id: int) -> dict[str, int]:
        """Count a scan's vulnerabilities per severity."""
        result = await self.db.execute(
            select(Vulnerability.severity, func.count(Vulnerability.id))
            .join(scan_vulnerabilities, scan_vulnerabilities.c.vulnerability_id == Vulnerability.id)
            .where(scan_vulnerabilities.c.scan_id == scan_id)
            .group_by(Vulnerability.severity)
        )
        return {severity: count for severity, count in result.all()}

    async def list_for_image(
        self, image_id: int, limit: int | None = None, offset: int = 0
    ) -> list[Scan]:
        """List scans for an image ordered from newest to oldest."""
        query = (
            select(Scan)
            .where(Scan.image_id == image_id)
            .order_by(desc(Scan.scan_date), desc(Scan.id))
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_for_image(self, image_id: int) -> int:
        """Count the scans recorded for an image."""
        result = await self.db.execute(
            select(func.count(Scan.id)).where(Scan.image_id == image_id)
        )
        return result.scalar_one()

    async def get_latest_for_vulnerability(self, vulnerability_id: int) -> Scan | None:
        """Return the most recent scan (with image) that detected a vulnerability."""
        result = await self.db.execute(
            select(Scan)
            .options(selectinload(Scan.image))
            .join(scan_vulnerabilities, scan_vulnerabilities.c.scan_id == Scan.id)
            .where(scan_vulnerabilities.c.vulnerability_id == vulnerability_id)
            .order_by(desc(Scan.scan_date), desc(Scan.id))
            .limit(1)
        )
        return result.scalar_one_or_none()
