"""Compare two scans of the same image and classify vulnerabilities as new, fixed or persistent."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.constants import SYSTEM_ACTOR, VulnerabilityStatus
from invulnerable.exceptions import CrossImageError, NotFoundError
from invulnerable.models import Scan, Vulnerability
from invulnerable.repositories.image_repository import ImageRepository
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.services.status_tracker import (
    StatusUpdateResult,
    UpdateContext,
    VulnerabilityStatusTracker,
)

logger = logging.getLogger(__name__)


@dataclass
class ScanDiff:
    """Classification of a scan's vulnerabilities against a previous scan."""

    scan: Scan
    previous_scan: Scan | None
    new: list[Vulnerability] = field(default_factory=list)
    fixed: list[Vulnerability] = field(default_factory=list)
    persistent: list[Vulnerability] = field(default_factory=list)
    # Result of auto-marking ``fixed`` vulnerabilities, None when nothing was fixed
    status_update: StatusUpdateResult | None = None

    @property
    def counts(self) -> dict[str, int]:
        return {
            "new": len(self.new),
            "fixed": len(self.fixed),
            "persistent": len(self.persistent),
        }


def classify(
    current: list[Vulnerability], previous: list[Vulnerability]
) -> tuple[list[Vulnerability], list[Vulnerability], list[Vulnerability]]:
    """
    Split two vulnerability sets by identity key.

    Returns:
        Tuple of (new, fixed, persistent). ``persistent`` holds the current
        scan's records.
    """
    previous_keys = {vuln.key for vuln in previous}
    current_keys = {vuln.key for vuln in current}

    new = [vuln for vuln in current if vuln.key not in previous_keys]
    persistent = [vuln for vuln in current if vuln.key in previous_keys]
    fixed = [vuln for vuln in previous if vuln.key not in current_keys]
    return new, fixed, persistent


class ScanDiffEngine:
    """Diffs scans and keeps stored status in line with what is no longer detected."""

    def __init__(self, db: AsyncSession, tracker: VulnerabilityStatusTracker | None = None):
        """
        Initialize the engine.

        Args:
            db: AsyncSession database session
            tracker: Status tracker used to mark vanished vulnerabilities fixed
        """
        self.db = db
        self.images = ImageRepository(db)
        self.scans = ScanRepository(db)
        self.tracker = tracker or VulnerabilityStatusTracker(db)

    async def _resolve(self, scan_id: int, previous_scan_id: int | None) -> tuple[Scan, Scan | None]:
        scan = await self.scans.get_by_id(scan_id)
        if scan is None:
            raise NotFoundError("scan", scan_id)

        if previous_scan_id is None:
            return scan, await self.scans.get_previous_scan(scan.image_id, scan.scan_date)

        previous = await self.scans.get_by_id(previous_scan_id)
        if previous is None:
            raise NotFoundError("scan", previous_scan_id)
        if previous.image_id != scan.image_id:
            raise CrossImageError(scan_id, previous_scan_id)
        return scan, previous

    async def diff(
        self,
        scan_id: int,
        previous_scan_id: int | None = None,
        *,
        now: datetime | None = None,
    ) -> ScanDiff:
        """
        Diff a scan against an explicit or the most recent earlier scan of its image.

        Vulnerabilities classified ``fixed`` are marked fixed through the status
        tracker with actor ``system``. Repeating the same diff is harmless: they
        are already fixed, so no further update or history row is produced.

        Args:
            scan_id: Scan to diff
            previous_scan_id: Reference scan; defaults to the image's previous scan
            now: Time stamped as remediation_date on newly fixed vulnerabilities

        Returns:
            ScanDiff

        Raises:
            NotFoundError: either scan does not exist
            CrossImageError: the explicit previous scan is for a different image
        """
        scan, previous = await self._resolve(scan_id, previous_scan_id)
        current = await self.scans.get_vulnerabilities(scan.id)

        if previous is None:
            logger.info(f"Scan {scan.id} has no previous scan; {len(current)} vulnerabilities are new")
            return ScanDiff(scan=scan, previous_scan=None, new=current)

        previous_vulns = await self.scans.get_vulnerabilities(previous.id)
        new, fixed, persistent = classify(current, previous_vulns)
        result = ScanDiff(
            scan=scan, previous_scan=previous, new=new, fixed=fixed, persistent=persistent
        )

        if fixed:
            image = await self.images.get_by_id(scan.image_id)
            context = UpdateContext(
                image_id=scan.image_id,
                image_name=image.full_name if image else None,
            )
            result.status_update = await self.tracker.bulk_update(
                [vuln.id for vuln in fixed],
                status=VulnerabilityStatus.FIXED.value,
                actor=SYSTEM_ACTOR,
                context=context,
                now=now,
            )

        logger.info(
            f"Diff scan {scan.id} vs {previous.id}: {len(new)} new, {len(fixed)} fixed, "
            f"{len(persistent)} persistent"
        )
        return result
