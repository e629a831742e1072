"""Image repository for centralized image queries."""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import desc, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.constants import VulnerabilityStatus
from invulnerable.models import Image, Scan, Vulnerability, scan_vulnerabilities

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"


@dataclass
class ImageStats:
    """An image with its scan activity and open vulnerability counts."""

    image: Image
    scan_count: int = 0
    last_scan_date: datetime | None = None
    active_counts: dict[str, int] = field(default_factory=dict)


def parse_image_name(full_name: str) -> tuple[str, str, str]:
    """
    Split an image reference into registry, repository and tag.

    A colon after the last slash separates the tag (so registry ports such as
    ``localhost:5000/app`` are not mistaken for tags). The first path segment is
    treated as a registry only when it looks like a host (contains ``.`` or
    ``:``); everything else is a Docker Hub repository.

    Args:
        full_name: Reference such as ``ghcr.io/org/app:1.2`` or ``nginx``

    Returns:
        Tuple of (registry, repository, tag)
    """
    tag = DEFAULT_TAG
    repo_path = full_name

    last_slash = full_name.rfind("/")
    tag_separator = full_name.rfind(":")
    if tag_separator > last_slash:
        tag = full_name[tag_separator + 1 :]
        repo_path = full_name[:tag_separator]

    parts = repo_path.split("/")
    if len(parts) == 1:
        return DEFAULT_REGISTRY, parts[0], tag
    if "." in parts[0] or ":" in parts[0]:
        return parts[0], "/".join(parts[1:]), tag
    return DEFAULT_REGISTRY, repo_path, tag


class ImageRepository:
    """Repository for Image model."""

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository.

        Args:
            db: AsyncSession database session
        """
        self.db = db

    async def get_by_id(self, image_id: int) -> Image | None:
        """Get an image by primary key."""
        return await self.db.get(Image, image_id)

    async def get_by_name(self, registry: str, repository: str, tag: str) -> Image | None:
        """Get an image by its (registry, repository, tag) reference."""
        result = await self.db.execute(
            select(Image).where(
                Image.registry_host == registry,
                Image.repository == repository,
                Image.tag == tag,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, full_name: str, digest: str | None = None) -> Image:
        """
        Get the image for a reference, creating it on first sight.

        The digest is refreshed whenever a new one is supplied, since a mutable
        tag can point at a different manifest between scans.

        Args:
            full_name: Image reference
            digest: Optional manifest digest

        Returns:
            Persisted Image (flushed, not committed)
        """
        registry, repository, tag = parse_image_name(full_name)
        image = await self.get_by_name(registry, repository, tag)

        if image is None:
            image = Image(registry_host=registry, repository=repository, tag=tag, digest=digest)
            self.db.add(image)
        elif digest:
            image.digest = digest

        await self.db.flush()
        return image

    async def count(self) -> int:
        """Count tracked images."""
        result = await self.db.execute(select(func.count(Image.id)))
        return result.scalar_one()

    async def list_with_stats(self, limit: int = 20, offset: int = 0) -> list[ImageStats]:
        """
        List images, most recently updated first, with scan and open vulnerability stats.

        Active counts cover every distinct vulnerability linked to any scan of
        the image that is still in ``active`` status, grouped by severity.

        Args:
            limit: Maximum images to return
            offset: Number of images to skip

        Returns:
            One ImageStats per image
        """
        result = await self.db.execute(
            select(Image, func.count(Scan.id), func.max(Scan.scan_date))
            .outerjoin(Scan, Scan.image_id == Image.id)
            .group_by(Image.id)
            .order_by(desc(Image.updated_at), desc(Image.id))
            .limit(limit)
            .offset(offset)
        )
        stats = {
            image.id: ImageStats(image=image, scan_count=scan_count, last_scan_date=last_scan)
            for image, scan_count, last_scan in result.all()
        }
        if not stats:
            return []

        counts = await self.db.execute(
            select(Scan.image_id, Vulnerability.severity, func.count(distinct(Vulnerability.id)))
            .join(scan_vulnerabilities, scan_vulnerabilities.c.scan_id == Scan.id)
            .join(Vulnerability, Vulnerability.id == scan_vulnerabilities.c.vulnerability_id)
            .where(
                Scan.image_id.in_(list(stats)),
                Vulnerability.status == VulnerabilityStatus.ACTIVE.value,
            )
            .group_by(Scan.image_id, Vulnerability.severity)
        )
        for image_id, severity, count in counts.all():
            stats[image_id].active_counts[severity] = count

        return list(stats.values())
