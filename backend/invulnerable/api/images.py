"""Image API endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.api.scans import build_scan_response
from invulnerable.db import get_db
from invulnerable.exceptions import NotFoundError
from invulnerable.repositories.dependencies import get_image_repository, get_scan_repository
from invulnerable.repositories.image_repository import ImageRepository
from invulnerable.repositories.scan_repository import ScanRepository
from invulnerable.schemas.image import Image as ImageSchema
from invulnerable.schemas.image import ImageList, ImageScanHistory

router = APIRouter()


@router.get("", response_model=ImageList)
async def list_images(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    image_repo: ImageRepository = Depends(get_image_repository),
):
    """List scanned images with their scan count and open vulnerabilities per severity."""
    stats = await image_repo.list_with_stats(limit=limit, offset=offset)
    images = [
        ImageSchema(
            id=item.image.id,
            registry=item.image.registry_host,
            repository=item.image.repository,
            tag=item.image.tag,
            full_name=item.image.full_name,
            digest=item.image.digest,
            scan_count=item.scan_count,
            last_scan_date=item.last_scan_date,
            active_counts=item.active_counts,
        )
        for item in stats
    ]
    return ImageList(images=images, total=await image_repo.count(), limit=limit, offset=offset)


@router.get("/{image_id}/scans", response_model=ImageScanHistory)
async def get_image_scans(
    image_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    image_repo: ImageRepository = Depends(get_image_repository),
    scan_repo: ScanRepository = Depends(get_scan_repository),
):
    """
    Scan history of an image, newest first.

    Scan IDs listed here are the ones accepted as ``previous_scan_id`` by the
    scan diff endpoint.
    """
    image = await image_repo.get_by_id(image_id)
    if image is None:
        raise NotFoundError("image", image_id)

    scans = await scan_repo.list_for_image(image_id, limit=limit, offset=offset)
    return ImageScanHistory(
        image_id=image.id,
        image_name=image.full_name,
        scans=[await build_scan_response(db, scan) for scan in scans],
        total=await scan_repo.count_for_image(image_id),
        limit=limit,
        offset=offset,
    )
