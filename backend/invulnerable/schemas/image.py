"""Image schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from invulnerable.schemas.scan import Scan


class Image(BaseModel):
    """Tracked image with scan activity and open vulnerability counts."""

    id: int
    registry: str
    repository: str
    tag: str
    full_name: str
    digest: str | None = None
    scan_count: int = 0
    last_scan_date: datetime | None = None
    active_counts: dict[str, int] = Field(default_factory=dict)


class ImageList(BaseModel):
    images: list[Image]
    total: int
    limit: int
    offset: int


class ImageScanHistory(BaseModel):
    """Scans of one image, newest first."""

    image_id: int
    image_name: str
    scans: list[Scan]
    total: int
    limit: int
    offset: int
