"""Image model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invulnerable.db import Base
from invulnerable.utils.timezone import get_now

if TYPE_CHECKING:
    from invulnerable.models.scan import Scan


class Image(Base):
    """A container image reference that is scanned repeatedly."""

    __tablename__ = "images"
    __table_args__ = (UniqueConstraint("registry", "repository", "tag", name="uix_image_ref"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    registry_host: Mapped[str] = mapped_column(
        "registry", String(255), nullable=False, default=""
    )
    repository: Mapped[str] = mapped_column(String(512), nullable=False)
    tag: Mapped[str] = mapped_column(String(255), nullable=False, default="latest")
    digest: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=get_now, onupdate=get_now
    )

    scans: Mapped[list[Scan]] = relationship(
        "Scan", back_populates="image", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        """Render ``registry/repository:tag`` (registry omitted when empty)."""
        if self.registry_host:
            return f"{self.registry_host}/{self.repository}:{self.tag}"
        return f"{self.repository}:{self.tag}"
