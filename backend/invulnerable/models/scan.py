"""Scan model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invulnerable.db import Base
from invulnerable.utils.timezone import get_now

if TYPE_CHECKING:
    from invulnerable.models.image import Image
    from invulnerable.models.vulnerability import Vulnerability


# Many-to-many: a vulnerability row is shared by every scan (of any image) that detects it
scan_vulnerabilities = Table(
    "scan_vulnerabilities",
    Base.metadata,
    Column("scan_id", Integer, ForeignKey("scans.id", ondelete="CASCADE"), nullable=False),
    Column(
        "vulnerability_id",
        Integer,
        ForeignKey("vulnerabilities.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("created_at", DateTime(timezone=True), default=get_now),
    UniqueConstraint("scan_id", "vulnerability_id", name="uix_scan_vulnerability"),
)


class Scan(Base):
    """One scanner execution against one image."""

    __tablename__ = "scans"
    __table_args__ = (Index("ix_scan_image_date", "image_id", "scan_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    image_id: Mapped[int] = mapped_column(Integer, ForeignKey("images.id"), nullable=False)

    scan_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now, index=True)
    status: Mapped[str] = mapped_column(String(50), default="completed")
    scanner_version: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # SLA policy in effect when the scan ran (days per severity)
    sla_critical: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    sla_high: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    sla_medium: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    sla_low: Mapped[int] = mapped_column(Integer, nullable=False, default=180)

    # Scanning policy (ImageScan resource) that triggered this scan
    imagescan_namespace: Mapped[str | None] = mapped_column(String(253), nullable=True)
    imagescan_name: Mapped[str | None] = mapped_column(String(253), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)

    image: Mapped[Image] = relationship("Image", back_populates="scans")
    vulnerabilities: Mapped[list[Vulnerability]] = relationship(
        "Vulnerability", secondary=scan_vulnerabilities, back_populates="scans"
    )
