"""Vulnerability model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, NamedTuple

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invulnerable.constants import VulnerabilityStatus
from invulnerable.db import Base
from invulnerable.models.scan import scan_vulnerabilities
from invulnerable.utils.timezone import get_now

if TYPE_CHECKING:
    from invulnerable.models.scan import Scan
    from invulnerable.models.vulnerability_history import VulnerabilityHistory


class VulnerabilityKey(NamedTuple):
    """Identity of a vulnerability across scans and images."""

    cve_id: str
    package_name: str
    package_version: str


class Vulnerability(Base):
    """A CVE affecting one package version, tracked through its lifecycle."""

    __tablename__ = "vulnerabilities"
    __table_args__ = (
        UniqueConstraint("cve_id", "package_name", "package_version", name="uix_vuln_identity"),
        Index("ix_vuln_severity_status", "severity", "status"),
        Index("ix_vuln_imagescan", "imagescan_namespace", "imagescan_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity
    cve_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    package_name: Mapped[str] = mapped_column(String(512), nullable=False)
    package_version: Mapped[str] = mapped_column(String(255), nullable=False)

    # Scanner metadata (refreshed on every re-detection)
    package_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="Unknown")
    fix_version: Mapped[str | None] = mapped_column(String(255), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VulnerabilityStatus.ACTIVE.value
    )
    first_detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)
    remediation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Scanning policy that most recently reported this vulnerability (notification routing)
    imagescan_namespace: Mapped[str | None] = mapped_column(String(253), nullable=True)
    imagescan_name: Mapped[str | None] = mapped_column(String(253), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=get_now, onupdate=get_now
    )

    scans: Mapped[list[Scan]] = relationship(
        "Scan", secondary=scan_vulnerabilities, back_populates="vulnerabilities"
    )
    history: Mapped[list[VulnerabilityHistory]] = relationship(
        "VulnerabilityHistory", back_populates="vulnerability", cascade="all, delete-orphan"
    )

    @property
    def key(self) -> VulnerabilityKey:
        return VulnerabilityKey(self.cve_id, self.package_name, self.package_version)

    @property
    def has_fix(self) -> bool:
        return bool(self.fix_version)
