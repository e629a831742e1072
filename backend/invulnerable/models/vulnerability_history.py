"""Vulnerability history (audit trail) model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invulnerable.db import Base
from invulnerable.utils.timezone import get_now

if TYPE_CHECKING:
    from invulnerable.models.vulnerability import Vulnerability


class VulnerabilityHistory(Base):
    """Append-only record of one field change on a vulnerability."""

    __tablename__ = "vulnerability_history"
    __table_args__ = (Index("ix_history_vuln_changed", "vulnerability_id", "changed_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vulnerability_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vulnerabilities.id", ondelete="CASCADE"), nullable=False
    )

    field_name: Mapped[str] = mapped_column(String(50), nullable=False)  # status, notes
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(255), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)

    # Image the change was made from, if the caller knew it
    image_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_name: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    vulnerability: Mapped[Vulnerability] = relationship("Vulnerability", back_populates="history")
