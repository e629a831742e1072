"""Webhook configuration model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from invulnerable.constants import DEFAULT_MIN_SEVERITY, WebhookFormat
from invulnerable.db import Base
from invulnerable.utils.timezone import get_now


class WebhookConfig(Base):
    """
    Notification settings for one scanning policy (ImageScan resource).

    Scan-completion settings and status-change settings share the webhook URL
    and payload format but are filtered independently.
    """

    __tablename__ = "webhook_configs"
    __table_args__ = (UniqueConstraint("namespace", "name", name="uix_webhook_config_policy"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    namespace: Mapped[str] = mapped_column(String(253), nullable=False)
    name: Mapped[str] = mapped_column(String(253), nullable=False)

    webhook_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    webhook_format: Mapped[str] = mapped_column(String(50), default=WebhookFormat.SLACK.value)

    # Scan completion
    scan_min_severity: Mapped[str] = mapped_column(String(50), default=DEFAULT_MIN_SEVERITY)
    scan_only_fixable: Mapped[bool] = mapped_column(Boolean, default=False)

    # Status change
    status_change_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    status_change_min_severity: Mapped[str] = mapped_column(
        String(50), default=DEFAULT_MIN_SEVERITY
    )
    status_change_only_fixable: Mapped[bool] = mapped_column(Boolean, default=False)
    # e.g. ["active→fixed", "active→ignored"]; empty means every transition
    status_change_transitions: Mapped[list[str]] = mapped_column(JSON, default=list)
    status_change_include_notes: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=get_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=get_now, onupdate=get_now
    )
