"""
Vulnerability status tracking with an append-only audit trail.

Every status or notes change goes through VulnerabilityStatusTracker so that
exactly one history row is written per changed field. History writes are
best-effort: the status change is committed even when its audit row cannot
be written, and the failure is reported back through
``StatusUpdateResult.warnings`` instead of an exception.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.constants import VALID_STATUSES, VulnerabilityStatus
from invulnerable.exceptions import AuditWriteError, NotFoundError, ValidationError
from invulnerable.models import Vulnerability
from invulnerable.repositories.vulnerability_repository import VulnerabilityRepository
from invulnerable.utils.log_redaction import sanitize_for_log
from invulnerable.utils.timezone import get_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateContext:
    """Image the change was made from; recorded on history rows for notification routing."""

    image_id: int | None = None
    image_name: str | None = None


@dataclass(frozen=True)
class FieldChange:
    """One field that actually changed on one vulnerability."""

    vulnerability_id: int
    field_name: str
    old_value: str | None
    new_value: str | None


@dataclass
class StatusUpdateResult:
    """Outcome of an update call, with audit failures as warnings."""

    updated_ids: list[int] = field(default_factory=list)
    changes: list[FieldChange] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def changes_for(self, vulnerability_id: int) -> list[FieldChange]:
        return [c for c in self.changes if c.vulnerability_id == vulnerability_id]

    def status_change_for(self, vulnerability_id: int) -> FieldChange | None:
        for change in self.changes_for(vulnerability_id):
            if change.field_name == "status":
                return change
        return None


def validate_status(status: str | None) -> None:
    """Raise ValidationError unless ``status`` is None or a recognised status."""
    if status is not None and status not in VALID_STATUSES:
        raise ValidationError(
            f"invalid status: {status} (must be one of: {', '.join(VALID_STATUSES)})"
        )


class VulnerabilityStatusTracker:
    """Applies status/notes changes and records their history."""

    def __init__(self, db: AsyncSession):
        """
        Initialize the tracker.

        Args:
            db: AsyncSession database session
        """
        self.db = db
        self.repo = VulnerabilityRepository(db)

    async def update(
        self,
        vulnerability_id: int,
        *,
        status: str | None = None,
        notes: str | None = None,
        actor: str,
        context: UpdateContext | None = None,
        now: datetime | None = None,
    ) -> StatusUpdateResult:
        """
        Update a single vulnerability.

        Args:
            vulnerability_id: Vulnerability to update
            status: New status, or None to leave unchanged
            notes: New notes, or None to leave unchanged
            actor: Identity recorded as updated_by and changed_by
            context: Optional image context for the history rows
            now: Change time, defaults to the current UTC time

        Returns:
            StatusUpdateResult

        Raises:
            ValidationError: ``status`` is not a recognised value
            NotFoundError: the vulnerability does not exist
        """
        return await self.bulk_update(
            [vulnerability_id], status=status, notes=notes, actor=actor, context=context, now=now
        )

    async def bulk_update(
        self,
        vulnerability_ids: list[int],
        *,
        status: str | None = None,
        notes: str | None = None,
        actor: str,
        context: UpdateContext | None = None,
        now: datetime | None = None,
    ) -> StatusUpdateResult:
        """
        Apply the same status/notes to many vulnerabilities.

        All IDs are resolved before anything is written, so an unknown ID fails
        the whole call. Each vulnerability is then compared against its own
        prior values: unchanged vulnerabilities are skipped entirely and each
        changed field gets its own history row. Everything is committed once.

        Raises:
            ValidationError: ``status`` is not a recognised value
            NotFoundError: any of the IDs does not exist
        """
        validate_status(status)
        result = StatusUpdateResult()
        if not vulnerability_ids:
            return result

        now = now or get_now()
        context = context or UpdateContext()

        vulnerabilities: list[Vulnerability] = []
        for vulnerability_id in dict.fromkeys(vulnerability_ids):
            vuln = await self.repo.get_by_id(vulnerability_id)
            if vuln is None:
                raise NotFoundError("vulnerability", vulnerability_id)
            vulnerabilities.append(vuln)

        for vuln in vulnerabilities:
            await self._apply(vuln, status, notes, actor, context, now, result)

        if result.updated_ids:
            await self.db.commit()
            logger.info(
                f"Updated {len(result.updated_ids)}/{len(vulnerabilities)} vulnerabilities "
                f"by {sanitize_for_log(actor)}"
            )

        return result

    async def _apply(
        self,
        vuln: Vulnerability,
        status: str | None,
        notes: str | None,
        actor: str,
        context: UpdateContext,
        now: datetime,
        result: StatusUpdateResult,
    ) -> None:
        changes: list[FieldChange] = []
        if status is not None and status != vuln.status:
            changes.append(FieldChange(vuln.id, "status", vuln.status, status))
        if notes is not None and notes != (vuln.notes or ""):
            changes.append(FieldChange(vuln.id, "notes", vuln.notes or "", notes))

        if not changes:
            return

        if status is not None and status != vuln.status:
            vuln.status = status
            if status == VulnerabilityStatus.FIXED.value and vuln.remediation_date is None:
                vuln.remediation_date = now
        if notes is not None:
            vuln.notes = notes
        vuln.updated_by = actor

        # The UPDATE must be flushed before any savepoint so a failed audit row
        # only rolls back itself
        await self.db.flush()

        result.updated_ids.append(vuln.id)
        for change in changes:
            result.changes.append(change)
            await self._record_history(change, actor, context, now, result)

    async def _record_history(
        self,
        change: FieldChange,
        actor: str,
        context: UpdateContext,
        now: datetime,
        result: StatusUpdateResult,
    ) -> None:
        try:
            async with self.db.begin_nested():
                await self.repo.add_history(
                    change.vulnerability_id,
                    change.field_name,
                    change.old_value,
                    change.new_value,
                    actor,
                    image_id=context.image_id,
                    image_name=context.image_name,
                    changed_at=now,
                )
        except SQLAlchemyError as e:
            error = AuditWriteError(change.vulnerability_id, change.field_name, e)
            logger.error(str(error), exc_info=True)
            result.warnings.append(str(error))
