"""
Deadline Override Service

Manual correction of a generated deadline by a human reviewer.

Rules:
- A reason is mandatory; an empty reason is rejected before anything changes.
- The original calculation snapshot is never touched. Every accepted override
  appends a new snapshot with source OVERRIDE, so the trail shows the original
  computation and each correction.
- Status changes follow status.can_transition(); EXTENDED additionally needs
  an extendable template with extensions left.
- Terminal statuses propagate to the linked calendar deadline.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import (
    ActorType, AutomatedDeadlineDB, CalculationSource, DeadlineRecordStatus, DeadlineStatus,
    TimeLimitUnit, utcnow,
)
from .audit_trail import AuditTrail
from .date_engine import CalculationRequest, CalculationResult, CalculationStep, normalize_trigger
from .errors import (
    AuditIntegrityError, DeadlineServiceError, NotFoundError, PersistenceError, ValidationError,
)
from .status import can_transition, derive_status, downstream_status


logger = logging.getLogger(__name__)


@dataclass
class OverrideRequest:
    """Reviewer input. At least one of new_due_date / status should be set."""
    reason: str
    new_due_date: Optional[Union[datetime, str]] = None
    status: Optional[Union[DeadlineStatus, str]] = None
    notes: Optional[str] = None


class DeadlineOverrideService:
    """
    Applies manual overrides to automated deadlines.

    Usage:
        service = DeadlineOverrideService(db)
        deadline = service.override(automated_deadline_id, OverrideRequest(...), actor_id)
    """

    def __init__(self, db_session: Session, clock=utcnow):
        """Initialize with database session."""
        self.db = db_session
        self.clock = clock
        self.audit = AuditTrail(db_session)

    def override(
        self,
        automated_deadline_id: str,
        request: OverrideRequest,
        actor_id: Optional[str] = None,
    ) -> AutomatedDeadlineDB:
        """
        Apply an override and commit it together with its audit snapshot.

        Raises:
            ValidationError: empty reason, bad date, disallowed status change
            NotFoundError: unknown automated deadline
            AuditIntegrityError: snapshot could not be written (nothing is committed)
        """
        reason = (request.reason or "").strip()
        if not reason:
            raise ValidationError("Override reason is required")

        new_due_date = normalize_trigger(request.new_due_date) if request.new_due_date is not None else None
        new_status = self._parse_status(request.status)
        if new_due_date is None and new_status is None:
            raise ValidationError("Override must change the due date or the status")

        automated = self.db.query(AutomatedDeadlineDB).filter(
            AutomatedDeadlineDB.id == automated_deadline_id
        ).first()
        if automated is None:
            raise NotFoundError(f"Automated deadline {automated_deadline_id} not found")

        if new_status is not None:
            self._check_status_change(automated, new_status)

        now = self.clock()
        previous_due = automated.due_date
        previous_status = automated.status

        try:
            if new_due_date is not None:
                automated.due_date = new_due_date
                automated.actual_days = (new_due_date.date() - automated.trigger_date.date()).days

            if new_status is not None:
                automated.status = new_status
                if new_status == DeadlineStatus.EXTENDED:
                    automated.extension_count = (automated.extension_count or 0) + 1
            else:
                # Moving the due date re-derives the clock-driven status
                automated.status = derive_status(automated.due_date, automated.reminder_days, automated.status, now)

            automated.is_manual_override = True
            automated.override_reason = reason
            automated.overridden_by = actor_id
            automated.overridden_at = now

            self._propagate(automated, new_due_date, new_status, reason, request.notes, actor_id, now)

            snapshot = self._record_snapshot(automated, previous_due, reason, actor_id)

            changes = []
            if new_due_date is not None:
                changes.append(f"due date {previous_due.date().isoformat()} → {new_due_date.date().isoformat()}")
            if new_status is not None:
                changes.append(f"status {previous_status.value} → {new_status.value}")

            self.audit.record_event(
                automated_deadline_id=automated.id,
                event_type="overridden",
                description=f"Manual override ({'; '.join(changes)}): {reason}",
                actor=ActorType.USER,
                actor_id=actor_id,
                metadata={
                    "calculation_id": snapshot.id,
                    "previous_due_date": previous_due.isoformat(),
                    "previous_status": previous_status.value,
                    "notes": request.notes,
                },
            )
            self.db.commit()
        except DeadlineServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to save override: {e}")

        logger.info(
            f"Override applied to automated deadline {automated.id} by {actor_id or 'unknown'}: "
            f"status={automated.status.value}, due={automated.due_date.isoformat()}"
        )
        return automated

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _parse_status(self, value) -> Optional[DeadlineStatus]:
        if value is None or value == "":
            return None
        try:
            return DeadlineStatus(value)
        except ValueError:
            raise ValidationError(f"Unknown deadline status: {value}")

    def _check_status_change(self, automated: AutomatedDeadlineDB, new_status: DeadlineStatus) -> None:
        allowed, reason = can_transition(automated.status, new_status)
        if not allowed:
            raise ValidationError(reason)

        if new_status == DeadlineStatus.EXTENDED:
            template = automated.template
            if template is None or not template.is_extendable:
                raise ValidationError("Deadline template does not allow extensions")
            if template.max_extensions is not None and (automated.extension_count or 0) >= template.max_extensions:
                raise ValidationError(
                    f"Maximum extensions reached ({template.max_extensions})"
                )

    def _propagate(
        self,
        automated: AutomatedDeadlineDB,
        new_due_date: Optional[datetime],
        new_status: Optional[DeadlineStatus],
        reason: str,
        notes: Optional[str],
        actor_id: Optional[str],
        now: datetime,
    ) -> None:
        """Keep the linked calendar deadline in sync and append a note."""
        deadline = automated.deadline
        if deadline is None:
            return

        if new_due_date is not None:
            deadline.due_date = new_due_date

        if new_status is not None:
            linked = downstream_status(new_status)
            if linked is not None:
                deadline.status = linked
            if linked == DeadlineRecordStatus.COMPLETED:
                deadline.completed_at = now
                deadline.completed_by = actor_id
        elif automated.status == DeadlineStatus.OVERDUE:
            deadline.status = DeadlineRecordStatus.OVERDUE
        elif deadline.status == DeadlineRecordStatus.OVERDUE:
            deadline.status = DeadlineRecordStatus.PENDING

        note = f"[{now.strftime('%Y-%m-%d %H:%M')}] Manual override: {reason}"
        if notes:
            note += f" - {notes}"
        deadline.notes = f"{deadline.notes}\n{note}" if deadline.notes else note

    def _record_snapshot(
        self,
        automated: AutomatedDeadlineDB,
        previous_due: datetime,
        reason: str,
        actor_id: Optional[str],
    ):
        """Append the OVERRIDE snapshot against the original calculation inputs."""
        original = automated.calculations[0] if automated.calculations else None
        if original is not None:
            request = CalculationRequest(
                trigger_date=original.trigger_date,
                time_limit=original.time_limit,
                time_limit_unit=original.time_limit_unit,
                calculation_method=original.calculation_method,
                include_weekends=original.include_weekends,
                include_holidays=original.include_holidays,
                business_days_only=original.business_days_only,
                jurisdiction_id=original.jurisdiction_id,
                custom_strategy=original.custom_strategy,
            )
        else:
            request = CalculationRequest(
                trigger_date=automated.trigger_date,
                time_limit=automated.original_days,
                time_limit_unit=TimeLimitUnit.DAYS,
                calculation_method=automated.calculation_method,
            )

        result = CalculationResult(
            calculated_date=automated.due_date,
            actual_days=automated.actual_days,
            steps=[
                CalculationStep(automated.trigger_date, "STARTING_DATE", "Trigger date"),
                CalculationStep(previous_due, "PREVIOUS_DATE", "Due date before override"),
                CalculationStep(automated.due_date, "MANUAL_OVERRIDE", reason),
            ],
        )

        try:
            return self.audit.record_calculation(
                request=request,
                result=result,
                source=CalculationSource.OVERRIDE,
                automated_deadline_id=automated.id,
                case_id=automated.case_id,
                template_id=automated.template_id,
                court_rule_id=automated.court_rule_id,
                override_reason=reason,
                actor_id=actor_id,
            )
        except AuditIntegrityError:
            raise
        except Exception as e:
            raise AuditIntegrityError(f"Override snapshot write failed: {e}") from e

    def history(self, automated_deadline_id: str) -> Dict[str, Any]:
        """Deadline with every calculation snapshot and trail event, oldest first."""
        automated = self.db.query(AutomatedDeadlineDB).filter(
            AutomatedDeadlineDB.id == automated_deadline_id
        ).first()
        if automated is None:
            raise NotFoundError(f"Automated deadline {automated_deadline_id} not found")

        return {
            "automated_deadline_id": automated.id,
            "calculations": [serialize_calculation(c) for c in self.audit.calculations_for(automated.id)],
            "trail": [
                {
                    "event_type": t.event_type,
                    "actor": t.actor.value if t.actor else None,
                    "actor_id": t.actor_id,
                    "description": t.description,
                    "metadata": t.event_metadata,
                    "created_at": t.created_at.isoformat() if t.created_at else None,
                }
                for t in automated.trail
            ],
        }


def serialize_calculation(c) -> Dict[str, Any]:
    return {
        "id": c.id,
        "sequence_number": c.sequence_number,
        "source": c.source.value,
        "trigger_date": c.trigger_date.isoformat(),
        "time_limit": c.time_limit,
        "time_limit_unit": c.time_limit_unit.value,
        "calculation_method": c.calculation_method.value,
        "jurisdiction_id": c.jurisdiction_id,
        "calculated_date": c.calculated_date.isoformat(),
        "actual_days": c.actual_days,
        "skipped_days": c.skipped_days,
        "skipped_details": c.skipped_details,
        "calculation_steps": c.calculation_steps,
        "warnings": c.warnings,
        "override_reason": c.override_reason,
        "actor_id": c.actor_id,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }
