"""
Calculation Audit Trail

Append-only record of every calculation attempt and every human-visible
change to an automated deadline.

Core Principles:
1. A snapshot stores the exact inputs and outputs of one calculation.
2. Append-only - snapshots are never updated or deleted (enforced on flush).
3. Corrections append a new snapshot; the original is never lost.
4. Sequence numbers come from a single serialized counter.
"""
import threading
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import (
    ActorType, AuditSequenceDB, CalculationSource, DeadlineCalculationDB, DeadlineTrailDB,
)
from .date_engine import CalculationRequest, CalculationResult, normalize_trigger
from .errors import AuditIntegrityError


AUDIT_SEQUENCE_NAME = "deadline_calculations"

# Serializes counter increments inside this process; the row lock covers other processes
_sequence_lock = threading.Lock()


# =============================================================================
# IMMUTABILITY GUARDS
# =============================================================================

@event.listens_for(DeadlineCalculationDB, "before_update")
def _reject_snapshot_update(mapper, connection, target):
    state = inspect(target)
    changed = [
        prop.key for prop in mapper.column_attrs
        if state.attrs[prop.key].history.has_changes()
    ]
    if changed:
        raise AuditIntegrityError(
            f"Calculation snapshot {target.id} is immutable (attempted change: {', '.join(changed)})"
        )


@event.listens_for(DeadlineCalculationDB, "before_delete")
def _reject_snapshot_delete(mapper, connection, target):
    raise AuditIntegrityError(f"Calculation snapshot {target.id} cannot be deleted")


# =============================================================================
# AUDIT TRAIL SERVICE
# =============================================================================

class AuditTrail:
    """
    Writes calculation snapshots and deadline trail events.

    Writes are flushed, never committed: the caller owns the transaction so a
    snapshot and the deadline it backs land (or roll back) together.
    """

    def __init__(self, db: Session):
        self.db = db

    def next_sequence_number(self) -> int:
        """Allocate the next audit sequence number."""
        with _sequence_lock:
            counter = self.db.query(AuditSequenceDB).filter(
                AuditSequenceDB.name == AUDIT_SEQUENCE_NAME
            ).with_for_update().first()

            if counter is None:
                counter = AuditSequenceDB(name=AUDIT_SEQUENCE_NAME, value=0)
                self.db.add(counter)

            counter.value += 1
            self.db.flush()
            return counter.value

    def record_calculation(
        self,
        request: CalculationRequest,
        result: CalculationResult,
        source: CalculationSource,
        automated_deadline_id: Optional[str] = None,
        case_id: Optional[str] = None,
        template_id: Optional[str] = None,
        court_rule_id: Optional[str] = None,
        override_reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> DeadlineCalculationDB:
        """
        Append an immutable calculation snapshot.

        Raises:
            AuditIntegrityError: if the snapshot cannot be written
        """
        try:
            snapshot = DeadlineCalculationDB(
                id=str(uuid4()),
                sequence_number=self.next_sequence_number(),
                source=source,
                automated_deadline_id=automated_deadline_id,
                case_id=case_id,
                template_id=template_id,
                court_rule_id=court_rule_id,
                jurisdiction_id=request.jurisdiction_id,
                trigger_date=normalize_trigger(request.trigger_date),
                time_limit=request.time_limit,
                time_limit_unit=request.time_limit_unit,
                calculation_method=request.calculation_method,
                include_weekends=request.include_weekends,
                include_holidays=request.include_holidays,
                business_days_only=request.business_days_only,
                custom_strategy=request.custom_strategy,
                calculated_date=result.calculated_date,
                actual_days=result.actual_days,
                skipped_days=result.skipped_days,
                skipped_details=dict(result.skipped_details),
                calculation_steps=[step.to_dict() for step in result.steps],
                warnings=list(result.warnings),
                override_reason=override_reason,
                actor_id=actor_id,
            )
            self.db.add(snapshot)
            self.db.flush()
        except SQLAlchemyError as e:
            raise AuditIntegrityError(f"Failed to persist calculation snapshot: {e}")

        return snapshot

    def record_event(
        self,
        automated_deadline_id: str,
        event_type: str,
        description: str,
        actor: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeadlineTrailDB:
        """Append a human-readable trail entry for an automated deadline."""
        entry = DeadlineTrailDB(
            id=str(uuid4()),
            automated_deadline_id=automated_deadline_id,
            event_type=event_type,
            actor=actor,
            actor_id=actor_id,
            description=description,
            event_metadata=metadata,
        )
        self.db.add(entry)
        return entry

    def calculations_for(self, automated_deadline_id: str) -> List[DeadlineCalculationDB]:
        """All snapshots for a deadline, oldest first."""
        return self.db.query(DeadlineCalculationDB).filter(
            DeadlineCalculationDB.automated_deadline_id == automated_deadline_id
        ).order_by(DeadlineCalculationDB.sequence_number).all()
