"""
Deadline Status

PENDING → DUE_SOON → OVERDUE are derived from the clock, the due date and the
reminder offsets; they are never the result of a manual action.
COMPLETED | COMPLETED_LATE | EXTENDED | WAIVED | CANCELLED are terminal and
reachable from any non-terminal status via override.

Readers derive the current status; the reconciliation pass persists it so
downstream collaborators can query by status.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import (
    ActorType, AutomatedDeadlineDB, DeadlineRecordStatus, DeadlineStatus, utcnow,
)
from .audit_trail import AuditTrail


logger = logging.getLogger(__name__)


# =============================================================================
# STATUS CONFIGURATION
# =============================================================================

STATUS_CONFIG = {
    DeadlineStatus.PENDING: {
        "description": "Deadline tracked, outside every reminder window",
        "terminal": False,
        "time_derived": True,
        "deadline_status": DeadlineRecordStatus.PENDING,
    },
    DeadlineStatus.DUE_SOON: {
        "description": "Inside the widest reminder window",
        "terminal": False,
        "time_derived": True,
        "deadline_status": DeadlineRecordStatus.PENDING,
    },
    DeadlineStatus.OVERDUE: {
        "description": "Due date has passed without a terminal outcome",
        "terminal": False,
        "time_derived": True,
        "deadline_status": DeadlineRecordStatus.OVERDUE,
    },
    DeadlineStatus.COMPLETED: {
        "description": "Completed on time",
        "terminal": True,
        "time_derived": False,
        "deadline_status": DeadlineRecordStatus.COMPLETED,
    },
    DeadlineStatus.COMPLETED_LATE: {
        "description": "Completed after the due date",
        "terminal": True,
        "time_derived": False,
        "deadline_status": DeadlineRecordStatus.COMPLETED,
    },
    DeadlineStatus.EXTENDED: {
        "description": "Extension granted",
        "terminal": True,
        "time_derived": False,
        "deadline_status": None,  # Linked deadline keeps its status
    },
    DeadlineStatus.WAIVED: {
        "description": "Requirement waived",
        "terminal": True,
        "time_derived": False,
        "deadline_status": DeadlineRecordStatus.CANCELLED,
    },
    DeadlineStatus.CANCELLED: {
        "description": "No longer applicable",
        "terminal": True,
        "time_derived": False,
        "deadline_status": DeadlineRecordStatus.CANCELLED,
    },
}

TERMINAL_STATUSES = frozenset(s for s, c in STATUS_CONFIG.items() if c["terminal"])
OPEN_STATUSES = frozenset(s for s, c in STATUS_CONFIG.items() if not c["terminal"])


def is_terminal(status: DeadlineStatus) -> bool:
    return status in TERMINAL_STATUSES


def downstream_status(status: DeadlineStatus) -> Optional[DeadlineRecordStatus]:
    """Status the linked calendar deadline should take, if any."""
    return STATUS_CONFIG[status]["deadline_status"]


def derive_status(
    due_date: datetime,
    reminder_days: Optional[Iterable[int]],
    recorded_status: Optional[DeadlineStatus],
    now: datetime,
) -> DeadlineStatus:
    """Current status from the clock; a recorded terminal status always wins."""
    if recorded_status in TERMINAL_STATUSES:
        return recorded_status
    if now > due_date:
        return DeadlineStatus.OVERDUE
    offsets = [int(d) for d in (reminder_days or []) if int(d) > 0]
    if offsets and now >= due_date - timedelta(days=max(offsets)):
        return DeadlineStatus.DUE_SOON
    return DeadlineStatus.PENDING


def can_transition(from_status: DeadlineStatus, to_status: DeadlineStatus) -> Tuple[bool, str]:
    """
    Check a manual status change.

    Returns (allowed, reason)
    """
    if from_status == DeadlineStatus.EXTENDED and to_status == DeadlineStatus.EXTENDED:
        return True, "Further extension"
    if is_terminal(from_status):
        return False, f"Deadline is already {from_status.value}"
    if STATUS_CONFIG[to_status]["time_derived"]:
        return False, f"{to_status.value} is derived from the due date and cannot be set manually"
    return True, "Transition allowed"


# =============================================================================
# RECONCILIATION
# =============================================================================

class StatusReconciler:
    """
    Persists derived statuses for every open automated deadline.

    Usage:
        reconciler = StatusReconciler(db)
        summary = reconciler.reconcile()
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.audit = AuditTrail(db)

    def reconcile(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or self.clock()
        updated = []
        errors = []

        open_deadlines = self.db.query(AutomatedDeadlineDB).filter(
            AutomatedDeadlineDB.status.in_(list(OPEN_STATUSES))
        ).all()

        for automated in open_deadlines:
            try:
                derived = derive_status(automated.due_date, automated.reminder_days, automated.status, now)
                if derived == automated.status:
                    continue

                previous = automated.status
                automated.status = derived

                linked_status = downstream_status(derived)
                deadline = automated.deadline
                if (
                    deadline is not None
                    and linked_status is not None
                    and deadline.status in (DeadlineRecordStatus.PENDING, DeadlineRecordStatus.IN_PROGRESS,
                                            DeadlineRecordStatus.OVERDUE)
                ):
                    deadline.status = linked_status

                self.audit.record_event(
                    automated_deadline_id=automated.id,
                    event_type="status_reconciled",
                    description=f"Status changed from {previous.value} to {derived.value}",
                    actor=ActorType.SYSTEM,
                    metadata={"from_status": previous.value, "to_status": derived.value},
                )
                updated.append({
                    "automated_deadline_id": automated.id,
                    "from_status": previous.value,
                    "to_status": derived.value,
                })
            except Exception as e:
                errors.append({
                    "automated_deadline_id": automated.id,
                    "error": str(e),
                })
                logger.error(f"Status reconciliation failed for {automated.id}: {e}")

        self.db.commit()

        logger.info(f"Reconciled {len(open_deadlines)} open deadlines: {len(updated)} updated, {len(errors)} errors")

        return {
            "run_date": now.isoformat(),
            "checked": len(open_deadlines),
            "updated": len(updated),
            "errors": len(errors),
            "details": {
                "updated": updated,
                "errors": errors,
            },
        }

    def upcoming(self, days_ahead: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Open automated deadlines due in the next N days."""
        now = now or self.clock()
        horizon = now + timedelta(days=days_ahead)

        deadlines = self.db.query(AutomatedDeadlineDB).filter(
            AutomatedDeadlineDB.status.in_(list(OPEN_STATUSES)),
            AutomatedDeadlineDB.due_date >= now,
            AutomatedDeadlineDB.due_date <= horizon,
        ).order_by(AutomatedDeadlineDB.due_date).all()

        return [
            {
                "automated_deadline_id": d.id,
                "case_id": d.case_id,
                "title": d.title,
                "due_date": d.due_date.isoformat(),
                "days_remaining": (d.due_date.date() - now.date()).days,
                "status": derive_status(d.due_date, d.reminder_days, d.status, now).value,
            }
            for d in deadlines
        ]
