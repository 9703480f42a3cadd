"""
Read-side queries for automated deadlines and court rules.
Filters are explicit structs so routers never build ad-hoc queries.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models.db_models import AutomatedDeadlineDB, CourtRuleDB, DeadlineStatus, utcnow
from .errors import ValidationError
from .status import derive_status


MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class AutomatedDeadlineFilter:
    case_id: Optional[str] = None
    status: Optional[DeadlineStatus] = None
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class CourtRuleFilter:
    jurisdiction_id: Optional[str] = None
    category: Optional[str] = None
    include_inactive: bool = False


def serialize_automated_deadline(d: AutomatedDeadlineDB, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    return {
        "id": d.id,
        "case_id": d.case_id,
        "template_id": d.template_id,
        "template_name": d.template.name if d.template else None,
        "court_rule_id": d.court_rule_id,
        "title": d.title,
        "description": d.description,
        "trigger_event": d.trigger_event.value,
        "trigger_date": d.trigger_date.isoformat(),
        "due_date": d.due_date.isoformat(),
        "original_days": d.original_days,
        "actual_days": d.actual_days,
        "calculation_method": d.calculation_method.value,
        "reminder_days": d.reminder_days or [],
        "status": d.status.value,
        "current_status": derive_status(d.due_date, d.reminder_days, d.status, now).value,
        "extension_count": d.extension_count or 0,
        "is_manual_override": bool(d.is_manual_override),
        "override_reason": d.override_reason,
        "overridden_by": d.overridden_by,
        "overridden_at": d.overridden_at.isoformat() if d.overridden_at else None,
        "deadline_id": d.deadline_id,
        "created_at": d.created_at.isoformat() if d.created_at else None,
    }


class DeadlineQueryService:
    """Paginated listing with a per-status breakdown."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def list_automated_deadlines(self, filters: AutomatedDeadlineFilter) -> Dict[str, Any]:
        if filters.page < 1:
            raise ValidationError("page must be >= 1")
        if filters.limit < 1 or filters.limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        q = self.db.query(AutomatedDeadlineDB)
        if filters.case_id:
            q = q.filter(AutomatedDeadlineDB.case_id == filters.case_id)

        breakdown_rows = q.with_entities(
            AutomatedDeadlineDB.status, func.count(AutomatedDeadlineDB.id)
        ).group_by(AutomatedDeadlineDB.status).all()
        breakdown = {status.value: 0 for status in DeadlineStatus}
        for status, count in breakdown_rows:
            breakdown[status.value] = count

        if filters.status is not None:
            q = q.filter(AutomatedDeadlineDB.status == filters.status)

        total = q.count()
        rows = q.order_by(AutomatedDeadlineDB.due_date).offset(
            (filters.page - 1) * filters.limit
        ).limit(filters.limit).all()

        now = utcnow()
        return {
            "deadlines": [serialize_automated_deadline(d, now) for d in rows],
            "pagination": {
                "page": filters.page,
                "limit": filters.limit,
                "total": total,
                "pages": (total + filters.limit - 1) // filters.limit,
            },
            "status_breakdown": breakdown,
        }

    def list_court_rules(self, filters: CourtRuleFilter) -> List[CourtRuleDB]:
        q = self.db.query(CourtRuleDB)
        if filters.jurisdiction_id:
            q = q.filter(CourtRuleDB.jurisdiction_id == filters.jurisdiction_id)
        if filters.category:
            q = q.filter(CourtRuleDB.category == filters.category)
        if not filters.include_inactive:
            q = q.filter(CourtRuleDB.is_active.is_(True))
        return q.order_by(CourtRuleDB.rule_number).all()
