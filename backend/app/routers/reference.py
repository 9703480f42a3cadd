"""
Reference Data API Routes

Read-only views of court rules and jurisdiction holiday calendars.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_actor
from ..database import get_db
from ..services.deadlines import (
    CourtRuleFilter,
    DeadlineQueryService,
    DeadlineServiceError,
    HolidayCalendarService,
)
from .errors import to_http_exception


router = APIRouter(tags=["reference"])


@router.get("/court-rules", response_model=dict)
async def list_court_rules(
    jurisdiction_id: Optional[str] = None,
    category: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    rules = DeadlineQueryService(db).list_court_rules(
        CourtRuleFilter(jurisdiction_id=jurisdiction_id, category=category, include_inactive=include_inactive)
    )
    return {
        "count": len(rules),
        "court_rules": [
            {
                "id": r.id,
                "jurisdiction_id": r.jurisdiction_id,
                "rule_number": r.rule_number,
                "title": r.title,
                "description": r.description,
                "category": r.category,
                "is_active": r.is_active,
            }
            for r in rules
        ],
    }


@router.get("/jurisdictions/{jurisdiction_id}/holidays", response_model=dict)
async def list_jurisdiction_holidays(
    jurisdiction_id: str,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """Holidays on file for a jurisdiction (recurring ones included for any year)."""
    try:
        holidays = HolidayCalendarService(db).list_holidays(jurisdiction_id, year=year)
    except DeadlineServiceError as e:
        raise to_http_exception(e)

    return {
        "jurisdiction_id": jurisdiction_id,
        "year": year,
        "count": len(holidays),
        "holidays": [
            {
                "id": h.id,
                "date": h.date.isoformat(),
                "label": h.label,
                "is_recurring": h.is_recurring,
                "affects_courts": h.affects_courts,
                "court_only": h.court_only,
                "is_active": h.is_active,
            }
            for h in holidays
        ],
    }
