"""
Automated Deadline API Routes

Trigger-driven deadline generation, listing, manual override and the
calculation history behind each deadline.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_actor
from ..database import get_db
from ..models.db_models import DeadlineStatus
from ..services.deadlines import (
    AutomatedDeadlineFilter,
    DeadlineGenerator,
    DeadlineOverrideService,
    DeadlineQueryService,
    DeadlineServiceError,
    OverrideRequest,
    TriggerEventInput,
)
from ..services.deadlines.queries import serialize_automated_deadline
from .errors import to_http_exception


router = APIRouter(prefix="/automated-deadlines", tags=["automated-deadlines"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class TriggerRequest(BaseModel):
    """Case-lifecycle trigger event."""
    case_id: str = Field(..., description="Case the event happened on")
    trigger_event: str = Field(..., description="Trigger event (e.g. COMPLAINT_FILED)")
    trigger_date: datetime = Field(..., description="When the event happened")
    custom_event_name: Optional[str] = Field(None, description="Label for CUSTOM_EVENT")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Free-form event context")


class OverrideBody(BaseModel):
    """Manual correction from the review UI."""
    automated_deadline_id: str
    new_due_date: Optional[datetime] = None
    status: Optional[str] = None
    reason: Optional[str] = Field(None, description="Required; empty reasons are rejected")
    notes: Optional[str] = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=dict)
async def list_automated_deadlines(
    case_id: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """List automated deadlines with pagination and a status breakdown."""
    try:
        status_filter = DeadlineStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown deadline status: {status}")

    service = DeadlineQueryService(db)
    try:
        return service.list_automated_deadlines(
            AutomatedDeadlineFilter(case_id=case_id, status=status_filter, page=page, limit=limit)
        )
    except DeadlineServiceError as e:
        raise to_http_exception(e)


@router.post("/trigger", response_model=dict)
async def trigger_deadlines(
    request: TriggerRequest,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """
    Generate deadlines for a trigger event.

    Returns generated deadlines and per-template failures together.
    Re-sending the same (case, event, date) returns the first run's result.
    """
    generator = DeadlineGenerator(db)
    try:
        result = generator.generate(TriggerEventInput(
            case_id=request.case_id,
            trigger_event=request.trigger_event,
            trigger_date=request.trigger_date,
            custom_event_name=request.custom_event_name,
            metadata=request.metadata,
        ))
    except DeadlineServiceError as e:
        raise to_http_exception(e)

    return result.to_dict()


@router.put("/override", response_model=dict)
async def override_deadline(
    request: OverrideBody,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """Apply a manual override. A reason is mandatory."""
    service = DeadlineOverrideService(db)
    try:
        automated = service.override(
            request.automated_deadline_id,
            OverrideRequest(
                reason=request.reason,
                new_due_date=request.new_due_date,
                status=request.status,
                notes=request.notes,
            ),
            actor_id=actor_id,
        )
    except DeadlineServiceError as e:
        raise to_http_exception(e)

    return {
        "message": "Deadline overridden successfully",
        "deadline": serialize_automated_deadline(automated),
    }


@router.get("/{automated_deadline_id}/calculations", response_model=dict)
async def get_calculation_history(
    automated_deadline_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """Every calculation snapshot and trail event for a deadline, oldest first."""
    service = DeadlineOverrideService(db)
    try:
        return service.history(automated_deadline_id)
    except DeadlineServiceError as e:
        raise to_http_exception(e)
