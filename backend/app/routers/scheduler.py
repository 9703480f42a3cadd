"""
Scheduler API Routes

Internal endpoints for system-automatic tasks.
Status reconciliation and upcoming-deadline monitoring.
"""
from fastapi import APIRouter, Depends, HTTPException, Header, Query
from sqlalchemy.orm import Session

from ..config import INTERNAL_API_KEY
from ..database import get_db
from ..services.deadlines import StatusReconciler


router = APIRouter(prefix="/internal", tags=["scheduler"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/deadline-reconcile", response_model=dict)
async def run_deadline_reconcile(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Persist derived statuses (DUE_SOON, OVERDUE) for every open automated deadline.

    Same pass the background runner makes; for cron-driven deployments.
    """
    reconciler = StatusReconciler(db)

    result = reconciler.reconcile()

    return {
        "task": "deadline_reconcile",
        **result,
    }


@router.get("/deadlines/upcoming", response_model=dict)
async def get_upcoming_deadlines(
    days_ahead: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Get upcoming deadlines for monitoring.
    """
    deadlines = StatusReconciler(db).upcoming(days_ahead)

    return {
        "days_ahead": days_ahead,
        "count": len(deadlines),
        "deadlines": deadlines,
    }
