"""
Deadline Calculator API Routes

Standalone date calculation, single and bulk. Nothing is generated; a
calculation is only recorded in the audit trail when save_calculation is set.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import get_current_actor
from ..database import get_db
from ..models.db_models import CalculationSource
from ..services.deadlines import (
    AuditTrail,
    CalculationRequest,
    DeadlineCalculator,
    DeadlineServiceError,
    PersistenceError,
)
from .errors import to_http_exception


router = APIRouter(prefix="/deadline-calculator", tags=["deadline-calculator"])


class CalculationInput(BaseModel):
    """Calculation parameters, same shape as a deadline template."""
    trigger_date: datetime
    time_limit: float = Field(..., description="Number of units to add")
    time_limit_unit: str = "DAYS"
    calculation_method: str = "BUSINESS_DAYS"
    include_weekends: bool = True
    include_holidays: bool = True
    business_days_only: bool = False
    jurisdiction_id: Optional[str] = None
    custom_strategy: Optional[str] = None
    case_id: Optional[str] = None
    save_calculation: bool = False

    def to_request(self) -> CalculationRequest:
        return CalculationRequest(
            trigger_date=self.trigger_date,
            time_limit=self.time_limit,
            time_limit_unit=self.time_limit_unit,
            calculation_method=self.calculation_method,
            include_weekends=self.include_weekends,
            include_holidays=self.include_holidays,
            business_days_only=self.business_days_only,
            jurisdiction_id=self.jurisdiction_id,
            custom_strategy=self.custom_strategy,
        )


class BulkCalculationInput(BaseModel):
    calculations: List[CalculationInput] = Field(..., min_length=1, max_length=100)


def _save(db: Session, audit: AuditTrail, item: CalculationInput, request, result, actor_id: str) -> str:
    snapshot = audit.record_calculation(
        request=request,
        result=result,
        source=CalculationSource.STANDALONE,
        case_id=item.case_id,
        actor_id=actor_id,
    )
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Failed to save calculation: {e}")
    return snapshot.id


@router.post("", response_model=dict)
async def calculate_deadline(
    item: CalculationInput,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """Calculate one due date with its full trace."""
    calculator = DeadlineCalculator(db)
    request = item.to_request()
    try:
        result = calculator.calculate(request)
        calculation_id = None
        if item.save_calculation:
            calculation_id = _save(db, AuditTrail(db), item, request, result, actor_id)
    except DeadlineServiceError as e:
        db.rollback()
        raise to_http_exception(e)

    return {
        "trigger_date": request.trigger_date.isoformat(),
        "time_limit": request.time_limit,
        "time_limit_unit": item.time_limit_unit,
        "calculation_method": item.calculation_method,
        "calculation_id": calculation_id,
        **result.to_dict(),
    }


@router.post("/bulk", response_model=dict)
async def calculate_bulk(
    body: BulkCalculationInput,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_current_actor),
):
    """Calculate up to 100 due dates; each failure is reported without stopping the rest."""
    calculator = DeadlineCalculator(db)
    audit = AuditTrail(db)
    items = calculator.calculate_bulk([c.to_request() for c in body.calculations])

    results = []
    for item in items:
        entry = {"index": item.index, "success": item.succeeded}
        if item.succeeded:
            entry.update(item.result.to_dict())
            source = body.calculations[item.index]
            if source.save_calculation:
                try:
                    entry["calculation_id"] = _save(db, audit, source, item.request, item.result, actor_id)
                except DeadlineServiceError as e:
                    db.rollback()
                    entry = {"index": item.index, "success": False,
                             "error": str(e), "error_type": type(e).__name__}
        else:
            entry["error"] = item.error
            entry["error_type"] = item.error_type
        results.append(entry)

    successful = sum(1 for r in results if r["success"])
    return {
        "results": results,
        "summary": {
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful,
        },
    }
