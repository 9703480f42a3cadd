"""Deadline service error → HTTP status mapping shared by the routers."""
from fastapi import HTTPException

from ..services.deadlines.errors import (
    AuditIntegrityError, CalculationError, DeadlineServiceError, NotFoundError, PersistenceError,
    ValidationError,
)


def to_http_exception(error: DeadlineServiceError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, CalculationError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, (PersistenceError, AuditIntegrityError)):
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
