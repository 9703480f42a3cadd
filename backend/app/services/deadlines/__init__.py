"""
Deadline Automation

Trigger event → matching templates → date engine → persisted deadline +
immutable calculation snapshot, with manual overrides and status upkeep.
"""
from .errors import (
    DeadlineServiceError,
    ValidationError,
    NotFoundError,
    CalculationError,
    UnsupportedMethodError,
    PersistenceError,
    AuditIntegrityError,
)
from .holiday_calendar import (
    HolidayCalendar,
    JurisdictionCalendar,
    HolidayCalendarService,
    build_calendar,
    federal_holidays,
    is_weekend,
)
from .date_engine import (
    CalculationRequest,
    CalculationResult,
    CalculationStep,
    CustomStrategyRegistry,
    BulkCalculationItem,
    DeadlineCalculator,
    compute,
    default_strategies,
)
from .template_registry import TemplateRegistry, TemplateSnapshot, TemplateQuery
from .audit_trail import AuditTrail
from .status import StatusReconciler, derive_status, can_transition
from .generator import (
    CaseResolver,
    DatabaseCaseResolver,
    DeadlineGenerator,
    GenerationResult,
    TemplateFailure,
    TriggerEventInput,
)
from .overrides import DeadlineOverrideService, OverrideRequest
from .queries import AutomatedDeadlineFilter, CourtRuleFilter, DeadlineQueryService
from .runner import DeadlineReconciliationRunner

__all__ = [
    "DeadlineServiceError",
    "ValidationError",
    "NotFoundError",
    "CalculationError",
    "UnsupportedMethodError",
    "PersistenceError",
    "AuditIntegrityError",
    "HolidayCalendar",
    "JurisdictionCalendar",
    "HolidayCalendarService",
    "build_calendar",
    "federal_holidays",
    "is_weekend",
    "CalculationRequest",
    "CalculationResult",
    "CalculationStep",
    "CustomStrategyRegistry",
    "BulkCalculationItem",
    "DeadlineCalculator",
    "compute",
    "default_strategies",
    "TemplateRegistry",
    "TemplateSnapshot",
    "TemplateQuery",
    "AuditTrail",
    "StatusReconciler",
    "derive_status",
    "can_transition",
    "CaseResolver",
    "DatabaseCaseResolver",
    "DeadlineGenerator",
    "GenerationResult",
    "TemplateFailure",
    "TriggerEventInput",
    "DeadlineOverrideService",
    "OverrideRequest",
    "AutomatedDeadlineFilter",
    "CourtRuleFilter",
    "DeadlineQueryService",
    "DeadlineReconciliationRunner",
]
