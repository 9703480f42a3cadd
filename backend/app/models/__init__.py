"""Docket Deadline Engine - Data Models"""
from .db_models import (
    # Enums
    TriggerEvent, TimeLimitUnit, CalculationMethod, DeadlineStatus, DeadlineRecordStatus,
    DeadlineType, Priority, ActorType, CalculationSource,
    # Reference data
    JurisdictionDB, HolidayDB, CourtRuleDB, CaseDB, DeadlineTemplateDB,
    # Generated deadlines
    TriggerRunDB, DeadlineDB, AutomatedDeadlineDB,
    # Audit
    DeadlineCalculationDB, AuditSequenceDB, DeadlineTrailDB,
)

__all__ = [
    "TriggerEvent", "TimeLimitUnit", "CalculationMethod", "DeadlineStatus", "DeadlineRecordStatus",
    "DeadlineType", "Priority", "ActorType", "CalculationSource",
    "JurisdictionDB", "HolidayDB", "CourtRuleDB", "CaseDB", "DeadlineTemplateDB",
    "TriggerRunDB", "DeadlineDB", "AutomatedDeadlineDB",
    "DeadlineCalculationDB", "AuditSequenceDB", "DeadlineTrailDB",
]
