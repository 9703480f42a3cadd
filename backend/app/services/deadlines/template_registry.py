"""
Deadline Template Registry

Maps a trigger event to the calculation parameter sets that apply to it.

A trigger matches every active template for that event whose jurisdiction is
the case's jurisdiction OR is unset (universal). Both kinds may match at once;
each match produces its own deadline. No match is a valid, empty outcome.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...config import DEFAULT_REMINDER_DAYS
from ...models.db_models import (
    CalculationMethod, DeadlineTemplateDB, DeadlineType, Priority, TimeLimitUnit, TriggerEvent,
)
from .date_engine import CalculationRequest
from .errors import NotFoundError, ValidationError


def normalize_reminder_days(values: Optional[List[int]]) -> Tuple[int, ...]:
    """Ordered, de-duplicated positive day offsets (default when unset)."""
    if values is None:
        values = DEFAULT_REMINDER_DAYS
    return tuple(sorted({int(v) for v in values if int(v) > 0}))


@dataclass(frozen=True)
class TemplateSnapshot:
    """
    Template parameters frozen at trigger time.
    Calculations run against this copy, never the live row.
    """
    id: str
    name: str
    trigger_event: TriggerEvent
    jurisdiction_id: Optional[str]
    time_limit: float
    time_limit_unit: TimeLimitUnit
    calculation_method: CalculationMethod
    include_weekends: bool
    include_holidays: bool
    business_days_only: bool
    reminder_days: Tuple[int, ...]
    deadline_type: DeadlineType = DeadlineType.FILING
    priority: Priority = Priority.MEDIUM
    description: Optional[str] = None
    court_rule_id: Optional[str] = None
    custom_strategy: Optional[str] = None
    is_extendable: bool = False
    max_extensions: Optional[int] = None
    is_recurring: bool = False
    instructions: Optional[str] = None

    @property
    def is_universal(self) -> bool:
        return self.jurisdiction_id is None

    @classmethod
    def from_row(cls, row: DeadlineTemplateDB) -> "TemplateSnapshot":
        return cls(
            id=row.id,
            name=row.name,
            trigger_event=row.trigger_event,
            jurisdiction_id=row.jurisdiction_id,
            time_limit=row.time_limit,
            time_limit_unit=row.time_limit_unit,
            calculation_method=row.calculation_method,
            include_weekends=bool(row.include_weekends),
            include_holidays=bool(row.include_holidays),
            business_days_only=bool(row.business_days_only),
            reminder_days=normalize_reminder_days(row.reminder_days),
            deadline_type=row.deadline_type or DeadlineType.FILING,
            priority=row.priority or Priority.MEDIUM,
            description=row.description,
            court_rule_id=row.court_rule_id,
            custom_strategy=row.custom_strategy,
            is_extendable=bool(row.is_extendable),
            max_extensions=row.max_extensions,
            is_recurring=bool(row.is_recurring),
            instructions=row.instructions,
        )

    def to_request(self, trigger_date: datetime, case_jurisdiction_id: Optional[str]) -> CalculationRequest:
        """Calculation request; universal templates use the case's jurisdiction calendar."""
        return CalculationRequest(
            trigger_date=trigger_date,
            time_limit=self.time_limit,
            time_limit_unit=self.time_limit_unit,
            calculation_method=self.calculation_method,
            include_weekends=self.include_weekends,
            include_holidays=self.include_holidays,
            business_days_only=self.business_days_only,
            jurisdiction_id=self.jurisdiction_id or case_jurisdiction_id,
            custom_strategy=self.custom_strategy,
        )


@dataclass(frozen=True)
class TemplateQuery:
    """Template lookup by trigger event within one jurisdiction."""
    trigger_event: TriggerEvent
    jurisdiction_id: Optional[str] = None
    include_universal: bool = True
    include_inactive: bool = False


class TemplateRegistry:
    """Lookup and registration of deadline templates."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def find_rows(self, query: TemplateQuery) -> List[DeadlineTemplateDB]:
        q = self.db.query(DeadlineTemplateDB).filter(
            DeadlineTemplateDB.trigger_event == query.trigger_event
        )
        if not query.include_inactive:
            q = q.filter(DeadlineTemplateDB.is_active.is_(True))

        scopes = []
        if query.jurisdiction_id is not None:
            scopes.append(DeadlineTemplateDB.jurisdiction_id == query.jurisdiction_id)
        if query.include_universal:
            scopes.append(DeadlineTemplateDB.jurisdiction_id.is_(None))
        if not scopes:
            return []
        q = q.filter(or_(*scopes))

        rows = q.all()
        # Jurisdiction-specific first, then universal; stable by name
        rows.sort(key=lambda row: (row.jurisdiction_id is None, row.name, row.id))
        return rows

    def find(self, query: TemplateQuery) -> List[TemplateSnapshot]:
        return [TemplateSnapshot.from_row(row) for row in self.find_rows(query)]

    def matching_rows(self, trigger_event: TriggerEvent, jurisdiction_id: Optional[str]) -> List[DeadlineTemplateDB]:
        """Live rows behind find_matching; callers snapshot each one themselves."""
        return self.find_rows(TemplateQuery(trigger_event=trigger_event, jurisdiction_id=jurisdiction_id))

    def find_matching(self, trigger_event: TriggerEvent, jurisdiction_id: Optional[str]) -> List[TemplateSnapshot]:
        """All active templates for the event in the jurisdiction plus universal ones."""
        return self.find(TemplateQuery(trigger_event=trigger_event, jurisdiction_id=jurisdiction_id))

    def get(self, template_id: str) -> DeadlineTemplateDB:
        template = self.db.query(DeadlineTemplateDB).filter(
            DeadlineTemplateDB.id == template_id
        ).first()
        if template is None:
            raise NotFoundError(f"Deadline template {template_id} not found")
        return template

    def register(
        self,
        name: str,
        trigger_event: TriggerEvent,
        time_limit: float,
        time_limit_unit: TimeLimitUnit = TimeLimitUnit.DAYS,
        calculation_method: CalculationMethod = CalculationMethod.BUSINESS_DAYS,
        jurisdiction_id: Optional[str] = None,
        reminder_days: Optional[List[int]] = None,
        max_extensions: Optional[int] = None,
        **fields,
    ) -> DeadlineTemplateDB:
        """
        Add a template to the reference data (admin/seed path).
        Flushed, not committed.
        """
        if not name:
            raise ValidationError("Template name is required")
        if time_limit is None or time_limit <= 0:
            raise ValidationError(f"Time limit must be positive, got {time_limit}")
        if max_extensions is not None and max_extensions <= 0:
            raise ValidationError("max_extensions must be positive when set")

        template = DeadlineTemplateDB(
            id=str(uuid4()),
            name=name,
            trigger_event=trigger_event,
            time_limit=time_limit,
            time_limit_unit=time_limit_unit,
            calculation_method=calculation_method,
            jurisdiction_id=jurisdiction_id,
            reminder_days=list(normalize_reminder_days(reminder_days)),
            max_extensions=max_extensions,
            **fields,
        )
        self.db.add(template)
        self.db.flush()
        return template
