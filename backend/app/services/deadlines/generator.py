"""
Automated Deadline Generator

Turns a case-lifecycle trigger event into tracked deadlines.

Pipeline:
1. Validate the trigger (case and event must be known)
2. Resolve the case's jurisdiction via the case collaborator
3. Claim the run key (case, event, trigger date) - re-delivery replays the first run,
   a failed run is picked up again by the next delivery
4. Find every matching template (jurisdiction-specific + universal)
5. Per template: calculate, then persist AutomatedDeadline + Deadline +
   DeadlineCalculation in one transaction
6. Return generated deadlines and per-template failures together

A failing template is rolled back and reported; the others still commit.
A deadline is never committed without its calculation snapshot.
A run that fails outside the per-template loop is marked "failed" so the
same trigger can be retried; the retry keeps deadlines the failed run committed.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEADLINE_ROLL_FORWARD
from ...models.db_models import (
    ActorType, AutomatedDeadlineDB, CalculationSource, CaseDB, DeadlineDB, DeadlineRecordStatus,
    DeadlineStatus, DeadlineTemplateDB, TriggerEvent, TriggerRunDB, utcnow,
)
from .audit_trail import AuditTrail
from .date_engine import CustomStrategyRegistry, compute, default_strategies, normalize_trigger
from .errors import (
    AuditIntegrityError, CalculationError, DeadlineServiceError, NotFoundError, PersistenceError,
    ValidationError,
)
from .holiday_calendar import HolidayCalendarService
from .status import derive_status
from .template_registry import TemplateRegistry, TemplateSnapshot


logger = logging.getLogger(__name__)


# =============================================================================
# CASE COLLABORATOR
# =============================================================================

class CaseResolver(ABC):
    """Interface to the case-management collaborator."""

    @abstractmethod
    def resolve_jurisdiction(self, case_id: str) -> Optional[str]:
        """
        Jurisdiction id for a case (None when the case has none).

        Raises:
            NotFoundError: if the case does not exist
        """


class DatabaseCaseResolver(CaseResolver):
    """Reads the case reference table shared with case management."""

    def __init__(self, db: Session):
        self.db = db

    def resolve_jurisdiction(self, case_id: str) -> Optional[str]:
        case = self.db.query(CaseDB).filter(CaseDB.id == case_id).first()
        if case is None:
            raise NotFoundError(f"Case {case_id} not found")
        return case.jurisdiction_id


# =============================================================================
# INPUT / OUTPUT
# =============================================================================

@dataclass
class TriggerEventInput:
    """Inbound trigger from the case-lifecycle collaborator."""
    case_id: str
    trigger_event: Union[TriggerEvent, str]
    trigger_date: Union[datetime, str]
    custom_event_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class GeneratedDeadline:
    automated_deadline_id: str
    deadline_id: str
    calculation_id: Optional[str]
    template_id: str
    title: str
    due_date: datetime
    actual_days: int
    calculation_method: str
    status: str
    priority: Optional[str] = None
    reminder_days: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "automated_deadline_id": self.automated_deadline_id,
            "deadline_id": self.deadline_id,
            "calculation_id": self.calculation_id,
            "template_id": self.template_id,
            "title": self.title,
            "due_date": self.due_date.isoformat(),
            "actual_days": self.actual_days,
            "calculation_method": self.calculation_method,
            "status": self.status,
            "priority": self.priority,
            "reminder_days": list(self.reminder_days),
        }


@dataclass
class TemplateFailure:
    template_id: str
    template_name: str
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "template_name": self.template_name,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class GenerationResult:
    """Partial-success aggregate: what was generated and, per template, what failed."""
    run_id: str
    case_id: str
    trigger_event: TriggerEvent
    trigger_date: datetime
    jurisdiction_id: Optional[str]
    deadlines: List[GeneratedDeadline] = field(default_factory=list)
    errors: List[TemplateFailure] = field(default_factory=list)
    duplicate: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.deadlines)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def message(self) -> str:
        if self.duplicate:
            return f"Trigger already processed: {self.succeeded} deadlines from the original run"
        if not self.deadlines and not self.errors:
            return "No deadline templates found for this trigger event"
        return f"Generated {self.succeeded} automated deadlines ({self.failed} failed)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "run_id": self.run_id,
            "case_id": self.case_id,
            "trigger_event": self.trigger_event.value,
            "trigger_date": self.trigger_date.isoformat(),
            "jurisdiction_id": self.jurisdiction_id,
            "duplicate": self.duplicate,
            "summary": {
                "succeeded": self.succeeded,
                "failed": self.failed,
            },
            "deadlines_created": [d.to_dict() for d in self.deadlines],
            "errors": [e.to_dict() for e in self.errors],
        }


# =============================================================================
# GENERATOR
# =============================================================================

class DeadlineGenerator:
    """
    Orchestrates trigger → templates → engine → persisted records.

    Templates are processed sequentially on one session; each one commits
    or rolls back on its own.
    """

    def __init__(
        self,
        db_session: Session,
        case_resolver: Optional[CaseResolver] = None,
        strategies: Optional[CustomStrategyRegistry] = None,
        roll_forward: bool = DEADLINE_ROLL_FORWARD,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize with database session."""
        self.db = db_session
        self.case_resolver = case_resolver or DatabaseCaseResolver(db_session)
        self.strategies = strategies or default_strategies()
        self.roll_forward = roll_forward
        self.clock = clock
        self.calendars = HolidayCalendarService(db_session)
        self.registry = TemplateRegistry(db_session)
        self.audit = AuditTrail(db_session)

    def generate(self, event: TriggerEventInput) -> GenerationResult:
        """
        Generate one deadline per matching template.

        Raises:
            ValidationError: missing/unknown case or trigger event, bad trigger date
            PersistenceError: the run could not be recorded or completed (safe to retry)
        """
        case_id, trigger_event, trigger_date = self._validate(event)

        try:
            jurisdiction_id = self.case_resolver.resolve_jurisdiction(case_id)
        except NotFoundError as e:
            raise ValidationError(str(e))
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to resolve jurisdiction for case {case_id}: {e}")

        run = self._claim_run(event, case_id, trigger_event, trigger_date, jurisdiction_id)
        if run is None:
            existing = self._find_run(case_id, trigger_event, trigger_date)
            logger.info(f"Duplicate trigger {trigger_event.value} for case {case_id}; replaying run {existing.id}")
            return self._replay(existing)

        result = GenerationResult(
            run_id=run.id,
            case_id=case_id,
            trigger_event=trigger_event,
            trigger_date=trigger_date,
            jurisdiction_id=jurisdiction_id,
        )

        try:
            matched = self._run_templates(run.id, result)
            self._complete_run(run.id, result)
        except Exception as e:
            self.db.rollback()
            self._fail_run(run.id, e)
            if isinstance(e, SQLAlchemyError):
                raise PersistenceError(f"Trigger run {run.id} failed: {e}") from e
            raise

        logger.info(
            f"Trigger {trigger_event.value} for case {case_id}: "
            f"{result.succeeded} deadlines generated, {result.failed} failed, {matched} templates matched"
        )
        return result

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _validate(self, event: TriggerEventInput):
        if not event.case_id or not str(event.case_id).strip():
            raise ValidationError("Case ID is required")
        if not event.trigger_event:
            raise ValidationError("Trigger event is required")
        try:
            trigger_event = TriggerEvent(event.trigger_event)
        except ValueError:
            raise ValidationError(f"Unknown trigger event: {event.trigger_event}")
        if event.trigger_date is None:
            raise ValidationError("Trigger date is required")
        trigger_date = normalize_trigger(event.trigger_date)
        return str(event.case_id).strip(), trigger_event, trigger_date

    def _find_run(self, case_id: str, trigger_event: TriggerEvent, trigger_date: datetime) -> Optional[TriggerRunDB]:
        return self.db.query(TriggerRunDB).filter(
            TriggerRunDB.case_id == case_id,
            TriggerRunDB.trigger_event == trigger_event,
            TriggerRunDB.trigger_date == trigger_date,
        ).first()

    def _claim_run(
        self,
        event: TriggerEventInput,
        case_id: str,
        trigger_event: TriggerEvent,
        trigger_date: datetime,
        jurisdiction_id: Optional[str],
    ) -> Optional[TriggerRunDB]:
        """Insert (or take back a failed) run row; None when the trigger is already handled."""
        try:
            existing = self._find_run(case_id, trigger_event, trigger_date)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to look up trigger run: {e}")
        if existing is not None:
            return self._reclaim_run(existing)

        run = TriggerRunDB(
            id=str(uuid4()),
            case_id=case_id,
            trigger_event=trigger_event,
            trigger_date=trigger_date,
            custom_event_name=event.custom_event_name,
            event_metadata=event.metadata,
            jurisdiction_id=jurisdiction_id,
            status="running",
        )
        try:
            self.db.add(run)
            self.db.commit()
        except IntegrityError:
            # Lost the race to a concurrent delivery of the same trigger
            self.db.rollback()
            return None
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to record trigger run: {e}")
        return run

    def _reclaim_run(self, run: TriggerRunDB) -> Optional[TriggerRunDB]:
        """Only a failed run is taken over; running and completed runs are duplicates."""
        if run.status != "failed":
            return None
        try:
            claimed = self.db.query(TriggerRunDB).filter(
                TriggerRunDB.id == run.id,
                TriggerRunDB.status == "failed",
            ).update({"status": "running", "completed_at": None}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to reclaim trigger run {run.id}: {e}")
        if claimed != 1:
            return None
        logger.info(f"Retrying failed trigger run {run.id}")
        return run

    def _run_templates(self, run_id: str, result: GenerationResult) -> int:
        """Process every matching template into result; returns how many matched."""
        rows = self.registry.matching_rows(result.trigger_event, result.jurisdiction_id)
        previous = self._generated_for_run(run_id)

        templates = []
        for row in rows:
            if row.id in previous:
                result.deadlines.append(previous[row.id])
                continue
            try:
                templates.append(TemplateSnapshot.from_row(row))
            except (TypeError, ValueError) as e:
                result.errors.append(self._failure(row, CalculationError(f"Invalid template configuration: {e}")))

        for template in templates:
            try:
                generated = self._generate_one(
                    run_id, template, result.case_id, result.trigger_event, result.trigger_date,
                    result.jurisdiction_id,
                )
                self.db.commit()
                result.deadlines.append(generated)
            except DeadlineServiceError as e:
                self.db.rollback()
                result.errors.append(self._failure(template, e))
            except SQLAlchemyError as e:
                self.db.rollback()
                result.errors.append(self._failure(template, PersistenceError(str(e))))
            except Exception as e:
                self.db.rollback()
                logger.exception(f"Unexpected error generating deadline for template {template.id}")
                result.errors.append(self._failure(template, e))

        return len(rows)

    def _generate_one(
        self,
        run_id: str,
        template: TemplateSnapshot,
        case_id: str,
        trigger_event: TriggerEvent,
        trigger_date: datetime,
        case_jurisdiction_id: Optional[str],
    ) -> GeneratedDeadline:
        request = template.to_request(trigger_date, case_jurisdiction_id)
        calendar = self.calendars.load(request.jurisdiction_id)
        calculation = compute(request, calendar, self.strategies, self.roll_forward)

        status = derive_status(calculation.calculated_date, template.reminder_days, None, self.clock())

        try:
            deadline = DeadlineDB(
                id=str(uuid4()),
                case_id=case_id,
                title=template.name,
                description=template.description or template.instructions,
                due_date=calculation.calculated_date,
                deadline_type=template.deadline_type,
                priority=template.priority,
                status=(DeadlineRecordStatus.OVERDUE if status == DeadlineStatus.OVERDUE
                        else DeadlineRecordStatus.PENDING),
                reminder_days=list(template.reminder_days),
                is_recurring=template.is_recurring,
                jurisdiction_id=request.jurisdiction_id,
                notes=f"Auto-generated from template: {template.name}",
            )
            automated = AutomatedDeadlineDB(
                id=str(uuid4()),
                template_id=template.id,
                court_rule_id=template.court_rule_id,
                case_id=case_id,
                trigger_run_id=run_id,
                title=template.name,
                description=template.description,
                trigger_event=trigger_event,
                trigger_date=trigger_date,
                due_date=calculation.calculated_date,
                original_days=template.time_limit,
                actual_days=calculation.actual_days,
                calculation_method=template.calculation_method,
                reminder_days=list(template.reminder_days),
                status=status,
                deadline_id=deadline.id,
            )
            self.db.add(deadline)
            self.db.add(automated)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to persist deadline: {e}")

        try:
            snapshot = self.audit.record_calculation(
                request=request,
                result=calculation,
                source=CalculationSource.GENERATED,
                automated_deadline_id=automated.id,
                case_id=case_id,
                template_id=template.id,
                court_rule_id=template.court_rule_id,
            )
        except AuditIntegrityError:
            raise
        except Exception as e:
            raise AuditIntegrityError(f"Calculation snapshot write failed: {e}") from e

        self.audit.record_event(
            automated_deadline_id=automated.id,
            event_type="generated",
            description=(
                f"Generated from template '{template.name}' on {trigger_event.value}: "
                f"due {calculation.calculated_date.date().isoformat()}"
            ),
            actor=ActorType.SYSTEM,
            metadata={"calculation_id": snapshot.id, "warnings": list(calculation.warnings)},
        )

        return GeneratedDeadline(
            automated_deadline_id=automated.id,
            deadline_id=deadline.id,
            calculation_id=snapshot.id,
            template_id=template.id,
            title=template.name,
            due_date=calculation.calculated_date,
            actual_days=calculation.actual_days,
            calculation_method=template.calculation_method.value,
            status=status.value,
            priority=template.priority.value,
            reminder_days=list(template.reminder_days),
        )

    def _failure(self, template: Union[TemplateSnapshot, DeadlineTemplateDB], error: Exception) -> TemplateFailure:
        logger.error(f"Error generating deadline for template {template.id} ({template.name}): {error}")
        return TemplateFailure(
            template_id=template.id,
            template_name=template.name,
            error_type=type(error).__name__,
            message=str(error),
        )

    def _complete_run(self, run_id: str, result: GenerationResult) -> None:
        run = self.db.query(TriggerRunDB).filter(TriggerRunDB.id == run_id).first()
        run.status = "completed"
        run.deadlines_created = result.succeeded
        run.errors = [e.to_dict() for e in result.errors]
        run.completed_at = utcnow()
        self.db.commit()

    def _fail_run(self, run_id: str, error: Exception) -> None:
        logger.error(f"Trigger run {run_id} failed: {error}")
        try:
            self.db.query(TriggerRunDB).filter(TriggerRunDB.id == run_id).update(
                {"status": "failed"}, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to mark trigger run {run_id} failed: {e}")

    def _generated_for_run(self, run_id: str) -> Dict[str, GeneratedDeadline]:
        """Deadlines already committed under a run, keyed by template id."""
        automated = self.db.query(AutomatedDeadlineDB).filter(
            AutomatedDeadlineDB.trigger_run_id == run_id
        ).order_by(AutomatedDeadlineDB.created_at).all()
        return {a.template_id: self._to_generated(a) for a in automated}

    def _to_generated(self, a: AutomatedDeadlineDB) -> GeneratedDeadline:
        first = a.calculations[0] if a.calculations else None
        return GeneratedDeadline(
            automated_deadline_id=a.id,
            deadline_id=a.deadline_id,
            calculation_id=first.id if first else None,
            template_id=a.template_id,
            title=a.title,
            due_date=a.due_date,
            actual_days=a.actual_days,
            calculation_method=a.calculation_method.value,
            status=a.status.value,
            priority=a.template.priority.value if a.template and a.template.priority else None,
            reminder_days=list(a.reminder_days or []),
        )

    def _replay(self, run: TriggerRunDB) -> GenerationResult:
        """Result of an earlier run of the same trigger, without generating anything."""
        deadlines = list(self._generated_for_run(run.id).values())
        errors = [TemplateFailure(**e) for e in (run.errors or [])]

        return GenerationResult(
            run_id=run.id,
            case_id=run.case_id,
            trigger_event=run.trigger_event,
            trigger_date=run.trigger_date,
            jurisdiction_id=run.jurisdiction_id,
            deadlines=deadlines,
            errors=errors,
            duplicate=True,
        )
