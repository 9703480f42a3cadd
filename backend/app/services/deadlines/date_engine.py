"""
Date Arithmetic Engine

Computes a due date from a trigger date and a template's parameters.

`compute()` is a pure function: no I/O, no clock, no shared mutable state.
The same request and calendar snapshot always give the same result, so it is
safe to call from any thread and its output can be cached.

Day-class rules:
- CALENDAR_DAYS: every day counts. The landing-day policy (default on) rolls a
  result that falls on a weekend/holiday forward to the next business day.
- BUSINESS_DAYS: walk forward one day at a time, counting only days that are
  neither weekends nor holidays on the general calendar.
- COURT_DAYS: same walk against the court calendar.
- CUSTOM: delegated to a strategy registered for the jurisdiction.

The method decides weekend exclusion. include_holidays only decides whether the
jurisdiction's holiday set takes part; include_weekends never re-admits
weekends into a business/court-day count.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...config import DEADLINE_ROLL_FORWARD
from ...models.db_models import CalculationMethod, TimeLimitUnit
from .errors import CalculationError, DeadlineServiceError, UnsupportedMethodError, ValidationError
from .holiday_calendar import (
    EMPTY_CALENDAR, HolidayCalendar, HolidayCalendarService, JurisdictionCalendar, is_weekend,
)


logger = logging.getLogger(__name__)


# =============================================================================
# INPUT / OUTPUT
# =============================================================================

DAY_UNITS = (TimeLimitUnit.DAYS, TimeLimitUnit.WEEKS)
MONTH_UNITS = (TimeLimitUnit.MONTHS, TimeLimitUnit.YEARS)
SUB_DAY_UNITS = (TimeLimitUnit.MINUTES, TimeLimitUnit.HOURS)
WALK_METHODS = (CalculationMethod.BUSINESS_DAYS, CalculationMethod.COURT_DAYS)


@dataclass(frozen=True)
class CalculationRequest:
    """Everything the engine needs besides the calendar snapshot."""
    trigger_date: datetime
    time_limit: float
    time_limit_unit: TimeLimitUnit = TimeLimitUnit.DAYS
    calculation_method: CalculationMethod = CalculationMethod.BUSINESS_DAYS
    include_weekends: bool = True
    include_holidays: bool = True
    business_days_only: bool = False
    jurisdiction_id: Optional[str] = None
    custom_strategy: Optional[str] = None


@dataclass
class CalculationStep:
    date: datetime
    action: str  # STARTING_DATE, TIME_LIMIT, COUNTED, SKIPPED, CUSTOM_STRATEGY, FINAL_DATE, LANDING_ADJUSTMENT
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "action": self.action, "reason": self.reason}


@dataclass
class CalculationResult:
    """Calculated date plus the trace that justifies it."""
    calculated_date: datetime
    actual_days: int
    skipped_days: int = 0
    skipped_details: Dict[str, int] = field(
        default_factory=lambda: {"weekends": 0, "holidays": 0, "custom_skipped": 0}
    )
    steps: List[CalculationStep] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calculated_date": self.calculated_date.isoformat(),
            "actual_days": self.actual_days,
            "skipped_days": self.skipped_days,
            "skipped_details": dict(self.skipped_details),
            "calculation_steps": [step.to_dict() for step in self.steps],
            "warnings": list(self.warnings),
        }


# =============================================================================
# CUSTOM STRATEGIES
# =============================================================================

# strategy(trigger, request, calendar) -> due date
CustomStrategy = Callable[[datetime, CalculationRequest, JurisdictionCalendar], Union[date, datetime]]


class CustomStrategyRegistry:
    """
    Named CUSTOM calculation strategies.

    A strategy registered for a jurisdiction takes precedence over one
    registered globally under the same name.
    """

    def __init__(self):
        self._strategies: Dict[Tuple[Optional[str], str], CustomStrategy] = {}

    def register(self, name: str, strategy: CustomStrategy, jurisdiction_id: Optional[str] = None) -> None:
        self._strategies[(jurisdiction_id, name)] = strategy

    def resolve(self, name: Optional[str], jurisdiction_id: Optional[str]) -> CustomStrategy:
        if not name:
            raise UnsupportedMethodError("CUSTOM calculation requires a strategy name")
        strategy = self._strategies.get((jurisdiction_id, name)) or self._strategies.get((None, name))
        if strategy is None:
            raise UnsupportedMethodError(
                f"No custom strategy '{name}' registered for jurisdiction {jurisdiction_id or 'ANY'}"
            )
        return strategy

    def names(self) -> List[str]:
        return sorted({name for _, name in self._strategies})


def mail_service_extension(
    trigger: datetime,
    request: CalculationRequest,
    calendar: JurisdictionCalendar,
) -> date:
    """
    Service by mail: count the period in calendar days, add 3 days,
    then move off weekends and court holidays.
    """
    if request.time_limit_unit not in DAY_UNITS:
        raise CalculationError("Mail service extension only applies to DAYS/WEEKS limits")
    days = _whole_days(request)
    day = trigger.date() + timedelta(days=days + 3)
    while is_weekend(day) or calendar.court.is_holiday(day):
        day += timedelta(days=1)
    return day


def default_strategies() -> CustomStrategyRegistry:
    registry = CustomStrategyRegistry()
    registry.register("mail_service_extension", mail_service_extension)
    return registry


# =============================================================================
# ENGINE
# =============================================================================

def normalize_trigger(value: Union[date, datetime, str]) -> datetime:
    """Naive UTC datetime from a date, datetime or ISO-8601 string."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid trigger date: {value}")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    raise ValidationError(f"Invalid trigger date: {value!r}")


def _coerce_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise CalculationError(f"Unsupported {label}: {value}")


def _whole_days(request: CalculationRequest) -> int:
    days = int(request.time_limit)
    if request.time_limit_unit == TimeLimitUnit.WEEKS:
        days *= 7
    return days


class _Trace:
    """Accumulates steps and skip counters during one computation."""

    def __init__(self):
        self.steps: List[CalculationStep] = []
        self.warnings: List[str] = []
        self.skipped = {"weekends": 0, "holidays": 0, "custom_skipped": 0}

    def step(self, when: Union[date, datetime], action: str, reason: Optional[str] = None) -> None:
        if not isinstance(when, datetime):
            when = datetime.combine(when, time.min)
        self.steps.append(CalculationStep(date=when, action=action, reason=reason))

    def skip(self, day: date, holidays: HolidayCalendar, action: str = "SKIPPED") -> bool:
        """Record day as skipped if it is a weekend or holiday; return whether it was."""
        if is_weekend(day):
            self.skipped["weekends"] += 1
            self.step(day, action, "Weekend")
            return True
        if holidays.is_holiday(day):
            self.skipped["holidays"] += 1
            label = holidays.label_for(day)
            self.step(day, action, f"Holiday: {label}" if label else "Holiday")
            return True
        return False

    @property
    def skipped_days(self) -> int:
        return sum(self.skipped.values())


def _walk_business_days(start: date, days: int, holidays: HolidayCalendar, trace: _Trace) -> date:
    current = start
    counted = 0
    while counted < days:
        current += timedelta(days=1)
        if trace.skip(current, holidays):
            continue
        counted += 1
        trace.step(current, "COUNTED", f"Day {counted} of {days}")
    return current


def _roll_forward(day: date, holidays: HolidayCalendar, trace: _Trace) -> date:
    while trace.skip(day, holidays, action="LANDING_ADJUSTMENT"):
        day += timedelta(days=1)
    return day


def compute(
    request: CalculationRequest,
    calendar: JurisdictionCalendar = EMPTY_CALENDAR,
    strategies: Optional[CustomStrategyRegistry] = None,
    roll_forward: bool = True,
) -> CalculationResult:
    """
    Compute the due date for a request against a calendar snapshot.

    Raises ValidationError for non-positive limits, CalculationError for
    unsupported unit/method usage, UnsupportedMethodError for unknown
    custom strategies.
    """
    unit = _coerce_enum(TimeLimitUnit, request.time_limit_unit, "time limit unit")
    method = _coerce_enum(CalculationMethod, request.calculation_method, "calculation method")

    if request.time_limit is None or request.time_limit <= 0:
        raise ValidationError(f"Time limit must be positive, got {request.time_limit}")
    if unit not in SUB_DAY_UNITS and float(request.time_limit) != int(request.time_limit):
        raise CalculationError(f"Fractional {unit.value} limits are not supported: {request.time_limit}")

    trigger = normalize_trigger(request.trigger_date)
    trace = _Trace()
    trace.step(trigger, "STARTING_DATE", "Starting from trigger date")
    trace.step(trigger, "TIME_LIMIT", f"Adding {request.time_limit:g} {unit.value.lower()}")

    if method == CalculationMethod.CALENDAR_DAYS and request.business_days_only:
        method = CalculationMethod.BUSINESS_DAYS
        trace.warnings.append("business_days_only set: counted as BUSINESS_DAYS")

    holidays = calendar.for_method(method) if request.include_holidays else HolidayCalendar()

    if method == CalculationMethod.CUSTOM:
        registry = strategies or default_strategies()
        strategy = registry.resolve(request.custom_strategy, request.jurisdiction_id)
        try:
            outcome = strategy(trigger, request, calendar)
        except DeadlineServiceError:
            raise
        except Exception as e:
            raise CalculationError(f"Custom strategy '{request.custom_strategy}' failed: {e}")
        if isinstance(outcome, date) and not isinstance(outcome, datetime):
            outcome = datetime.combine(outcome, trigger.time())
        elif not isinstance(outcome, datetime):
            raise CalculationError(
                f"Custom strategy '{request.custom_strategy}' returned {type(outcome).__name__}, expected a date"
            )
        trace.step(outcome, "CUSTOM_STRATEGY", f"Computed by strategy '{request.custom_strategy}'")
        calculated = outcome

    elif unit in SUB_DAY_UNITS:
        if method != CalculationMethod.CALENDAR_DAYS:
            trace.warnings.append(f"{method.value} does not apply to {unit.value}; duration added directly")
        if unit == TimeLimitUnit.MINUTES:
            calculated = trigger + timedelta(minutes=request.time_limit)
        else:
            calculated = trigger + timedelta(hours=request.time_limit)

    else:
        if method in WALK_METHODS and request.include_weekends:
            trace.warnings.append(f"Weekends are excluded by {method.value}; include_weekends has no effect")

        if unit in MONTH_UNITS:
            months = int(request.time_limit) * (12 if unit == TimeLimitUnit.YEARS else 1)
            day = (trigger + relativedelta(months=months)).date()
            if method in WALK_METHODS or roll_forward:
                day = _roll_forward(day, holidays, trace)
        elif method in WALK_METHODS:
            day = _walk_business_days(trigger.date(), _whole_days(request), holidays, trace)
        else:
            day = trigger.date() + timedelta(days=_whole_days(request))
            if roll_forward:
                day = _roll_forward(day, holidays, trace)

        calculated = datetime.combine(day, trigger.time())

    trace.step(calculated, "FINAL_DATE", f"Deadline calculated: {calculated.date().isoformat()}")

    return CalculationResult(
        calculated_date=calculated,
        actual_days=(calculated.date() - trigger.date()).days,
        skipped_days=trace.skipped_days,
        skipped_details=dict(trace.skipped),
        steps=trace.steps,
        warnings=trace.warnings,
    )


# =============================================================================
# DB-BACKED CALCULATOR
# =============================================================================

@dataclass
class BulkCalculationItem:
    """One entry of a bulk run: either a result or an error."""
    index: int
    request: CalculationRequest
    result: Optional[CalculationResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class DeadlineCalculator:
    """
    Loads the calendar snapshot for a request and runs the pure engine.

    Usage:
        calculator = DeadlineCalculator(db)
        result = calculator.calculate(request)
    """

    def __init__(
        self,
        db_session: Session,
        strategies: Optional[CustomStrategyRegistry] = None,
        roll_forward: bool = DEADLINE_ROLL_FORWARD,
    ):
        """Initialize with database session."""
        self.db = db_session
        self.calendars = HolidayCalendarService(db_session)
        self.strategies = strategies or default_strategies()
        self.roll_forward = roll_forward

    def calculate(self, request: CalculationRequest) -> CalculationResult:
        calendar = self.calendars.load(request.jurisdiction_id)
        return compute(request, calendar, self.strategies, self.roll_forward)

    def calculate_bulk(self, requests: List[CalculationRequest]) -> List[BulkCalculationItem]:
        """Calculate each request independently; one failure never stops the rest."""
        items = []
        for index, request in enumerate(requests):
            item = BulkCalculationItem(index=index, request=request)
            try:
                item.result = self.calculate(request)
            except DeadlineServiceError as e:
                item.error = str(e)
                item.error_type = type(e).__name__
                logger.warning(f"Bulk calculation {index} failed: {e}")
            items.append(item)
        return items
