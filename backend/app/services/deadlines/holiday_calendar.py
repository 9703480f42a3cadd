"""
Jurisdiction & Holiday Calendar

Answers holiday / business-day membership questions per jurisdiction.

Holiday sets are loaded as an immutable snapshot per calculation call so a
concurrent admin edit can never change the calendar halfway through a walk.
Each jurisdiction has two calendars:
- general: active holidays that are not court-only closures
- court:   active holidays that affect courts (may diverge from general)
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, List, Optional, Tuple

from dateutil.relativedelta import relativedelta, MO, TH
from sqlalchemy.orm import Session

from ...models.db_models import CalculationMethod, HolidayDB, JurisdictionDB
from .errors import NotFoundError


def is_weekend(day: date) -> bool:
    """Saturday or Sunday."""
    return day.weekday() >= 5


@dataclass(frozen=True)
class HolidayCalendar:
    """Immutable set of holiday dates (one-off plus yearly recurring)."""
    dates: FrozenSet[date] = frozenset()
    recurring: FrozenSet[Tuple[int, int]] = frozenset()  # (month, day)
    labels: Dict[object, str] = field(default_factory=dict, compare=False, hash=False)

    def is_holiday(self, day: date) -> bool:
        return day in self.dates or (day.month, day.day) in self.recurring

    def label_for(self, day: date) -> Optional[str]:
        if day in self.labels:
            return self.labels[day]
        return self.labels.get((day.month, day.day))


@dataclass(frozen=True)
class JurisdictionCalendar:
    """Snapshot of one jurisdiction's general and court calendars."""
    jurisdiction_id: Optional[str]
    general: HolidayCalendar = field(default_factory=HolidayCalendar)
    court: HolidayCalendar = field(default_factory=HolidayCalendar)

    def for_method(self, method: CalculationMethod) -> HolidayCalendar:
        """COURT_DAYS walks the court calendar; everything else the general one."""
        if method == CalculationMethod.COURT_DAYS:
            return self.court
        return self.general

    def is_holiday(self, day: date, court: bool = False) -> bool:
        calendar = self.court if court else self.general
        return calendar.is_holiday(day)

    def is_business_day(self, day: date, include_weekends: bool = False, court: bool = False) -> bool:
        """Not a weekend (unless weekends are included) and not a holiday."""
        if is_weekend(day) and not include_weekends:
            return False
        return not self.is_holiday(day, court=court)


EMPTY_CALENDAR = JurisdictionCalendar(jurisdiction_id=None)


def build_calendar(jurisdiction_id: Optional[str], holidays: List[HolidayDB]) -> JurisdictionCalendar:
    """Split holiday rows into general and court calendars."""
    general_dates, general_recurring = set(), set()
    court_dates, court_recurring = set(), set()
    general_labels: Dict[object, str] = {}
    court_labels: Dict[object, str] = {}

    for holiday in holidays:
        if not holiday.is_active:
            continue
        key = (holiday.date.month, holiday.date.day) if holiday.is_recurring else holiday.date

        if not holiday.court_only:
            (general_recurring if holiday.is_recurring else general_dates).add(key)
            general_labels[key] = holiday.label
        if holiday.affects_courts or holiday.court_only:
            (court_recurring if holiday.is_recurring else court_dates).add(key)
            court_labels[key] = holiday.label

    return JurisdictionCalendar(
        jurisdiction_id=jurisdiction_id,
        general=HolidayCalendar(frozenset(general_dates), frozenset(general_recurring), general_labels),
        court=HolidayCalendar(frozenset(court_dates), frozenset(court_recurring), court_labels),
    )


class HolidayCalendarService:
    """
    Loads calendar snapshots from reference data.

    Unknown jurisdictions raise NotFoundError; the generator treats that
    as a failure of the template being processed, not of the whole run.
    """

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    def load(self, jurisdiction_id: Optional[str]) -> JurisdictionCalendar:
        """Snapshot both calendars for a jurisdiction (empty when None)."""
        if jurisdiction_id is None:
            return EMPTY_CALENDAR

        jurisdiction = self.db.query(JurisdictionDB).filter(
            JurisdictionDB.id == jurisdiction_id
        ).first()
        if jurisdiction is None:
            raise NotFoundError(f"Jurisdiction {jurisdiction_id} not found")

        holidays = self.db.query(HolidayDB).filter(
            HolidayDB.jurisdiction_id == jurisdiction_id,
            HolidayDB.is_active.is_(True),
        ).all()

        return build_calendar(jurisdiction_id, holidays)

    def is_holiday(self, day: date, jurisdiction_id: Optional[str], court: bool = False) -> bool:
        return self.load(jurisdiction_id).is_holiday(day, court=court)

    def is_business_day(
        self,
        day: date,
        jurisdiction_id: Optional[str],
        include_weekends: bool = False,
    ) -> bool:
        return self.load(jurisdiction_id).is_business_day(day, include_weekends=include_weekends)

    def list_holidays(
        self,
        jurisdiction_id: str,
        year: Optional[int] = None,
    ) -> List[HolidayDB]:
        """Holiday rows for a jurisdiction, optionally limited to one year (recurring always included)."""
        if self.db.query(JurisdictionDB).filter(JurisdictionDB.id == jurisdiction_id).first() is None:
            raise NotFoundError(f"Jurisdiction {jurisdiction_id} not found")

        holidays = self.db.query(HolidayDB).filter(
            HolidayDB.jurisdiction_id == jurisdiction_id
        ).order_by(HolidayDB.date).all()

        if year is None:
            return holidays
        return [h for h in holidays if h.is_recurring or h.date.year == year]


# =============================================================================
# FEDERAL HOLIDAYS (seed data)
# =============================================================================

def federal_holidays(year: int) -> List[Tuple[str, date]]:
    """US federal holidays for a year, unadjusted for weekend observance."""
    jan1 = date(year, 1, 1)
    return [
        ("New Year's Day", jan1),
        ("Martin Luther King Jr. Day", jan1 + relativedelta(day=1, weekday=MO(+3))),
        ("Presidents' Day", jan1 + relativedelta(month=2, day=1, weekday=MO(+3))),
        ("Memorial Day", jan1 + relativedelta(month=5, day=31, weekday=MO(-1))),
        ("Juneteenth", date(year, 6, 19)),
        ("Independence Day", date(year, 7, 4)),
        ("Labor Day", jan1 + relativedelta(month=9, day=1, weekday=MO(+1))),
        ("Columbus Day", jan1 + relativedelta(month=10, day=1, weekday=MO(+2))),
        ("Veterans Day", date(year, 11, 11)),
        ("Thanksgiving", jan1 + relativedelta(month=11, day=1, weekday=TH(+4))),
        ("Christmas Day", date(year, 12, 25)),
    ]
