"""
Tests for the Date Arithmetic Engine.

Key tests:
1. Business/court-day walks skip weekends and the right holiday set
2. Calendar days with the landing-day policy on and off
3. Month/year arithmetic clamps to month end
4. Sub-day units add a plain duration
5. CUSTOM strategies and unknown strategy names
6. Input validation and determinism
7. Worked reference scenarios (2024 calendar)
"""
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

from app.models.db_models import CalculationMethod, TimeLimitUnit
from app.services.deadlines import (
    CalculationError,
    CalculationRequest,
    CustomStrategyRegistry,
    UnsupportedMethodError,
    ValidationError,
    build_calendar,
    compute,
    default_strategies,
    is_weekend,
)
from app.services.deadlines.holiday_calendar import EMPTY_CALENDAR

from conftest import make_holiday


JID = "jurisdiction-1"


@pytest.fixture
def calendar():
    """MLK Day 2026 (general + court), a court-only closure on Jan 6, recurring Christmas."""
    return build_calendar(JID, [
        make_holiday(JID, date(2026, 1, 19), "Martin Luther King Jr. Day"),
        make_holiday(JID, date(2026, 1, 6), "Court Closure", court_only=True),
        make_holiday(JID, date(2000, 12, 25), "Christmas Day", is_recurring=True),
    ])


def request(trigger, limit, unit=TimeLimitUnit.DAYS, method=CalculationMethod.BUSINESS_DAYS, **kwargs):
    return CalculationRequest(
        trigger_date=trigger,
        time_limit=limit,
        time_limit_unit=unit,
        calculation_method=method,
        jurisdiction_id=JID,
        **kwargs,
    )


# =============================================================================
# BUSINESS / COURT DAYS
# =============================================================================

class TestBusinessDays:
    """Walks that count only working days."""

    def test_skips_weekend(self):
        # Fri Jan 2 + 5 business days → Fri Jan 9
        result = compute(request(datetime(2026, 1, 2), 5), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 9)
        assert result.actual_days == 7
        assert result.skipped_details["weekends"] == 2
        assert result.skipped_days == 2

    def test_skips_weekend_and_holiday(self, calendar):
        # Fri Jan 16 + 1 business day: Sat, Sun, MLK Monday skipped → Tue Jan 20
        result = compute(request(datetime(2026, 1, 16), 1), calendar)

        assert result.calculated_date == datetime(2026, 1, 20)
        assert result.skipped_details == {"weekends": 2, "holidays": 1, "custom_skipped": 0}
        skipped = [s for s in result.steps if s.action == "SKIPPED"]
        assert skipped[-1].reason == "Holiday: Martin Luther King Jr. Day"

    def test_holiday_set_excluded_when_flag_off(self, calendar):
        result = compute(request(datetime(2026, 1, 16), 1, include_holidays=False), calendar)

        assert result.calculated_date == datetime(2026, 1, 19)
        assert result.skipped_details["holidays"] == 0

    def test_include_weekends_never_readmits_weekends(self):
        result = compute(request(datetime(2026, 1, 2), 1, include_weekends=True), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 5)
        assert any("include_weekends has no effect" in w for w in result.warnings)

    def test_business_days_ignore_court_only_closure(self, calendar):
        # Mon Jan 5 + 2 business days → Wed Jan 7 (closure is not a general holiday)
        result = compute(request(datetime(2026, 1, 5), 2), calendar)

        assert result.calculated_date == datetime(2026, 1, 7)

    def test_court_days_use_court_calendar(self, calendar):
        # Mon Jan 5 + 2 court days: Tue Jan 6 closed → Thu Jan 8
        result = compute(request(datetime(2026, 1, 5), 2, method=CalculationMethod.COURT_DAYS), calendar)

        assert result.calculated_date == datetime(2026, 1, 8)
        assert result.skipped_details["holidays"] == 1

    def test_recurring_holiday_matches_any_year(self, calendar):
        # Thu Dec 24 2026 + 1 business day: Christmas Friday, weekend → Mon Dec 28
        result = compute(request(datetime(2026, 12, 24), 1), calendar)

        assert result.calculated_date == datetime(2026, 12, 28)

    def test_weeks_walk_as_business_days(self):
        # 2 weeks = 14 business days from Fri Jan 2 → Thu Jan 22
        result = compute(request(datetime(2026, 1, 2), 2, unit=TimeLimitUnit.WEEKS), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 22)

    def test_result_is_always_a_business_day(self, calendar):
        start = datetime(2026, 1, 1)
        for offset in range(60):
            trigger = start + timedelta(days=offset)
            for limit in (1, 3, 10):
                result = compute(request(trigger, limit), calendar)
                day = result.calculated_date.date()
                assert not is_weekend(day)
                assert not calendar.general.is_holiday(day)
                assert result.actual_days >= limit

    def test_trigger_time_of_day_preserved(self):
        result = compute(request(datetime(2026, 1, 2, 9, 30), 5), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 9, 9, 30)


# =============================================================================
# CALENDAR DAYS
# =============================================================================

class TestCalendarDays:
    """Every day counts; the landing day is policy-driven."""

    def test_rolls_forward_off_weekend(self):
        # Thu Jan 1 + 2 = Sat Jan 3 → Mon Jan 5
        result = compute(request(datetime(2026, 1, 1), 2, method=CalculationMethod.CALENDAR_DAYS), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 5)
        assert any(s.action == "LANDING_ADJUSTMENT" for s in result.steps)

    def test_rolls_forward_off_holiday(self, calendar):
        # Mon Jan 12 + 7 = MLK Monday → Tue Jan 20
        result = compute(request(datetime(2026, 1, 12), 7, method=CalculationMethod.CALENDAR_DAYS), calendar)

        assert result.calculated_date == datetime(2026, 1, 20)

    def test_no_roll_when_policy_off(self):
        result = compute(
            request(datetime(2026, 1, 1), 2, method=CalculationMethod.CALENDAR_DAYS),
            EMPTY_CALENDAR,
            roll_forward=False,
        )

        assert result.calculated_date == datetime(2026, 1, 3)
        assert result.skipped_days == 0

    def test_business_days_only_switches_method(self):
        result = compute(
            request(datetime(2026, 1, 2), 1, method=CalculationMethod.CALENDAR_DAYS, business_days_only=True),
            EMPTY_CALENDAR,
        )

        assert result.calculated_date == datetime(2026, 1, 5)
        assert any("business_days_only" in w for w in result.warnings)


# =============================================================================
# MONTHS / YEARS / SUB-DAY
# =============================================================================

class TestUnits:
    """Non-day units."""

    def test_month_end_clamps(self):
        result = compute(
            request(datetime(2026, 1, 31), 1, unit=TimeLimitUnit.MONTHS, method=CalculationMethod.CALENDAR_DAYS),
            EMPTY_CALENDAR,
            roll_forward=False,
        )

        assert result.calculated_date == datetime(2026, 2, 28)

    def test_month_result_rolled_for_business_method(self):
        # Feb 28 2026 is a Saturday → Mon Mar 2
        result = compute(request(datetime(2026, 1, 31), 1, unit=TimeLimitUnit.MONTHS), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 3, 2)

    def test_leap_day_plus_one_year(self):
        result = compute(
            request(datetime(2024, 2, 29), 1, unit=TimeLimitUnit.YEARS, method=CalculationMethod.CALENDAR_DAYS),
            EMPTY_CALENDAR,
        )

        assert result.calculated_date == datetime(2025, 2, 28)

    def test_hours_added_as_duration(self):
        result = compute(request(datetime(2026, 1, 2, 10, 0), 48, unit=TimeLimitUnit.HOURS), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 4, 10, 0)
        assert result.warnings

    def test_minutes_accept_fractions(self):
        result = compute(
            request(datetime(2026, 1, 2, 10, 0), 1.5, unit=TimeLimitUnit.MINUTES,
                    method=CalculationMethod.CALENDAR_DAYS),
            EMPTY_CALENDAR,
        )

        assert result.calculated_date == datetime(2026, 1, 2, 10, 1, 30)


# =============================================================================
# CUSTOM STRATEGIES
# =============================================================================

class TestCustomStrategies:
    """Named strategies resolved per jurisdiction."""

    def test_unknown_strategy_raises(self):
        with pytest.raises(UnsupportedMethodError):
            compute(
                request(datetime(2026, 1, 5), 10, method=CalculationMethod.CUSTOM, custom_strategy="nope"),
                EMPTY_CALENDAR,
            )

    def test_missing_strategy_name_raises(self):
        with pytest.raises(UnsupportedMethodError):
            compute(request(datetime(2026, 1, 5), 10, method=CalculationMethod.CUSTOM), EMPTY_CALENDAR)

    def test_mail_service_extension(self, calendar):
        # Mon Jan 5 + 10 + 3 = Sun Jan 18 → MLK Monday → Tue Jan 20
        result = compute(
            request(datetime(2026, 1, 5), 10, method=CalculationMethod.CUSTOM,
                    custom_strategy="mail_service_extension"),
            calendar,
            default_strategies(),
        )

        assert result.calculated_date == datetime(2026, 1, 20)

    def test_jurisdiction_strategy_takes_precedence(self):
        registry = CustomStrategyRegistry()
        registry.register("fixed", lambda trigger, req, cal: date(2026, 3, 1))
        registry.register("fixed", lambda trigger, req, cal: date(2026, 4, 1), jurisdiction_id=JID)

        result = compute(
            request(datetime(2026, 1, 5), 1, method=CalculationMethod.CUSTOM, custom_strategy="fixed"),
            EMPTY_CALENDAR,
            registry,
        )

        assert result.calculated_date.date() == date(2026, 4, 1)

    def test_failing_strategy_becomes_calculation_error(self):
        registry = CustomStrategyRegistry()

        def broken(trigger, req, cal):
            raise RuntimeError("boom")

        registry.register("broken", broken)

        with pytest.raises(CalculationError):
            compute(
                request(datetime(2026, 1, 5), 1, method=CalculationMethod.CUSTOM, custom_strategy="broken"),
                EMPTY_CALENDAR,
                registry,
            )

    @pytest.mark.parametrize("value", [None, "2026-03-01", 42])
    def test_non_date_result_becomes_calculation_error(self, value):
        registry = CustomStrategyRegistry()
        registry.register("sloppy", lambda trigger, req, cal: value)

        with pytest.raises(CalculationError):
            compute(
                request(datetime(2026, 1, 5), 1, method=CalculationMethod.CUSTOM, custom_strategy="sloppy"),
                EMPTY_CALENDAR,
                registry,
            )


# =============================================================================
# VALIDATION / DETERMINISM
# =============================================================================

class TestValidation:

    @pytest.mark.parametrize("limit", [0, -5])
    def test_non_positive_limit_rejected(self, limit):
        with pytest.raises(ValidationError):
            compute(request(datetime(2026, 1, 5), limit), EMPTY_CALENDAR)

    def test_fractional_days_rejected(self):
        with pytest.raises(CalculationError):
            compute(request(datetime(2026, 1, 5), 2.5), EMPTY_CALENDAR)

    def test_unknown_method_rejected(self):
        with pytest.raises(CalculationError):
            compute(request(datetime(2026, 1, 5), 2, method="LUNAR_DAYS"), EMPTY_CALENDAR)

    def test_invalid_trigger_string_rejected(self):
        with pytest.raises(ValidationError):
            compute(request("not-a-date", 2), EMPTY_CALENDAR)

    def test_iso_string_and_aware_datetime_normalized(self):
        result = compute(request("2026-01-02T09:00:00+02:00", 1), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2026, 1, 5, 7, 0)

    def test_deterministic_across_threads(self, calendar):
        req = request(datetime(2026, 1, 16), 10)
        expected = compute(req, calendar).to_dict()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: compute(req, calendar).to_dict(), range(32)))

        assert all(r == expected for r in results)

    def test_trace_has_start_and_final_steps(self):
        result = compute(request(datetime(2026, 1, 2), 1), EMPTY_CALENDAR)

        assert result.steps[0].action == "STARTING_DATE"
        assert result.steps[-1].action == "FINAL_DATE"


# =============================================================================
# REFERENCE SCENARIOS
# =============================================================================

class TestReferenceScenarios:
    """Worked examples from the court-rules reference material."""

    def test_ten_calendar_days_from_new_year(self):
        result = compute(request(datetime(2024, 1, 1), 10, method=CalculationMethod.CALENDAR_DAYS), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2024, 1, 11)
        assert result.actual_days == 10

    def test_five_business_days_from_monday(self):
        result = compute(request(datetime(2024, 1, 1), 5), EMPTY_CALENDAR)

        assert result.calculated_date == datetime(2024, 1, 8)
        assert result.calculated_date.weekday() == 0

    def test_independence_day_skipped(self):
        calendar = build_calendar(JID, [make_holiday(JID, date(2024, 7, 4), "Independence Day")])

        result = compute(request(datetime(2024, 7, 3), 1), calendar)

        assert result.calculated_date == datetime(2024, 7, 5)
        assert result.skipped_details["holidays"] == 1

    def test_same_input_same_output(self):
        req = request(datetime(2024, 1, 1), 10, method=CalculationMethod.CALENDAR_DAYS)

        first, second = compute(req, EMPTY_CALENDAR), compute(req, EMPTY_CALENDAR)

        assert (first.calculated_date, first.actual_days) == (second.calculated_date, second.actual_days)
