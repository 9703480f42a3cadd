"""
Shared fixtures for the deadline automation tests.

Persistence paths run against in-memory SQLite; the app is pointed at it
before any app module is imported.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.db_models import (
    CalculationMethod, CaseDB, CourtRuleDB, DeadlineTemplateDB, HolidayDB, JurisdictionDB,
    TimeLimitUnit, TriggerEvent,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    """Database session bound to a fresh in-memory schema."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# SEED HELPERS
# =============================================================================

def make_holiday(jurisdiction_id, day, label, is_recurring=False, affects_courts=True,
                 court_only=False, is_active=True):
    """Holiday row with every flag explicit (column defaults only apply on insert)."""
    return HolidayDB(
        id=str(uuid4()),
        jurisdiction_id=jurisdiction_id,
        date=day,
        label=label,
        is_recurring=is_recurring,
        affects_courts=affects_courts,
        court_only=court_only,
        is_active=is_active,
    )


def make_template(db, name, trigger_event=TriggerEvent.SERVICE_COMPLETED, time_limit=21,
                  time_limit_unit=TimeLimitUnit.DAYS,
                  calculation_method=CalculationMethod.CALENDAR_DAYS, jurisdiction_id=None, **fields):
    template = DeadlineTemplateDB(
        id=str(uuid4()),
        name=name,
        trigger_event=trigger_event,
        time_limit=time_limit,
        time_limit_unit=time_limit_unit,
        calculation_method=calculation_method,
        jurisdiction_id=jurisdiction_id,
        include_weekends=fields.pop("include_weekends", True),
        include_holidays=fields.pop("include_holidays", True),
        business_days_only=fields.pop("business_days_only", False),
        reminder_days=fields.pop("reminder_days", [1, 3, 7]),
        is_active=fields.pop("is_active", True),
        **fields,
    )
    db.add(template)
    db.commit()
    return template


@pytest.fixture
def jurisdiction(db):
    """Federal district court with MLK Day and a court-only closure in January 2026."""
    j = JurisdictionDB(id=str(uuid4()), name="U.S. District Court", code="US-FED", court_name="USDC")
    db.add(j)
    db.flush()
    db.add(make_holiday(j.id, date(2026, 1, 19), "Martin Luther King Jr. Day"))
    db.add(make_holiday(j.id, date(2026, 1, 6), "Court Closure", affects_courts=True, court_only=True))
    db.add(make_holiday(j.id, date(2000, 12, 25), "Christmas Day", is_recurring=True))
    db.commit()
    return j


@pytest.fixture
def other_jurisdiction(db):
    j = JurisdictionDB(id=str(uuid4()), name="Superior Court", code="US-CA-SUP")
    db.add(j)
    db.commit()
    return j


@pytest.fixture
def case(db, jurisdiction):
    c = CaseDB(id=str(uuid4()), case_number="1:26-cv-00042", title="Doe v. Roe", jurisdiction_id=jurisdiction.id)
    db.add(c)
    db.commit()
    return c


@pytest.fixture
def court_rule(db, jurisdiction):
    rule = CourtRuleDB(
        id=str(uuid4()),
        jurisdiction_id=jurisdiction.id,
        rule_number="FRCP 12(a)(1)(A)(i)",
        title="Time to serve a responsive pleading",
        category="PROCEDURAL",
        is_active=True,
    )
    db.add(rule)
    db.commit()
    return rule
