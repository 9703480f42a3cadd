#!/usr/bin/env python3
"""
Reference Data Seed Script
Creates a jurisdiction with federal holidays, a court rule and sample
deadline templates.

Usage:
    python -m scripts.seed_reference_data <code> <name> [year ...]

Example:
    python -m scripts.seed_reference_data US-FED "U.S. District Court" 2026 2027
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import (
    CalculationMethod, CourtRuleDB, DeadlineType, HolidayDB, JurisdictionDB, Priority,
    TimeLimitUnit, TriggerEvent,
)
from app.services.deadlines import TemplateRegistry, federal_holidays


def seed_jurisdiction(code: str, name: str, years) -> bool:
    """Create the jurisdiction and its reference data."""
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        existing = db.query(JurisdictionDB).filter(JurisdictionDB.code == code).first()
        if existing:
            print(f"Error: Jurisdiction '{code}' already exists.")
            return False

        jurisdiction = JurisdictionDB(id=str(uuid4()), code=code, name=name, court_name=name)
        db.add(jurisdiction)
        db.flush()

        holiday_count = 0
        for year in years:
            for label, day in federal_holidays(year):
                db.add(HolidayDB(
                    id=str(uuid4()),
                    jurisdiction_id=jurisdiction.id,
                    date=day,
                    label=label,
                    affects_courts=True,
                ))
                holiday_count += 1

        answer_rule = CourtRuleDB(
            id=str(uuid4()),
            jurisdiction_id=jurisdiction.id,
            rule_number="FRCP 12(a)(1)(A)(i)",
            title="Time to serve a responsive pleading",
            description="A defendant must serve an answer within 21 days after being served.",
            category="PROCEDURAL",
        )
        db.add(answer_rule)
        db.flush()

        registry = TemplateRegistry(db)
        registry.register(
            name="Answer to Complaint",
            trigger_event=TriggerEvent.SERVICE_COMPLETED,
            time_limit=21,
            calculation_method=CalculationMethod.CALENDAR_DAYS,
            jurisdiction_id=jurisdiction.id,
            court_rule_id=answer_rule.id,
            deadline_type=DeadlineType.RESPONSE,
            priority=Priority.HIGH,
            reminder_days=[1, 3, 7],
        )
        registry.register(
            name="Notice of Appeal",
            trigger_event=TriggerEvent.JUDGMENT_ENTERED,
            time_limit=30,
            calculation_method=CalculationMethod.CALENDAR_DAYS,
            jurisdiction_id=jurisdiction.id,
            deadline_type=DeadlineType.APPEAL,
            priority=Priority.URGENT,
            reminder_days=[3, 7, 14],
        )
        registry.register(
            name="Opposition to Motion",
            trigger_event=TriggerEvent.MOTION_FILED,
            time_limit=14,
            calculation_method=CalculationMethod.COURT_DAYS,
            jurisdiction_id=jurisdiction.id,
            deadline_type=DeadlineType.MOTION,
            priority=Priority.HIGH,
            is_extendable=True,
            max_extensions=1,
        )
        registry.register(
            name="Statute of Limitations Review",
            trigger_event=TriggerEvent.CASE_FILED,
            time_limit=1,
            time_limit_unit=TimeLimitUnit.YEARS,
            calculation_method=CalculationMethod.CALENDAR_DAYS,
            deadline_type=DeadlineType.STATUTE_OF_LIMITATIONS,
            priority=Priority.MEDIUM,
        )

        db.commit()

        print(f"Jurisdiction created successfully!")
        print(f"  Code: {code}")
        print(f"  Holidays: {holiday_count}")
        print(f"  Templates: 4")
        return True

    except Exception as e:
        print(f"Error seeding reference data: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    code = sys.argv[1]
    name = sys.argv[2]

    try:
        years = [int(y) for y in sys.argv[3:]] or [2026]
    except ValueError:
        print("Error: Years must be integers.")
        sys.exit(1)

    success = seed_jurisdiction(code, name, years)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
