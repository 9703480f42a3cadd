"""
Migration: Add deadline automation tables.

Creates the reference, generation and audit tables:
1. jurisdictions, holidays, court_rules, cases - reference data
2. deadline_templates - trigger event → calculation parameters
3. trigger_runs - one row per logical trigger (idempotency key)
4. deadlines, automated_deadlines - generated deadlines
5. deadline_calculations, audit_sequences - append-only calculation audit
6. deadline_trail - human-readable deadline history

Core principle: a calculation snapshot is written once and never edited.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/docket_deadlines"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


TABLES = [
    ("jurisdictions", """
        CREATE TABLE jurisdictions (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            code VARCHAR(50) NOT NULL UNIQUE,
            court_name VARCHAR(255),
            time_zone VARCHAR(64) DEFAULT 'UTC',
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, []),
    ("holidays", """
        CREATE TABLE holidays (
            id VARCHAR(36) PRIMARY KEY,
            jurisdiction_id VARCHAR(36) NOT NULL REFERENCES jurisdictions(id) ON DELETE CASCADE,
            date DATE NOT NULL,
            label VARCHAR(255) NOT NULL,
            is_recurring BOOLEAN DEFAULT FALSE,
            affects_courts BOOLEAN DEFAULT TRUE,
            court_only BOOLEAN DEFAULT FALSE,
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_holiday_jurisdiction_date UNIQUE (jurisdiction_id, date)
        )
    """, ["CREATE INDEX idx_holidays_jurisdiction ON holidays(jurisdiction_id)"]),
    ("court_rules", """
        CREATE TABLE court_rules (
            id VARCHAR(36) PRIMARY KEY,
            jurisdiction_id VARCHAR(36) NOT NULL REFERENCES jurisdictions(id) ON DELETE CASCADE,
            rule_number VARCHAR(100) NOT NULL,
            title VARCHAR(500) NOT NULL,
            description TEXT,
            category VARCHAR(50) DEFAULT 'GENERAL',
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, ["CREATE INDEX idx_court_rules_jurisdiction ON court_rules(jurisdiction_id)"]),
    ("cases", """
        CREATE TABLE cases (
            id VARCHAR(36) PRIMARY KEY,
            case_number VARCHAR(100),
            title VARCHAR(500),
            jurisdiction_id VARCHAR(36) REFERENCES jurisdictions(id) ON DELETE SET NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, []),
    ("deadline_templates", """
        CREATE TABLE deadline_templates (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(255) NOT NULL,
            description TEXT,
            trigger_event VARCHAR(50) NOT NULL,
            jurisdiction_id VARCHAR(36) REFERENCES jurisdictions(id) ON DELETE CASCADE,
            court_rule_id VARCHAR(36) REFERENCES court_rules(id) ON DELETE SET NULL,
            time_limit FLOAT NOT NULL,
            time_limit_unit VARCHAR(20) DEFAULT 'DAYS',
            calculation_method VARCHAR(20) DEFAULT 'BUSINESS_DAYS',
            custom_strategy VARCHAR(100),
            include_weekends BOOLEAN DEFAULT TRUE,
            include_holidays BOOLEAN DEFAULT TRUE,
            business_days_only BOOLEAN DEFAULT FALSE,
            deadline_type VARCHAR(50) DEFAULT 'FILING',
            priority VARCHAR(20) DEFAULT 'MEDIUM',
            reminder_days JSON,
            is_extendable BOOLEAN DEFAULT FALSE,
            max_extensions INTEGER,
            is_recurring BOOLEAN DEFAULT FALSE,
            instructions TEXT,
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, [
        "CREATE INDEX idx_templates_trigger ON deadline_templates(trigger_event)",
        "CREATE INDEX idx_templates_jurisdiction ON deadline_templates(jurisdiction_id)",
    ]),
    ("trigger_runs", """
        CREATE TABLE trigger_runs (
            id VARCHAR(36) PRIMARY KEY,
            case_id VARCHAR(36) NOT NULL,
            trigger_event VARCHAR(50) NOT NULL,
            trigger_date TIMESTAMP NOT NULL,
            custom_event_name VARCHAR(255),
            event_metadata JSON,
            jurisdiction_id VARCHAR(36),
            status VARCHAR(20) DEFAULT 'running',
            deadlines_created INTEGER DEFAULT 0,
            errors JSON,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            completed_at TIMESTAMP,
            CONSTRAINT uq_trigger_run_key UNIQUE (case_id, trigger_event, trigger_date)
        )
    """, ["CREATE INDEX idx_trigger_runs_case ON trigger_runs(case_id)"]),
    ("deadlines", """
        CREATE TABLE deadlines (
            id VARCHAR(36) PRIMARY KEY,
            case_id VARCHAR(36) NOT NULL,
            title VARCHAR(500) NOT NULL,
            description TEXT,
            due_date TIMESTAMP NOT NULL,
            deadline_type VARCHAR(50) DEFAULT 'OTHER',
            priority VARCHAR(20) DEFAULT 'MEDIUM',
            status VARCHAR(20) DEFAULT 'PENDING',
            reminder_days JSON,
            is_recurring BOOLEAN DEFAULT FALSE,
            jurisdiction_id VARCHAR(36),
            assigned_to VARCHAR(36),
            notes TEXT,
            completed_at TIMESTAMP,
            completed_by VARCHAR(36),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, [
        "CREATE INDEX idx_deadlines_case ON deadlines(case_id)",
        "CREATE INDEX idx_deadlines_due ON deadlines(due_date)",
    ]),
    ("automated_deadlines", """
        CREATE TABLE automated_deadlines (
            id VARCHAR(36) PRIMARY KEY,
            template_id VARCHAR(36) NOT NULL REFERENCES deadline_templates(id),
            court_rule_id VARCHAR(36),
            case_id VARCHAR(36) NOT NULL,
            trigger_run_id VARCHAR(36) REFERENCES trigger_runs(id),
            title VARCHAR(500) NOT NULL,
            description TEXT,
            trigger_event VARCHAR(50) NOT NULL,
            trigger_date TIMESTAMP NOT NULL,
            due_date TIMESTAMP NOT NULL,
            original_days FLOAT NOT NULL,
            actual_days INTEGER NOT NULL,
            calculation_method VARCHAR(20) NOT NULL,
            reminder_days JSON,
            status VARCHAR(20) DEFAULT 'PENDING',
            extension_count INTEGER DEFAULT 0,
            is_manual_override BOOLEAN DEFAULT FALSE,
            override_reason TEXT,
            overridden_by VARCHAR(36),
            overridden_at TIMESTAMP,
            deadline_id VARCHAR(36) REFERENCES deadlines(id),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, [
        "CREATE INDEX idx_automated_case ON automated_deadlines(case_id)",
        "CREATE INDEX idx_automated_status ON automated_deadlines(status)",
        "CREATE INDEX idx_automated_due ON automated_deadlines(due_date)",
        "CREATE INDEX idx_automated_run ON automated_deadlines(trigger_run_id)",
    ]),
    ("deadline_calculations", """
        CREATE TABLE deadline_calculations (
            id VARCHAR(36) PRIMARY KEY,
            sequence_number INTEGER NOT NULL UNIQUE,
            source VARCHAR(20) NOT NULL,
            automated_deadline_id VARCHAR(36) REFERENCES automated_deadlines(id),
            case_id VARCHAR(36),
            template_id VARCHAR(36),
            court_rule_id VARCHAR(36),
            jurisdiction_id VARCHAR(36),
            trigger_date TIMESTAMP NOT NULL,
            time_limit FLOAT NOT NULL,
            time_limit_unit VARCHAR(20) NOT NULL,
            calculation_method VARCHAR(20) NOT NULL,
            include_weekends BOOLEAN NOT NULL,
            include_holidays BOOLEAN NOT NULL,
            business_days_only BOOLEAN NOT NULL,
            custom_strategy VARCHAR(100),
            calculated_date TIMESTAMP NOT NULL,
            actual_days INTEGER NOT NULL,
            skipped_days INTEGER DEFAULT 0,
            skipped_details JSON,
            calculation_steps JSON,
            warnings JSON,
            override_reason TEXT,
            actor_id VARCHAR(36),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, [
        "CREATE INDEX idx_calculations_automated ON deadline_calculations(automated_deadline_id)",
        "CREATE INDEX idx_calculations_case ON deadline_calculations(case_id)",
    ]),
    ("audit_sequences", """
        CREATE TABLE audit_sequences (
            name VARCHAR(50) PRIMARY KEY,
            value INTEGER NOT NULL DEFAULT 0
        )
    """, ["INSERT INTO audit_sequences (name, value) VALUES ('deadline_calculations', 0)"]),
    ("deadline_trail", """
        CREATE TABLE deadline_trail (
            id VARCHAR(36) PRIMARY KEY,
            automated_deadline_id VARCHAR(36) NOT NULL REFERENCES automated_deadlines(id),
            event_type VARCHAR(50) NOT NULL,
            actor VARCHAR(20) NOT NULL,
            actor_id VARCHAR(36),
            description TEXT NOT NULL,
            event_metadata JSON,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """, ["CREATE INDEX idx_trail_automated ON deadline_trail(automated_deadline_id)"]),
]


def run_migration():
    """Create all deadline automation tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        for table_name, ddl, extras in TABLES:
            if table_exists(conn, table_name):
                print(f"{table_name} table already exists")
                continue
            conn.execute(text(ddl))
            for statement in extras:
                conn.execute(text(statement))
            print(f"Created {table_name} table")

        conn.commit()
        print("\nDeadline automation migration completed successfully!")


if __name__ == "__main__":
    run_migration()
