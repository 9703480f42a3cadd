"""
Docket Deadline Engine - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum,
    Boolean, Date, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns store UTC without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================

class TriggerEvent(str, Enum):
    """Case-lifecycle occurrences that start a deadline clock."""
    CASE_FILED = "CASE_FILED"
    SERVICE_COMPLETED = "SERVICE_COMPLETED"
    ANSWER_DUE = "ANSWER_DUE"
    DISCOVERY_OPENED = "DISCOVERY_OPENED"
    MOTION_FILED = "MOTION_FILED"
    HEARING_SCHEDULED = "HEARING_SCHEDULED"
    JUDGMENT_ENTERED = "JUDGMENT_ENTERED"
    APPEAL_FILED = "APPEAL_FILED"
    NOTICE_SERVED = "NOTICE_SERVED"
    SUMMONS_ISSUED = "SUMMONS_ISSUED"
    COMPLAINT_FILED = "COMPLAINT_FILED"
    RESPONSE_DUE = "RESPONSE_DUE"
    TRIAL_DATE_SET = "TRIAL_DATE_SET"
    SETTLEMENT_CONFERENCE = "SETTLEMENT_CONFERENCE"
    CASE_MANAGEMENT_CONFERENCE = "CASE_MANAGEMENT_CONFERENCE"
    STATUS_CONFERENCE = "STATUS_CONFERENCE"
    CUSTOM_EVENT = "CUSTOM_EVENT"
    OTHER = "OTHER"


class TimeLimitUnit(str, Enum):
    MINUTES = "MINUTES"
    HOURS = "HOURS"
    DAYS = "DAYS"
    WEEKS = "WEEKS"
    MONTHS = "MONTHS"
    YEARS = "YEARS"


class CalculationMethod(str, Enum):
    CALENDAR_DAYS = "CALENDAR_DAYS"
    BUSINESS_DAYS = "BUSINESS_DAYS"
    COURT_DAYS = "COURT_DAYS"
    CUSTOM = "CUSTOM"


class DeadlineStatus(str, Enum):
    """Status of an automated deadline. First three are time-derived."""
    PENDING = "PENDING"
    DUE_SOON = "DUE_SOON"
    OVERDUE = "OVERDUE"
    COMPLETED = "COMPLETED"
    COMPLETED_LATE = "COMPLETED_LATE"
    EXTENDED = "EXTENDED"
    WAIVED = "WAIVED"
    CANCELLED = "CANCELLED"


class DeadlineRecordStatus(str, Enum):
    """Status of the downstream (calendar-facing) deadline record."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class DeadlineType(str, Enum):
    FILING = "FILING"
    DISCOVERY = "DISCOVERY"
    MOTION = "MOTION"
    RESPONSE = "RESPONSE"
    HEARING = "HEARING"
    TRIAL = "TRIAL"
    APPEAL = "APPEAL"
    STATUTE_OF_LIMITATIONS = "STATUTE_OF_LIMITATIONS"
    OTHER = "OTHER"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ActorType(str, Enum):
    """Actor types for the deadline trail."""
    USER = "USER"
    SYSTEM = "SYSTEM"


class CalculationSource(str, Enum):
    """Why a calculation snapshot was written."""
    GENERATED = "GENERATED"
    OVERRIDE = "OVERRIDE"
    STANDALONE = "STANDALONE"


# =============================================================================
# REFERENCE DATA (maintained by administrators)
# =============================================================================

class JurisdictionDB(Base):
    """A court jurisdiction. Owns holidays and court rules."""
    __tablename__ = "jurisdictions"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=False, index=True)  # e.g. US-CA-SUP
    court_name = Column(String(255), nullable=True)
    time_zone = Column(String(64), default="UTC")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    holidays = relationship("HolidayDB", back_populates="jurisdiction", cascade="all, delete-orphan")
    court_rules = relationship("CourtRuleDB", back_populates="jurisdiction", cascade="all, delete-orphan")


class HolidayDB(Base):
    """
    A non-working day for a jurisdiction.

    General calendar: active holidays that are not court_only.
    Court calendar: active holidays that affect courts (incl. court-only closures).
    """
    __tablename__ = "holidays"
    __table_args__ = (
        UniqueConstraint("jurisdiction_id", "date", name="uq_holiday_jurisdiction_date"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    jurisdiction_id = Column(String(36), ForeignKey("jurisdictions.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    label = Column(String(255), nullable=False)

    is_recurring = Column(Boolean, default=False)  # Same month/day every year
    affects_courts = Column(Boolean, default=True)
    court_only = Column(Boolean, default=False)    # Court closure, not a general holiday
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)

    jurisdiction = relationship("JurisdictionDB", back_populates="holidays")


class CourtRuleDB(Base):
    """Statutory/procedural rule reference. Referenced, never interpreted."""
    __tablename__ = "court_rules"

    id = Column(String(36), primary_key=True)  # UUID
    jurisdiction_id = Column(String(36), ForeignKey("jurisdictions.id", ondelete="CASCADE"), nullable=False, index=True)
    rule_number = Column(String(100), nullable=False)  # e.g. FRCP 12(a)(1)(A)(i)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), default="GENERAL")  # PROCEDURAL, DISCOVERY, APPEAL_PRACTICE, ...
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    jurisdiction = relationship("JurisdictionDB", back_populates="court_rules")


class CaseDB(Base):
    """
    Read-only view of a case owned by the case-management collaborator.
    Only the fields needed to resolve a jurisdiction are kept here.
    """
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True)  # UUID
    case_number = Column(String(100), nullable=True)
    title = Column(String(500), nullable=True)
    jurisdiction_id = Column(String(36), ForeignKey("jurisdictions.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class DeadlineTemplateDB(Base):
    """
    Maps a trigger event to calculation parameters.
    jurisdiction_id NULL = universal template (matches every jurisdiction).
    """
    __tablename__ = "deadline_templates"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Matching
    trigger_event = Column(SQLEnum(TriggerEvent), nullable=False, index=True)
    jurisdiction_id = Column(String(36), ForeignKey("jurisdictions.id", ondelete="CASCADE"), nullable=True, index=True)
    court_rule_id = Column(String(36), ForeignKey("court_rules.id", ondelete="SET NULL"), nullable=True)

    # Calculation parameters
    time_limit = Column(Float, nullable=False)
    time_limit_unit = Column(SQLEnum(TimeLimitUnit), default=TimeLimitUnit.DAYS)
    calculation_method = Column(SQLEnum(CalculationMethod), default=CalculationMethod.BUSINESS_DAYS)
    custom_strategy = Column(String(100), nullable=True)  # Name registered for CUSTOM
    include_weekends = Column(Boolean, default=True)
    include_holidays = Column(Boolean, default=True)
    business_days_only = Column(Boolean, default=False)

    # Downstream record shape
    deadline_type = Column(SQLEnum(DeadlineType), default=DeadlineType.FILING)
    priority = Column(SQLEnum(Priority), default=Priority.MEDIUM)
    reminder_days = Column(JSON, nullable=True)  # [1, 3, 7]
    is_extendable = Column(Boolean, default=False)
    max_extensions = Column(Integer, nullable=True)
    is_recurring = Column(Boolean, default=False)
    instructions = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    court_rule = relationship("CourtRuleDB")


# =============================================================================
# GENERATED DEADLINES
# =============================================================================

class TriggerRunDB(Base):
    """
    One generation run per logical trigger.
    The unique key makes re-delivery of the same trigger a no-op.
    """
    __tablename__ = "trigger_runs"
    __table_args__ = (
        UniqueConstraint("case_id", "trigger_event", "trigger_date", name="uq_trigger_run_key"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(36), nullable=False, index=True)
    trigger_event = Column(SQLEnum(TriggerEvent), nullable=False)
    trigger_date = Column(DateTime, nullable=False)
    custom_event_name = Column(String(255), nullable=True)
    event_metadata = Column(JSON, nullable=True)
    jurisdiction_id = Column(String(36), nullable=True)

    status = Column(String(20), default="running")  # running, completed, failed
    deadlines_created = Column(Integer, default=0)
    errors = Column(JSON, nullable=True)  # Per-template failures

    created_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime, nullable=True)


class DeadlineDB(Base):
    """
    Calendar-facing deadline shared with calendar/notification collaborators.
    Non-automated deadlines live here too.
    """
    __tablename__ = "deadlines"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(36), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=False, index=True)
    deadline_type = Column(SQLEnum(DeadlineType), default=DeadlineType.OTHER)
    priority = Column(SQLEnum(Priority), default=Priority.MEDIUM)
    status = Column(SQLEnum(DeadlineRecordStatus), default=DeadlineRecordStatus.PENDING)
    reminder_days = Column(JSON, nullable=True)
    is_recurring = Column(Boolean, default=False)
    jurisdiction_id = Column(String(36), nullable=True)
    assigned_to = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)

    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AutomatedDeadlineDB(Base):
    """
    Deadline generated from a template by a trigger event.
    Created by the generator, mutated only by the override service
    (and status reconciliation for time-derived states).
    """
    __tablename__ = "automated_deadlines"

    id = Column(String(36), primary_key=True)  # UUID
    template_id = Column(String(36), ForeignKey("deadline_templates.id"), nullable=False, index=True)
    court_rule_id = Column(String(36), nullable=True)
    case_id = Column(String(36), nullable=False, index=True)
    trigger_run_id = Column(String(36), ForeignKey("trigger_runs.id"), nullable=True, index=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)

    # Calculation
    trigger_event = Column(SQLEnum(TriggerEvent), nullable=False)
    trigger_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False, index=True)
    original_days = Column(Float, nullable=False)   # Template time limit
    actual_days = Column(Integer, nullable=False)   # Elapsed calendar days
    calculation_method = Column(SQLEnum(CalculationMethod), nullable=False)
    reminder_days = Column(JSON, nullable=True)

    # State
    status = Column(SQLEnum(DeadlineStatus), default=DeadlineStatus.PENDING, index=True)
    extension_count = Column(Integer, default=0)

    # Manual override
    is_manual_override = Column(Boolean, default=False)
    override_reason = Column(Text, nullable=True)
    overridden_by = Column(String(36), nullable=True)
    overridden_at = Column(DateTime, nullable=True)

    # Link to calendar-facing deadline
    deadline_id = Column(String(36), ForeignKey("deadlines.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    template = relationship("DeadlineTemplateDB")
    deadline = relationship("DeadlineDB")
    calculations = relationship(
        "DeadlineCalculationDB",
        back_populates="automated_deadline",
        order_by="DeadlineCalculationDB.sequence_number",
    )
    trail = relationship(
        "DeadlineTrailDB",
        back_populates="automated_deadline",
        order_by="DeadlineTrailDB.created_at",
    )


# =============================================================================
# AUDIT (APPEND-ONLY)
# =============================================================================
# Calculation snapshots are legal evidence of how a date was reached.
# Rows are never updated or deleted; corrections append a new snapshot.
# =============================================================================

class DeadlineCalculationDB(Base):
    """
    Immutable audit snapshot of one calculation attempt.
    One per generated deadline, plus one per override.
    """
    __tablename__ = "deadline_calculations"

    id = Column(String(36), primary_key=True)  # UUID
    sequence_number = Column(Integer, unique=True, nullable=False)  # Allocated from audit_sequences
    source = Column(SQLEnum(CalculationSource), nullable=False)

    # Links
    automated_deadline_id = Column(String(36), ForeignKey("automated_deadlines.id"), nullable=True, index=True)
    case_id = Column(String(36), nullable=True, index=True)
    template_id = Column(String(36), nullable=True)
    court_rule_id = Column(String(36), nullable=True)
    jurisdiction_id = Column(String(36), nullable=True)

    # Inputs
    trigger_date = Column(DateTime, nullable=False)
    time_limit = Column(Float, nullable=False)
    time_limit_unit = Column(SQLEnum(TimeLimitUnit), nullable=False)
    calculation_method = Column(SQLEnum(CalculationMethod), nullable=False)
    include_weekends = Column(Boolean, nullable=False)
    include_holidays = Column(Boolean, nullable=False)
    business_days_only = Column(Boolean, nullable=False)
    custom_strategy = Column(String(100), nullable=True)

    # Outputs
    calculated_date = Column(DateTime, nullable=False)
    actual_days = Column(Integer, nullable=False)
    skipped_days = Column(Integer, default=0)
    skipped_details = Column(JSON, nullable=True)    # {"weekends": n, "holidays": n, "custom_skipped": n}
    calculation_steps = Column(JSON, nullable=True)  # [{"date", "action", "reason"}]
    warnings = Column(JSON, nullable=True)

    # Override context
    override_reason = Column(Text, nullable=True)
    actor_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow)

    automated_deadline = relationship("AutomatedDeadlineDB", back_populates="calculations")


class AuditSequenceDB(Base):
    """Named monotonic counter for audit sequence numbers."""
    __tablename__ = "audit_sequences"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class DeadlineTrailDB(Base):
    """
    Human-readable history of an automated deadline.
    Append-only - generated, overridden, status_reconciled.
    """
    __tablename__ = "deadline_trail"

    id = Column(String(36), primary_key=True)  # UUID
    automated_deadline_id = Column(String(36), ForeignKey("automated_deadlines.id"), nullable=False, index=True)

    event_type = Column(String(50), nullable=False)
    actor = Column(SQLEnum(ActorType), nullable=False)
    actor_id = Column(String(36), nullable=True)
    description = Column(Text, nullable=False)

    # Event Metadata (named to avoid the reserved 'metadata' attribute)
    event_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    automated_deadline = relationship("AutomatedDeadlineDB", back_populates="trail")
