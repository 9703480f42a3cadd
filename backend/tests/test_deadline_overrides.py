"""
Tests for the Deadline Override Service.

Key tests:
1. Mandatory reason, rejected before any change
2. Due-date correction keeps the original snapshot and appends a new one
3. Terminal status propagation to the linked deadline
4. Disallowed status changes
5. Extension limits
"""
import pytest
from datetime import datetime
from unittest.mock import patch

from app.models.db_models import (
    AutomatedDeadlineDB,
    CalculationSource,
    DeadlineCalculationDB,
    DeadlineRecordStatus,
    DeadlineStatus,
)
from app.services.deadlines import (
    AuditIntegrityError,
    AuditTrail,
    DeadlineGenerator,
    DeadlineOverrideService,
    NotFoundError,
    OverrideRequest,
    TriggerEventInput,
    ValidationError,
)
from app.models.db_models import TriggerEvent

from conftest import make_template


NOW = datetime(2026, 1, 10, 12, 0)


@pytest.fixture
def service(db):
    return DeadlineOverrideService(db, clock=lambda: NOW)


def generate(db, case, jurisdiction, **template_fields):
    make_template(db, "Answer", jurisdiction_id=jurisdiction.id, **template_fields)
    DeadlineGenerator(db, clock=lambda: datetime(2026, 1, 5)).generate(TriggerEventInput(
        case_id=case.id,
        trigger_event=TriggerEvent.SERVICE_COMPLETED,
        trigger_date=datetime(2026, 1, 5, 9, 0),
    ))
    return db.query(AutomatedDeadlineDB).one()


@pytest.fixture
def automated(db, case, jurisdiction):
    return generate(db, case, jurisdiction)


class TestReason:

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_empty_reason_rejected_without_side_effects(self, db, service, automated, reason):
        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason=reason, new_due_date=datetime(2026, 2, 2)))

        db.refresh(automated)
        assert automated.is_manual_override is False
        assert automated.due_date == datetime(2026, 1, 26, 9, 0)
        assert db.query(DeadlineCalculationDB).count() == 1

    def test_nothing_to_change_rejected(self, service, automated):
        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason="No-op"))

    def test_unknown_deadline(self, service):
        with pytest.raises(NotFoundError):
            service.override("missing", OverrideRequest(reason="x", status=DeadlineStatus.CANCELLED))


class TestDueDateOverride:

    def test_correction_appends_snapshot(self, db, service, automated):
        original_snapshot = automated.calculations[0]
        original_date = original_snapshot.calculated_date

        updated = service.override(
            automated.id,
            OverrideRequest(reason="Court granted stipulation", new_due_date=datetime(2026, 2, 9, 9, 0)),
            actor_id="user-1",
        )

        assert updated.due_date == datetime(2026, 2, 9, 9, 0)
        assert updated.is_manual_override is True
        assert updated.override_reason == "Court granted stipulation"
        assert updated.overridden_by == "user-1"
        assert updated.overridden_at == NOW
        assert updated.deadline.due_date == datetime(2026, 2, 9, 9, 0)
        assert "Court granted stipulation" in updated.deadline.notes

        snapshots = db.query(DeadlineCalculationDB).order_by(DeadlineCalculationDB.sequence_number).all()
        assert [s.source for s in snapshots] == [CalculationSource.GENERATED, CalculationSource.OVERRIDE]
        assert snapshots[0].calculated_date == original_date
        assert snapshots[1].calculated_date == datetime(2026, 2, 9, 9, 0)
        assert snapshots[1].override_reason == "Court granted stipulation"
        assert snapshots[1].actor_id == "user-1"

    def test_moving_date_into_past_marks_overdue(self, service, automated):
        updated = service.override(
            automated.id, OverrideRequest(reason="Entered wrong", new_due_date=datetime(2026, 1, 8)))

        assert updated.status == DeadlineStatus.OVERDUE
        assert updated.deadline.status == DeadlineRecordStatus.OVERDUE

    def test_snapshot_failure_leaves_deadline_untouched(self, db, service, automated):
        with patch.object(AuditTrail, "record_calculation", side_effect=RuntimeError("down")):
            with pytest.raises(AuditIntegrityError):
                service.override(automated.id, OverrideRequest(reason="x", new_due_date=datetime(2026, 3, 2)))

        db.refresh(automated)
        assert automated.due_date == datetime(2026, 1, 26, 9, 0)
        assert automated.is_manual_override is False


class TestStatusOverride:

    def test_completed_propagates(self, service, automated):
        updated = service.override(
            automated.id, OverrideRequest(reason="Answer filed", status=DeadlineStatus.COMPLETED), actor_id="u1")

        assert updated.status == DeadlineStatus.COMPLETED
        assert updated.deadline.status == DeadlineRecordStatus.COMPLETED
        assert updated.deadline.completed_at == NOW
        assert updated.deadline.completed_by == "u1"

    def test_completed_late_propagates_as_completed(self, service, automated):
        updated = service.override(
            automated.id, OverrideRequest(reason="Filed late", status="COMPLETED_LATE"))

        assert updated.deadline.status == DeadlineRecordStatus.COMPLETED

    @pytest.mark.parametrize("status", [DeadlineStatus.WAIVED, DeadlineStatus.CANCELLED])
    def test_waived_and_cancelled_cancel_deadline(self, service, automated, status):
        updated = service.override(automated.id, OverrideRequest(reason="Case settled", status=status))

        assert updated.deadline.status == DeadlineRecordStatus.CANCELLED

    def test_status_only_override_still_snapshots(self, db, service, automated):
        service.override(automated.id, OverrideRequest(reason="Done", status=DeadlineStatus.COMPLETED))

        assert db.query(DeadlineCalculationDB).count() == 2

    @pytest.mark.parametrize("status", ["PENDING", "DUE_SOON", "OVERDUE"])
    def test_time_derived_status_rejected(self, service, automated, status):
        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason="x", status=status))

    def test_terminal_cannot_be_reopened(self, service, automated):
        service.override(automated.id, OverrideRequest(reason="Done", status=DeadlineStatus.COMPLETED))

        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason="Oops", status=DeadlineStatus.CANCELLED))

    def test_unknown_status_rejected(self, service, automated):
        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason="x", status="ARCHIVED"))


class TestExtensions:

    def test_not_extendable(self, service, automated):
        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason="x", status=DeadlineStatus.EXTENDED))

    def test_extension_limit(self, db, case, jurisdiction, service):
        automated = generate(db, case, jurisdiction, is_extendable=True, max_extensions=1)

        updated = service.override(automated.id, OverrideRequest(
            reason="Stipulated extension", status=DeadlineStatus.EXTENDED, new_due_date=datetime(2026, 2, 16)))

        assert updated.extension_count == 1
        assert updated.status == DeadlineStatus.EXTENDED

        with pytest.raises(ValidationError):
            service.override(automated.id, OverrideRequest(reason="Again", status=DeadlineStatus.EXTENDED))

    def test_further_extension_within_limit(self, db, case, jurisdiction, service):
        automated = generate(db, case, jurisdiction, is_extendable=True, max_extensions=2)

        service.override(automated.id, OverrideRequest(reason="First", status=DeadlineStatus.EXTENDED))
        updated = service.override(automated.id, OverrideRequest(reason="Second", status=DeadlineStatus.EXTENDED))

        assert updated.extension_count == 2


class TestHistory:

    def test_history_lists_snapshots_and_trail(self, service, automated):
        service.override(automated.id, OverrideRequest(reason="Done", status=DeadlineStatus.COMPLETED))

        history = service.history(automated.id)

        assert [c["source"] for c in history["calculations"]] == ["GENERATED", "OVERRIDE"]
        assert [t["event_type"] for t in history["trail"]] == ["generated", "overridden"]
