"""
API tests for the deadline routers (FastAPI TestClient, in-memory SQLite).
"""
import pytest
from datetime import datetime
from fastapi.testclient import TestClient

from app.auth import create_access_token, get_current_actor
from app.config import INTERNAL_API_KEY
from app.database import get_db
from app.main import app
from app.models.db_models import CalculationMethod

from conftest import make_template


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = lambda: "reviewer-1"
    yield TestClient(app)
    app.dependency_overrides.clear()


def trigger(client, case_id, trigger_date="2026-01-05T09:00:00"):
    return client.post("/automated-deadlines/trigger", json={
        "case_id": case_id,
        "trigger_event": "SERVICE_COMPLETED",
        "trigger_date": trigger_date,
    })


class TestAutomatedDeadlines:

    def test_trigger_generates(self, client, db, case, jurisdiction):
        make_template(db, "Answer", jurisdiction_id=jurisdiction.id)

        response = trigger(client, case.id)

        assert response.status_code == 200
        body = response.json()
        assert body["summary"] == {"succeeded": 1, "failed": 0}
        assert body["deadlines_created"][0]["due_date"] == "2026-01-26T09:00:00"

    def test_trigger_reports_partial_failure(self, client, db, case, jurisdiction):
        make_template(db, "Answer", jurisdiction_id=jurisdiction.id)
        make_template(db, "Odd", jurisdiction_id=jurisdiction.id,
                      calculation_method=CalculationMethod.CUSTOM, custom_strategy="lunar")

        body = trigger(client, case.id).json()

        assert body["summary"] == {"succeeded": 1, "failed": 1}
        assert body["errors"][0]["error_type"] == "UnsupportedMethodError"

    def test_trigger_unknown_case_is_400(self, client):
        assert trigger(client, "no-such-case").status_code == 400

    def test_trigger_unknown_event_is_400(self, client, case):
        response = client.post("/automated-deadlines/trigger", json={
            "case_id": case.id, "trigger_event": "MOON_LANDING", "trigger_date": "2026-01-05T09:00:00",
        })
        assert response.status_code == 400

    def test_list_with_breakdown(self, client, db, case, jurisdiction):
        make_template(db, "Answer", jurisdiction_id=jurisdiction.id)
        trigger(client, case.id)

        body = client.get("/automated-deadlines", params={"case_id": case.id}).json()

        assert body["pagination"]["total"] == 1
        assert sum(body["status_breakdown"].values()) == 1
        assert body["deadlines"][0]["title"] == "Answer"

    def test_list_unknown_status_is_400(self, client):
        assert client.get("/automated-deadlines", params={"status": "ARCHIVED"}).status_code == 400

    def test_override_and_history(self, client, db, case, jurisdiction):
        make_template(db, "Answer", jurisdiction_id=jurisdiction.id)
        deadline_id = trigger(client, case.id).json()["deadlines_created"][0]["automated_deadline_id"]

        response = client.put("/automated-deadlines/override", json={
            "automated_deadline_id": deadline_id,
            "new_due_date": "2026-02-09T09:00:00",
            "reason": "Stipulated extension of time",
        })

        assert response.status_code == 200
        assert response.json()["deadline"]["overridden_by"] == "reviewer-1"

        history = client.get(f"/automated-deadlines/{deadline_id}/calculations").json()
        assert [c["source"] for c in history["calculations"]] == ["GENERATED", "OVERRIDE"]

    def test_override_without_reason_is_400(self, client, db, case, jurisdiction):
        make_template(db, "Answer", jurisdiction_id=jurisdiction.id)
        deadline_id = trigger(client, case.id).json()["deadlines_created"][0]["automated_deadline_id"]

        response = client.put("/automated-deadlines/override", json={
            "automated_deadline_id": deadline_id, "status": "COMPLETED", "reason": "",
        })

        assert response.status_code == 400

    def test_history_unknown_is_404(self, client):
        assert client.get("/automated-deadlines/missing/calculations").status_code == 404


class TestCalculator:

    def test_single_calculation(self, client, jurisdiction):
        response = client.post("/deadline-calculator", json={
            "trigger_date": "2026-01-16T00:00:00",
            "time_limit": 1,
            "jurisdiction_id": jurisdiction.id,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["calculated_date"] == "2026-01-20T00:00:00"
        assert body["skipped_details"]["holidays"] == 1
        assert body["calculation_id"] is None

    def test_saved_calculation(self, client):
        body = client.post("/deadline-calculator", json={
            "trigger_date": "2026-01-05T00:00:00", "time_limit": 3, "save_calculation": True,
        }).json()

        assert body["calculation_id"]

    def test_unknown_strategy_is_422(self, client):
        response = client.post("/deadline-calculator", json={
            "trigger_date": "2026-01-05T00:00:00", "time_limit": 3,
            "calculation_method": "CUSTOM", "custom_strategy": "lunar",
        })
        assert response.status_code == 422

    def test_unknown_jurisdiction_is_404(self, client):
        response = client.post("/deadline-calculator", json={
            "trigger_date": "2026-01-05T00:00:00", "time_limit": 3, "jurisdiction_id": "missing",
        })
        assert response.status_code == 404

    def test_bulk_isolates_failures(self, client):
        response = client.post("/deadline-calculator/bulk", json={"calculations": [
            {"trigger_date": "2026-01-02T00:00:00", "time_limit": 5},
            {"trigger_date": "2026-01-02T00:00:00", "time_limit": -1},
            {"trigger_date": "2026-01-02T00:00:00", "time_limit": 2, "calculation_method": "CALENDAR_DAYS"},
        ]})

        body = response.json()
        assert body["summary"] == {"total": 3, "successful": 2, "failed": 1}
        assert body["results"][1]["error_type"] == "ValidationError"
        assert body["results"][0]["calculated_date"] == "2026-01-09T00:00:00"

    def test_bulk_rejects_empty(self, client):
        assert client.post("/deadline-calculator/bulk", json={"calculations": []}).status_code == 422


class TestReference:

    def test_court_rules(self, client, court_rule, jurisdiction):
        body = client.get("/court-rules", params={"jurisdiction_id": jurisdiction.id}).json()

        assert body["count"] == 1
        assert body["court_rules"][0]["rule_number"] == "FRCP 12(a)(1)(A)(i)"

    def test_holidays(self, client, jurisdiction):
        body = client.get(f"/jurisdictions/{jurisdiction.id}/holidays", params={"year": 2026}).json()

        assert body["count"] == 3

    def test_holidays_unknown_jurisdiction(self, client):
        assert client.get("/jurisdictions/missing/holidays").status_code == 404


class TestInternal:

    def test_reconcile_requires_key(self, client):
        response = client.post("/internal/deadline-reconcile", headers={"X-Internal-Key": "wrong"})
        assert response.status_code == 403

    def test_reconcile(self, client):
        response = client.post("/internal/deadline-reconcile", headers={"X-Internal-Key": INTERNAL_API_KEY})

        assert response.status_code == 200
        assert response.json()["task"] == "deadline_reconcile"

    def test_upcoming(self, client):
        response = client.get("/internal/deadlines/upcoming", headers={"X-Internal-Key": INTERNAL_API_KEY})

        assert response.status_code == 200
        assert response.json()["count"] == 0


class TestAuth:

    def test_valid_token_accepted(self, client, session_factory):
        app.dependency_overrides.pop(get_current_actor)
        token = create_access_token("reviewer-2")

        response = client.get("/court-rules", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_invalid_token_rejected(self, client):
        app.dependency_overrides.pop(get_current_actor)

        response = client.get("/court-rules", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
