import pytest
from fastapi.testclient import TestClient

from automation_engine.api.routes import get_automation_engine, get_scheduler
from automation_engine.core.database import get_db
from automation_engine.main import app
from tests.conftest import START, actuator_rule_payload, alert_rule_payload


@pytest.fixture()
def api_client(session_factory, automation_engine, scheduler):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_automation_engine] = lambda: automation_engine
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _create(api_client, payload):
    response = api_client.post("/api/automation/rules", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(api_client):
    assert api_client.get("/api/health").json() == {"status": "ok"}


def test_create_and_get_rule(api_client):
    created = _create(api_client, alert_rule_payload())

    response = api_client.get(f"/api/automation/rules/{created['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Greenhouse too hot"
    assert body["action_type"] == "CREATE_ALERT"
    assert body["cooldown_state"] == "ARMED"
    assert body["rearm_at"] is None
    assert body["trigger_count"] == 0


def test_create_rejects_invalid_rule(api_client):
    response = api_client.post("/api/automation/rules", json=alert_rule_payload(cooldown_minutes=-3))

    assert response.status_code == 422
    assert "cooldown_minutes" in response.json()["detail"]


def test_unknown_rule_is_404(api_client):
    assert api_client.get("/api/automation/rules/999").status_code == 404
    assert api_client.patch("/api/automation/rules/999", json={"name": "x"}).status_code == 404
    assert api_client.delete("/api/automation/rules/999").status_code == 404
    assert api_client.post("/api/automation/rules/999/activate", json={"is_active": False}).status_code == 404
    assert api_client.post("/api/automation/rules/999/evaluate", json={}).status_code == 404


def test_list_rules_filters_by_activity(api_client):
    _create(api_client, alert_rule_payload())
    inactive = _create(api_client, actuator_rule_payload(is_active=False))

    everything = api_client.get("/api/automation/rules").json()
    only_inactive = api_client.get("/api/automation/rules", params={"is_active": "false"}).json()

    assert everything["count"] == 2
    assert [item["id"] for item in only_inactive["items"]] == [inactive["id"]]


def test_update_and_activate(api_client):
    created = _create(api_client, alert_rule_payload())

    patched = api_client.patch(f"/api/automation/rules/{created['id']}", json={"threshold_value": 28})
    assert patched.status_code == 200
    assert patched.json()["threshold_value"] == 28.0

    invalid = api_client.patch(f"/api/automation/rules/{created['id']}", json={"operator": "between"})
    assert invalid.status_code == 422

    deactivated = api_client.post(f"/api/automation/rules/{created['id']}/activate", json={"is_active": False})
    assert deactivated.json()["is_active"] is False


def test_manual_evaluation_and_execution_log(api_client, alert_sink):
    created = _create(api_client, alert_rule_payload(is_active=False))

    fired = api_client.post(f"/api/automation/rules/{created['id']}/evaluate", json={"sensor_value": 31.5})
    cooling = api_client.post(f"/api/automation/rules/{created['id']}/evaluate", json={"sensor_value": 32})

    assert fired.status_code == 200
    assert fired.json()["outcome"] == "FIRED"
    assert fired.json()["execution"]["manual"] is True
    assert cooling.json()["outcome"] == "SKIPPED_COOLDOWN"
    assert len(alert_sink.alerts) == 1

    log = api_client.get(f"/api/automation/rules/{created['id']}/executions").json()
    assert log["count"] == 2
    assert [item["status"] for item in log["items"]] == ["SKIPPED_COOLDOWN", "COMPLETED"]

    skipped = api_client.get("/api/automation/executions", params={"status": "skipped_cooldown"}).json()
    assert skipped["count"] == 1
    assert api_client.get("/api/automation/executions", params={"status": "bogus"}).status_code == 400

    rule = api_client.get(f"/api/automation/rules/{created['id']}").json()
    assert rule["cooldown_state"] == "COOLING"
    assert rule["success_count"] == 1


def test_evaluate_without_reading_reports_unavailable(api_client):
    created = _create(api_client, alert_rule_payload(sensor_deployment_id=55))

    response = api_client.post(f"/api/automation/rules/{created['id']}/evaluate")

    assert response.status_code == 200
    assert response.json()["outcome"] == "READING_UNAVAILABLE"
    assert response.json()["execution"] is None


def test_scheduler_run_and_status(api_client, readings, actuator_sink):
    created = _create(api_client, actuator_rule_payload())
    readings.push(created["sensor_deployment_id"], 12, START)

    summary = api_client.post("/api/automation/scheduler/run")

    assert summary.status_code == 200
    assert summary.json()["fired"] == 1
    assert len(actuator_sink.commands) == 1

    status = api_client.get("/api/automation/scheduler").json()
    assert status["state"] == "IDLE"
    assert status["cycles_run"] == 1
    assert status["last_cycle"]["fired"] == 1


def test_stats_and_reconcile(api_client):
    created = _create(api_client, alert_rule_payload())
    api_client.post(f"/api/automation/rules/{created['id']}/evaluate", json={"sensor_value": 40})
    api_client.post(f"/api/automation/rules/{created['id']}/evaluate", json={"sensor_value": 10})

    stats = api_client.get("/api/automation/stats").json()
    assert stats["rules"] == {"total": 1, "active": 1, "inactive": 0}
    assert stats["counters"] == {"trigger_count": 1, "success_count": 1, "failure_count": 0}
    assert stats["executions"] == {"COMPLETED": 2, "FAILED": 0, "SKIPPED_COOLDOWN": 0}
    assert stats["recently_triggered"][0]["id"] == created["id"]

    reconciled = api_client.post(f"/api/automation/rules/{created['id']}/reconcile").json()
    assert reconciled["trigger_count"] == 1


def test_delete_rule(api_client):
    created = _create(api_client, alert_rule_payload())

    assert api_client.delete(f"/api/automation/rules/{created['id']}").json() == {"success": True}
    assert api_client.get(f"/api/automation/rules/{created['id']}").status_code == 404
