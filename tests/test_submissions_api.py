import pytest
from werkzeug.security import generate_password_hash

from app.docflow import create_app
from app.docflow.db import session_scope
from app.docflow.models import AuditEvent, Base, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("WORKFLOW_SCHEDULER", "manual")
    monkeypatch.setenv("NOTIFICATION_SWEEP_SECONDS", "0")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        for email, role, dept in (
            ("operator@example.com", "Operator", "Production"),
            ("operator2@example.com", "Operator", "Production"),
            ("supervisor@example.com", "Supervisor", "Production"),
            ("admin@example.com", "Admin", "Production"),
            ("system@example.com", "System", "Production"),
            ("quality.sup@example.com", "Supervisor", "Quality"),
        ):
            s.add(User(email=email, password_hash=generate_password_hash("pw"), full_name=email, role=role, department=dept))

    return app.test_client()


def _login(client, email):
    client.post("/auth/logout")
    r = client.post("/auth/login", json={"email": email, "password": "pw"})
    assert r.status_code == 200
    return r.json["data"]


def _drain(client):
    return client.application.extensions["workflow_scheduler"].run_pending()


def _create(client, title="Line 3 torque check", **extra):
    r = client.post("/api/forms/submissions", json={"title": title, **extra})
    assert r.status_code == 201, r.json
    return r.json["data"]


def test_anonymous_requests_are_401(client):
    assert client.get("/api/forms/submissions").status_code == 401
    assert client.post("/api/forms/submissions", json={"title": "abc"}).status_code == 401
    assert client.get("/api/notifications/").status_code == 401


def test_create_validates_payload(client):
    _login(client, "operator@example.com")
    r = client.post("/api/forms/submissions", json={"title": "ab", "priority": "Urgent"})
    assert r.status_code == 400
    assert len(r.json["errors"]) == 2

    data = _create(client, priority="High", notes="Shift A")
    assert data["status"] == "Draft"
    assert data["priority"] == "High"
    assert data["department"] == "Production"
    assert data["approval_workflow"] == []


def test_system_accounts_cannot_create(client):
    _login(client, "supervisor@example.com")
    assert client.post("/api/forms/submissions", json={"title": "Line check"}).status_code == 201
    _login(client, "system@example.com")
    r = client.post("/api/forms/submissions", json={"title": "Line check"})
    assert r.status_code == 403
    assert "not authorized" in r.json["message"]


def test_full_flow_over_http(client):
    _login(client, "operator@example.com")
    sub = _create(client)
    sid = sub["id"]

    r = client.put(f"/api/forms/submissions/{sid}/submit", json={"comments": "Shift A"})
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["data"]["status"] == "Submitted"

    assert _drain(client) == 1
    assert client.get(f"/api/forms/submissions/{sid}").json["data"]["status"] == "Under Verification"

    _login(client, "supervisor@example.com")
    assert client.get("/api/notifications/count").json["data"]["unreadCount"] == 1

    r = client.put(f"/api/forms/submissions/{sid}/verify", json={"comments": "Within tolerance"})
    assert r.status_code == 200
    assert r.json["data"]["status"] == "Verified"

    # Supervisors hold no role on Verified.
    r = client.put(f"/api/forms/submissions/{sid}/approve", json={})
    assert r.status_code == 403

    _drain(client)
    data = client.get(f"/api/forms/submissions/{sid}").json["data"]
    assert data["status"] == "Completed"
    assert data["completed_at"] is not None
    assert [s["step"] for s in data["approval_workflow"]] == ["verification", "approval", "completion"]


def test_verify_route_starts_verification_from_submitted(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]
    client.put(f"/api/forms/submissions/{sid}/submit")

    _login(client, "supervisor@example.com")
    r = client.put(f"/api/forms/submissions/{sid}/verify")
    assert r.status_code == 200
    assert r.json["data"]["status"] == "Under Verification"

    # The queued Submitted timer is now stale.
    _drain(client)
    assert client.get(f"/api/forms/submissions/{sid}").json["data"]["status"] == "Under Verification"


def test_reject_requires_comments(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]
    client.put(f"/api/forms/submissions/{sid}/submit")
    _drain(client)

    _login(client, "supervisor@example.com")
    r = client.put(f"/api/forms/submissions/{sid}/reject", json={"comments": "no"})
    assert r.status_code == 400

    r = client.put(f"/api/forms/submissions/{sid}/reject", json={"comments": "Station 4 readings missing"})
    assert r.status_code == 200
    assert r.json["data"]["status"] == "Rejected"
    assert r.json["data"]["approval_workflow"][-1]["status"] == "rejected"


def test_approve_only_from_verified(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]
    _login(client, "admin@example.com")
    r = client.put(f"/api/forms/submissions/{sid}/approve")
    assert r.status_code == 400


def test_generic_action_endpoint_maps_errors(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]

    r = client.post(f"/api/forms/submissions/{sid}/actions", json={"action": "launch_rocket"})
    assert r.status_code == 400
    assert r.json["message"] == "Unknown action: launch_rocket"

    r = client.post(f"/api/forms/submissions/{sid}/actions", json={"action": "verify_form"})
    assert r.status_code == 409

    r = client.post(f"/api/forms/submissions/{sid}/actions", json={"action": "submit_form"})
    assert r.status_code == 200
    assert r.json["message"] == "Form submitted successfully"

    with session_scope(client.application) as s:
        rows = (
            s.query(AuditEvent)
            .filter(AuditEvent.entity_type == "FormSubmission", AuditEvent.entity_id == str(sid))
            .order_by(AuditEvent.id)
            .all()
        )
        assert [(e.action, e.status) for e in rows] == [
            ("create_form_submission", "success"),
            ("launch_rocket", "failure"),
            ("verify_form", "failure"),
            ("submit_form", "success"),
        ]


def test_visibility_rules(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]
    _create(client, title="Second form")

    _login(client, "operator2@example.com")
    _create(client, title="Someone else's form")
    r = client.get("/api/forms/submissions")
    assert [d["title"] for d in r.json["data"]] == ["Someone else's form"]
    assert client.get(f"/api/forms/submissions/{sid}").status_code == 403
    assert client.put(f"/api/forms/submissions/{sid}/submit").status_code == 403

    _login(client, "supervisor@example.com")
    r = client.get("/api/forms/submissions?limit=2")
    assert r.json["pagination"] == {"currentPage": 1, "totalPages": 2, "totalDocs": 3, "limit": 2}

    _login(client, "quality.sup@example.com")
    assert client.get(f"/api/forms/submissions/{sid}").status_code == 403
    assert client.get("/api/forms/submissions").json["data"] == []

    _login(client, "admin@example.com")
    assert client.get(f"/api/forms/submissions/{sid}").status_code == 200
    assert client.get("/api/forms/submissions/99999").status_code == 404
    assert client.get("/api/forms/submissions?status=Draft&department=Production").json["pagination"]["totalDocs"] == 3


def test_audit_listing(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]
    client.put(f"/api/forms/submissions/{sid}/submit")
    assert client.get("/api/audit").status_code == 403

    _login(client, "supervisor@example.com")
    r = client.get(f"/api/audit?action=submit_form&entity_id={sid}")
    assert r.status_code == 200
    [ev] = r.json["data"]
    assert ev["status"] == "success"
    assert ev["entity_type"] == "FormSubmission"

    r = client.get("/api/audit?status=failure")
    assert r.json["count"] == 0


def test_notifications_api(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]
    client.put(f"/api/forms/submissions/{sid}/submit")
    _drain(client)

    _login(client, "supervisor@example.com")
    r = client.get("/api/notifications/")
    [n] = r.json["data"]
    assert n["title"] == "Form Ready for Verification"
    assert n["data"]["submissionId"] == sid
    assert n["read"] is False

    assert client.put("/api/notifications/missing/read").status_code == 404
    assert client.put(f"/api/notifications/{n['id']}/read").status_code == 200
    assert client.get("/api/notifications/?unreadOnly=true").json["count"] == 0
    assert client.put("/api/notifications/read-all").json["data"]["count"] == 1

    assert client.post("/api/notifications/system", json={"userIds": [1], "title": "t", "message": "m"}).status_code == 403
    assert client.get("/api/notifications/stats").status_code == 403

    admin = _login(client, "admin@example.com")
    r = client.post("/api/notifications/system", json={"userIds": [], "title": "t", "message": "m"})
    assert r.status_code == 400
    r = client.post(
        "/api/notifications/system",
        json={"userIds": [admin["id"]], "title": "Maintenance", "message": "Line 2 down at noon", "data": {"line": 2}},
    )
    assert r.status_code == 200
    assert r.json["message"] == "Notification sent to 1 users"
    [mine] = client.get("/api/notifications/").json["data"]
    assert mine["type"] == "system"

    stats = client.get("/api/notifications/stats").json["data"]
    assert stats["totalNotifications"] == 2
    assert stats["usersWithNotifications"] == 2


def test_non_string_input_is_rejected_cleanly(client):
    _login(client, "operator@example.com")
    sid = _create(client)["id"]

    r = client.post(f"/api/forms/submissions/{sid}/actions", json={"action": ["submit_form"]})
    assert r.status_code == 400
    assert r.json["message"].startswith("Unknown action")

    r = client.post("/api/forms/submissions", json={"title": 12345})
    assert r.status_code == 201
    assert r.json["data"]["title"] == "12345"

    r = client.put(f"/api/forms/submissions/{sid}/submit", json={"comments": 5})
    assert r.status_code == 200
    _drain(client)

    _login(client, "supervisor@example.com")
    r = client.put(f"/api/forms/submissions/{sid}/verify", json={"comments": 7})
    assert r.status_code == 200
    assert r.json["data"]["approval_workflow"][0]["comments"] == "7"

    r = client.put(f"/api/forms/submissions/{sid}/approve", json=["not", "an", "object"])
    assert r.status_code == 403

    with session_scope(client.application) as s:
        rows = (
            s.query(AuditEvent)
            .filter(AuditEvent.entity_type == "FormSubmission", AuditEvent.entity_id == str(sid))
            .order_by(AuditEvent.id)
            .all()
        )
        assert [(e.action, e.status) for e in rows] == [
            ("create_form_submission", "success"),
            ("['submit_form']", "failure"),
            ("submit_form", "success"),
            ("start_verification", "success"),
            ("verify_form", "success"),
            ("approve_form", "failure"),
        ]


def test_audit_listing_separates_entity_types(client):
    operator = _login(client, "operator@example.com")
    sid = _create(client)["id"]
    assert sid == operator["id"]

    _login(client, "admin@example.com")
    by_id = client.get(f"/api/audit?entity_id={sid}").json["data"]
    assert {e["entity_type"] for e in by_id} == {"FormSubmission", "User"}

    submissions = client.get(f"/api/audit?entity_type=FormSubmission&entity_id={sid}").json["data"]
    assert [e["action"] for e in submissions] == ["create_form_submission"]

    users = client.get(f"/api/audit?entity_type=User&entity_id={operator['id']}").json["data"]
    assert {e["action"] for e in users} == {"login", "logout"}
