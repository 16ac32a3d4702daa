import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from applytrack.api.app import create_app
from applytrack.config import Settings
from applytrack.db.repositories import Repository
from applytrack.db.session import SessionLocal


def _auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {user.token}"}


def _create(client: TestClient, user, **overrides):
    body = {
        "jobTitle": "Platform Engineer",
        "companyName": "Massive Dynamic",
        "jobLink": "https://jobs.example.com/pe",
        "description": "Kubernetes",
    }
    body.update(overrides)
    return client.post("/api/applications", json=body, headers=_auth(user))


def test_requests_without_token_are_rejected() -> None:
    client = TestClient(create_app())

    resp = client.get("/api/applications")

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Authentication required"


def test_create_accepts_variant_names_and_seeds_steps(user) -> None:
    client = TestClient(create_app())

    resp = _create(client, user)

    assert resp.status_code == 201
    body = resp.json()
    application = body["application"]
    assert application["title"] == "Platform Engineer"
    assert application["company"] == "Massive Dynamic"
    assert application["location"] == "Remote"
    assert application["status"] == "In Progress"
    assert application["progress"] == 0
    assert [step["step_name"] for step in body["steps"]] == ["personal_info", "resume", "cover_letter", "review"]
    assert int(resp.headers["X-Data-Version"]) == body["version"] == 1


def test_create_requires_title_and_company(user) -> None:
    client = TestClient(create_app())
    resp = client.post("/api/applications", json={"title": "", "company": "x"}, headers=_auth(user))
    assert resp.status_code == 422


def test_data_version_increases_with_each_mutation(user) -> None:
    client = TestClient(create_app())
    created = _create(client, user).json()
    step_id = created["steps"][0]["id"]

    complete = client.post(
        f"/api/applications/steps/{step_id}/complete",
        json={"notes": "hello", "completed": True},
        headers=_auth(user),
    )
    listing = client.get("/api/job-applications", headers=_auth(user))

    assert complete.status_code == 200
    assert complete.json()["completed"] is True
    assert complete.json()["data"] == {"notes": "hello"}
    assert int(complete.headers["X-Data-Version"]) == 2
    assert int(listing.headers["X-Data-Version"]) == 2
    assert listing.json()[0]["progress"] == 25


def test_other_users_cannot_touch_application(user, other_user) -> None:
    client = TestClient(create_app())
    created = _create(client, user).json()
    application_id = created["application"]["id"]

    read = client.get(f"/api/applications/{application_id}", headers=_auth(other_user))
    submit = client.post(f"/api/applications/{application_id}/submit", json={"applied": True}, headers=_auth(other_user))
    step = client.post(
        f"/api/applications/steps/{created['steps'][0]['id']}/complete", json={}, headers=_auth(other_user)
    )

    assert read.status_code == 403
    assert submit.status_code == 403
    assert step.status_code == 403
    assert client.get("/api/applications", headers=_auth(other_user)).json() == []


def test_submit_sets_status_from_applied_flag(user) -> None:
    client = TestClient(create_app())
    first = _create(client, user).json()["application"]["id"]
    second = _create(client, user, jobTitle="Second").json()["application"]["id"]

    applied = client.post(
        f"/api/applications/{first}/submit",
        json={"applied": True, "submissionNotes": "via referral"},
        headers=_auth(user),
    )
    not_applied = client.post(f"/api/applications/{second}/submit", json={"applied": False}, headers=_auth(user))

    assert applied.json()["status"] == "Applied"
    assert applied.json()["notes"] == "via referral"
    assert applied.json()["applied_at"] is not None
    assert not_applied.json()["status"] == "In Progress"
    assert not_applied.json()["applied_at"] is None


def test_submit_rejected_for_closed_application(user) -> None:
    client = TestClient(create_app())
    application_id = _create(client, user).json()["application"]["id"]
    client.put(f"/api/applications/{application_id}", json={"status": "Rejected"}, headers=_auth(user))

    resp = client.post(f"/api/applications/{application_id}/submit", json={"applied": True}, headers=_auth(user))

    assert resp.status_code == 400
    with SessionLocal() as db:
        assert Repository(db).get_application(application_id).status == "Rejected"


def test_update_accepts_external_job_id_variant(user) -> None:
    client = TestClient(create_app())
    application_id = _create(client, user).json()["application"]["id"]

    resp = client.put(
        f"/api/applications/{application_id}",
        json={"adzunaJobId": "adz-4417", "notes": "from search"},
        headers=_auth(user),
    )

    assert resp.status_code == 200
    assert resp.json()["external_job_id"] == "adz-4417"
    with SessionLocal() as db:
        stored = Repository(db).get_application(application_id)
        assert stored.external_job_id == "adz-4417"
        assert stored.notes == "from search"


def test_delete_removes_application_and_steps(user) -> None:
    client = TestClient(create_app())
    application_id = _create(client, user).json()["application"]["id"]

    resp = client.delete(f"/api/applications/{application_id}", headers=_auth(user))

    assert resp.status_code == 204
    assert int(resp.headers["X-Data-Version"]) == 2
    assert client.get(f"/api/applications/{application_id}", headers=_auth(user)).status_code == 404
    with SessionLocal() as db:
        assert Repository(db).list_steps(application_id) == []


def test_open_mode_attributes_requests_to_demo_user(monkeypatch) -> None:
    monkeypatch.setattr("applytrack.api.deps.get_settings", lambda: Settings(api_auth_mode="open"))
    client = TestClient(create_app())

    resp = client.get("/api/users/me")

    assert resp.status_code == 200
    assert resp.json()["email"] == "demo@applytrack.local"


def test_stream_rejects_unknown_token() -> None:
    client = TestClient(create_app())
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/api/applications/stream?token=nope") as ws:
            ws.receive_json()
    assert excinfo.value.code == 4401


def test_job_search_without_sources_is_bad_gateway(monkeypatch) -> None:
    monkeypatch.setattr(
        "applytrack.core.job_search.get_settings", lambda: Settings(adzuna_app_id="", adzuna_app_key="")
    )
    client = TestClient(create_app())

    assert client.get("/api/jobs/sources").json() == {"sources": []}
    assert client.get("/api/jobs/search", params={"query": "python"}).status_code == 502
    assert client.get("/api/jobs/search").json()["jobs"] == []
