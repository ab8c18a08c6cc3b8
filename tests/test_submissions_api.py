"""End-to-end tests for task submission, override and cancel over HTTP."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from tasktracker.domain.models import TeamMember
from tasktracker.main import (
    app,
    member_repo,
    submission_repo,
    task_repo,
    timeline_repo,
)
from tasktracker.repos.memory import TaskValidationError


@pytest.fixture(autouse=True)
def _clear_repos():
    """Reset in-memory repos before each test."""
    task_repo._store.clear()
    member_repo._store.clear()
    submission_repo._store.clear()
    timeline_repo._entries.clear()
    yield
    task_repo._store.clear()
    member_repo._store.clear()
    submission_repo._store.clear()
    timeline_repo._entries.clear()


@pytest.fixture()
def client():
    return TestClient(app)


@pytest.fixture()
def team():
    alice = TeamMember(id="alice", name="Alice", role="Technician")
    bob = TeamMember(id="bob", name="Bob", role="Technician")
    member_repo.add(alice)
    member_repo.add(bob)
    return alice, bob


# ---------------------------------------------------------------------------
# Stub data helpers
# ---------------------------------------------------------------------------


def _clock(hour: int, minute: int, period: str) -> dict:
    return {"hour": hour, "minute": minute, "period": period}


def _payload(**overrides) -> dict:
    body = {
        "title": "Install split unit",
        "description": "Two units, second floor",
        "customer_name": "Corner Bakery",
        "due_date": "2024-06-01",
        "start": _clock(9, 0, "AM"),
        "finish": _clock(11, 0, "AM"),
        "assignee_ids": ["alice"],
    }
    body.update(overrides)
    return body


def _existing(client: TestClient, **overrides) -> dict:
    body = _payload(
        title="Duct cleaning",
        start=_clock(10, 0, "AM"),
        finish=_clock(12, 0, "PM"),
    )
    body.update(overrides)
    resp = client.post("/tasks/submissions", json=body)
    assert resp.status_code == 201
    return resp.json()["task"]


# ---------------------------------------------------------------------------
# Tests: clean submissions
# ---------------------------------------------------------------------------


def test_clean_submission_creates_task(client: TestClient, team):
    resp = client.post("/tasks/submissions", json=_payload())
    assert resp.status_code == 201
    body = resp.json()

    assert body["state"] == "done"
    assert body["conflicts"] == []
    assert body["task"]["title"] == "Install split unit"
    assert body["task"]["assignees"] == [{"id": "alice", "display_name": "Alice"}]

    tasks = client.get("/tasks").json()
    assert [t["id"] for t in tasks] == [body["task"]["id"]]


def test_free_text_time_is_parsed(client: TestClient, team):
    resp = client.post(
        "/tasks/submissions",
        json=_payload(start=None, finish=None, time="9:00 AM - 12:00 PM"),
    )
    assert resp.status_code == 201
    window = resp.json()["task"]["window"]
    assert window["start"] == {"hour": 9, "minute": 0, "period": "AM"}
    assert window["finish"] == {"hour": 12, "minute": 0, "period": "PM"}


def test_back_to_back_tasks_do_not_conflict(client: TestClient, team):
    _existing(client, start=_clock(10, 0, "AM"), finish=_clock(11, 0, "AM"))

    resp = client.post(
        "/tasks/submissions",
        json=_payload(start=_clock(9, 0, "AM"), finish=_clock(10, 0, "AM")),
    )
    assert resp.status_code == 201
    assert len(client.get("/tasks").json()) == 2


def test_unknown_assignee_is_rejected(client: TestClient, team):
    resp = client.post("/tasks/submissions", json=_payload(assignee_ids=["ghost"]))
    assert resp.status_code == 422
    assert "ghost" in resp.json()["detail"]
    assert client.get("/tasks").json() == []


# ---------------------------------------------------------------------------
# Tests: conflicts presented
# ---------------------------------------------------------------------------


def test_conflict_holds_submission(client: TestClient, team):
    existing = _existing(client)

    resp = client.post("/tasks/submissions", json=_payload())
    assert resp.status_code == 200
    body = resp.json()

    assert body["state"] == "conflict_presented"
    assert body["task"] is None
    assert body["conflicts"] == [
        {
            "existing_task_id": existing["id"],
            "existing_task_title": "Duct cleaning",
            "existing_window": "10:00 AM - 12:00 PM",
            "due_date": "2024-06-01",
            "assignee_id": "alice",
            "assignee_name": "Alice",
        }
    ]
    assert body["groups"][0]["assignee_name"] == "Alice"

    # Nothing new was stored
    assert len(client.get("/tasks").json()) == 1

    pending = client.get("/tasks/submissions").json()
    assert [p["id"] for p in pending] == [body["id"]]


def test_check_reports_without_creating(client: TestClient, team):
    _existing(client, assignee_ids=["alice", "bob"])

    resp = client.post("/tasks/check", json=_payload(assignee_ids=["alice", "bob"]))
    assert resp.status_code == 200
    body = resp.json()
    assert [c["assignee_id"] for c in body["conflicts"]] == ["alice", "bob"]
    assert [g["assignee_id"] for g in body["groups"]] == ["alice", "bob"]
    assert client.get("/tasks/submissions").json() == []
    assert len(client.get("/tasks").json()) == 1


def test_cancel_discards_candidate(client: TestClient, team):
    existing = _existing(client)
    submission = client.post("/tasks/submissions", json=_payload()).json()

    with patch.object(task_repo, "create", wraps=task_repo.create) as create:
        resp = client.post(f"/tasks/submissions/{submission['id']}/cancel")

    assert resp.status_code == 200
    assert resp.json()["state"] == "aborted"
    assert resp.json()["candidate"] is None
    assert create.call_count == 0
    assert len(client.get("/tasks").json()) == 1
    assert client.get("/tasks/submissions").json() == []

    timeline = client.get(f"/tasks/{existing['id']}/timeline").json()
    assert [e["type"] for e in timeline] == [
        "created",
        "conflict_detected",
        "submission_cancelled",
    ]


def test_override_commits_original_candidate(client: TestClient, team):
    _existing(client)
    submission = client.post("/tasks/submissions", json=_payload()).json()

    with patch.object(task_repo, "create", wraps=task_repo.create) as create:
        resp = client.post(f"/tasks/submissions/{submission['id']}/override")

    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "done"
    assert create.call_count == 1
    (committed,), _ = create.call_args
    assert committed.model_dump(mode="json") == submission["candidate"]
    assert body["task"]["title"] == "Install split unit"
    assert len(client.get("/tasks").json()) == 2

    timeline = client.get(f"/tasks/{body['task']['id']}/timeline").json()
    assert [e["type"] for e in timeline] == ["created", "conflict_overridden"]


def test_second_decision_is_rejected(client: TestClient, team):
    _existing(client)
    submission = client.post("/tasks/submissions", json=_payload()).json()
    client.post(f"/tasks/submissions/{submission['id']}/cancel")

    resp = client.post(f"/tasks/submissions/{submission['id']}/override")
    assert resp.status_code == 400
    assert "aborted" in resp.json()["detail"]
    assert len(client.get("/tasks").json()) == 1


def test_decision_on_missing_submission_returns_404(client: TestClient):
    assert client.post("/tasks/submissions/bogus/override").status_code == 404
    assert client.post("/tasks/submissions/bogus/cancel").status_code == 404
    assert client.get("/tasks/submissions/bogus").status_code == 404


def test_override_failure_keeps_candidate(client: TestClient, team):
    _existing(client)
    submission = client.post("/tasks/submissions", json=_payload()).json()

    with patch.object(
        task_repo, "create", side_effect=TaskValidationError("customer is blocked")
    ):
        resp = client.post(f"/tasks/submissions/{submission['id']}/override")

    assert resp.status_code == 422
    assert resp.json()["detail"] == "customer is blocked"

    held = client.get(f"/tasks/submissions/{submission['id']}").json()
    assert held["state"] == "editing"
    assert held["candidate"] == submission["candidate"]


def test_rejected_clean_submission_is_returned_for_editing(client: TestClient, team):
    resp = client.post("/tasks/submissions", json=_payload(title="   "))

    assert resp.status_code == 422
    body = resp.json()
    assert body["state"] == "editing"
    assert body["error"] == "Task title must not be empty"
    assert body["candidate"]["title"] == "   "
    assert body["task"] is None

    held = client.get(f"/tasks/submissions/{body['id']}").json()
    assert held["state"] == "editing"
    assert held["candidate"] == body["candidate"]
    assert client.get("/tasks").json() == []


# ---------------------------------------------------------------------------
# Tests: rescheduling
# ---------------------------------------------------------------------------


def test_reschedule_ignores_own_previous_slot(client: TestClient, team):
    task = _existing(client)

    resp = client.post(
        f"/tasks/{task['id']}/reschedule",
        json={
            "due_date": "2024-06-01",
            "start": _clock(11, 0, "AM"),
            "finish": _clock(1, 0, "PM"),
            "reason": "Customer asked for later",
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "done"
    assert body["rescheduled_task_id"] == task["id"]

    stored = client.get(f"/tasks/{task['id']}").json()
    assert stored["window"]["start"] == _clock(11, 0, "AM")
    assert stored["reschedule_reason"] == "Customer asked for later"

    timeline = client.get(f"/tasks/{task['id']}/timeline").json()
    assert timeline[-1]["type"] == "rescheduled"
    assert timeline[-1]["payload"]["from"]["window"] == "10:00 AM - 12:00 PM"


def test_reschedule_into_conflict_waits_for_decision(client: TestClient, team):
    _existing(client, title="Morning job")
    afternoon = _existing(
        client,
        title="Afternoon job",
        start=_clock(2, 0, "PM"),
        finish=_clock(3, 0, "PM"),
    )

    resp = client.post(
        f"/tasks/{afternoon['id']}/reschedule",
        json={
            "due_date": "2024-06-01",
            "start": _clock(11, 0, "AM"),
            "finish": _clock(12, 30, "PM"),
            "reason": "Crew free earlier",
        },
    )
    body = resp.json()
    assert body["state"] == "conflict_presented"
    assert [c["existing_task_title"] for c in body["conflicts"]] == ["Morning job"]

    # Unchanged until the override
    assert client.get(f"/tasks/{afternoon['id']}").json()["window"]["start"] == _clock(
        2, 0, "PM"
    )

    client.post(f"/tasks/submissions/{body['id']}/override")
    moved = client.get(f"/tasks/{afternoon['id']}").json()
    assert moved["window"]["start"] == _clock(11, 0, "AM")
    assert len(client.get("/tasks").json()) == 2


def test_reschedule_date_only_keeps_window(client: TestClient, team):
    task = _existing(client)

    resp = client.post(
        f"/tasks/{task['id']}/reschedule",
        json={"due_date": "2024-06-03", "reason": "Parts delayed"},
    )
    assert resp.json()["state"] == "done"

    stored = client.get(f"/tasks/{task['id']}").json()
    assert stored["due_date"] == "2024-06-03"
    assert stored["window"]["start"] == _clock(10, 0, "AM")


def test_reschedule_missing_task_returns_404(client: TestClient):
    resp = client.post(
        "/tasks/bogus/reschedule", json={"due_date": "2024-06-03", "reason": "x"}
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Tests: listing
# ---------------------------------------------------------------------------


def test_list_tasks_by_date(client: TestClient, team):
    _existing(client)
    _existing(client, due_date="2024-06-02")

    resp = client.get("/tasks", params={"date": "2024-06-02"})
    assert [t["due_date"] for t in resp.json()] == ["2024-06-02"]


def test_team_member_crud(client: TestClient):
    resp = client.post("/team-members", json={"name": "Dana", "role": "Supervisor"})
    assert resp.status_code == 201
    member = resp.json()

    assert client.get(f"/team-members/{member['id']}").json()["name"] == "Dana"
    assert [m["id"] for m in client.get("/team-members").json()] == [member["id"]]
    assert client.get("/team-members/bogus").status_code == 404


def test_request_id_is_echoed(client: TestClient):
    resp = client.get("/tasks", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"
