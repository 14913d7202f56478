import json

import httpx
import pytest
from fastapi.testclient import TestClient

from config import settings
from engine.errors import ConcurrentUpdateError
from main import create_app


@pytest.fixture
def calibration_service():
    """Stand-in calibration backend: records requests and answers with `status` and `body`."""
    state = {"status": 200, "body": {"model": "2PL", "items": []}, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        return httpx.Response(state["status"], json=state["body"])

    state["transport"] = httpx.MockTransport(handler)
    return state


@pytest.fixture
def client(store, calibration_service, monkeypatch):
    monkeypatch.setattr(settings, "auto_finish_interval_seconds", 0)
    monkeypatch.setattr(settings, "question_bank_path", None)
    app = create_app(store=store, calibration_transport=calibration_service["transport"])
    with TestClient(app) as c:
        yield c


def _create(client, **body):
    body.setdefault("taskIds", ["t1", "t2", "t3"])
    resp = client.post("/v1/sessions", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_irt_session_flow(client):
    session = _create(client, selectionStrategy="IRT", studentId="st1")
    assert session["selectionStrategy"] == "IRT"
    assert session["currentTaskIndex"] == 0
    assert session["status"] == "in_progress"

    nxt = client.get(f"/v1/sessions/{session['id']}/next-task").json()
    assert nxt == {"sessionId": session["id"], "taskId": "t2", "done": False}

    resp = client.post(f"/v1/sessions/{session['id']}/responses",
                       json={"taskId": "t2", "questionId": "q2", "scoredValue": 1, "rawAnswer": "B"})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["studentModel"]["irtTheta"] == pytest.approx(0.05)
    assert body["currentTaskIndex"] == 1
    assert body["responses"][0]["rawAnswer"] == "B"
    assert body["version"] == 1

    assert client.get(f"/v1/sessions/{session['id']}").json() == body


def test_fixed_session_returns_second_task_after_one_response(client):
    session = _create(client)
    client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t1"})
    assert client.get(f"/v1/sessions/{session['id']}/next-task").json()["taskId"] == "t2"


def test_error_mapping(client):
    assert client.get("/v1/sessions/missing").status_code == 404
    assert client.post("/v1/sessions", json={"taskIds": ["t1", "t1"]}).status_code == 400
    assert client.post("/v1/sessions", json={"taskIds": ["t1"], "selectionStrategy": "random"}).status_code == 400

    session = _create(client)
    resp = client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t9"})
    assert resp.status_code == 400
    resp = client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t1", "questionId": "qx"})
    assert resp.status_code == 404


def test_concurrent_update_is_conflict(client, store, monkeypatch):
    session = _create(client)

    async def conflicting_save(s, expected_version):
        raise ConcurrentUpdateError(s.id, expected_version)

    monkeypatch.setattr(store, "save_session", conflicting_save)
    resp = client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t1"})
    assert resp.status_code == 409


def test_finish_and_force_finish(client):
    session = _create(client)
    client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t1"})

    first = client.post(f"/v1/sessions/{session['id']}/finish").json()
    assert first["alreadySubmitted"] is False
    assert first["session"]["isCompleted"] is True
    assert first["session"]["responses"][0]["locked"] is True

    again = client.post(f"/v1/sessions/{session['id']}/finish").json()
    assert again["alreadySubmitted"] is True
    assert client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t2"}).status_code == 400
    assert client.get(f"/v1/sessions/{session['id']}/next-task").json() == {
        "sessionId": session["id"], "taskId": None, "done": True,
    }

    other = _create(client)
    forced = client.post(f"/v1/sessions/{other['id']}/force-finish").json()
    assert forced["alreadySubmitted"] is False
    assert forced["session"]["status"] == "submitted"
    assert forced["session"]["autoFinished"] is False


def test_posterior_update(client):
    session = _create(client, taskIds=["t4", "t5"], selectionStrategy="BayesianNetwork")
    assert client.get(f"/v1/sessions/{session['id']}/next-task").json()["taskId"] == "t5"

    resp = client.put(f"/v1/sessions/{session['id']}/posteriors", json={"posteriors": {"obs2": 0.999}})
    assert resp.status_code == 200
    assert resp.json()["studentModel"]["bnPosteriors"] == {"obs2": 0.999}
    assert client.get(f"/v1/sessions/{session['id']}/next-task").json()["taskId"] == "t4"

    bad = client.put(f"/v1/sessions/{session['id']}/posteriors", json={"posteriors": {"obs2": 1.0}})
    assert bad.status_code == 400


def test_catalog_routes(client):
    resp = client.put("/v1/catalog/questions", json={"id": "q9", "stem": "New", "metadata": {"b": 0.2}})
    assert resp.status_code == 200
    assert resp.json()["metadata"] == {"b": 0.2}
    assert "q9" in [q["id"] for q in client.get("/v1/catalog/questions").json()]

    assert client.get("/v1/catalog/widgets").status_code == 404
    assert client.get("/v1/catalog/calibrationLogs").status_code == 404
    assert client.put("/v1/catalog/tasks", json={"title": "no id"}).status_code == 400


def test_calibration_routes(client, calibration_service):
    calibration_service["body"] = {"model": "2PL", "items": [{"id": "q1", "a": 1.3, "b": 0.1}]}
    batch = {"responses": [{"studentId": "st1", "answers": {"q1": 1}}]}

    resp = client.post("/v1/calibrations/em-irt", json=batch)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["model"] == "2PL"
    assert body["items"] == [{"id": "q1", "a": 1.3, "b": 0.1, "c": None}]
    assert body["updatedQuestions"] == ["q1"]
    assert body["log"]["evidenceModelId"] == "em-irt"
    assert body["log"]["updatedItems"] == 1
    sent = calibration_service["requests"][0]
    assert sent.url.path == "/irt/calibrate"
    assert json.loads(sent.content)["responses"] == batch["responses"]
    questions = {q["id"]: q for q in client.get("/v1/catalog/questions").json()}
    assert questions["q1"]["metadata"]["b"] == 0.1

    logs = client.get("/v1/calibrations/logs").json()
    assert [log["id"] for log in logs] == [body["log"]["id"]]

    assert client.post("/v1/calibrations/em-missing", json=batch).status_code == 404
    assert client.post("/v1/calibrations/em-irt", json={"responses": []}).status_code == 400
    assert len(calibration_service["requests"]) == 1


def test_calibration_service_failures(client, calibration_service):
    batch = {"responses": [{"studentId": "st1", "answers": {"q1": 1}}]}

    calibration_service["status"], calibration_service["body"] = 422, {"error": "too few respondents"}
    resp = client.post("/v1/calibrations/em-irt", json=batch)
    assert resp.status_code == 400
    assert "too few respondents" in resp.json()["detail"]

    calibration_service["status"], calibration_service["body"] = 500, {"detail": "R crashed"}
    assert client.post("/v1/calibrations/em-irt", json=batch).status_code == 502
    assert client.get("/v1/calibrations/logs").json() == []


def test_report_routes(client):
    session = _create(client, selectionStrategy="IRT", studentId="st1")
    client.post(f"/v1/sessions/{session['id']}/responses", json={"taskId": "t2", "questionId": "q2", "scoredValue": 1})

    assert client.get(f"/v1/reports/sessions/{session['id']}").json()["constructs"][0]["level"] == "Proficient"
    assert client.get(f"/v1/reports/sessions/{session['id']}/learner").status_code == 200
    assert client.get(f"/v1/reports/sessions/{session['id']}/teacher").json()["studentName"] == "Ada"
    assert client.get("/v1/reports/classes/c1").json()["summary"]["IRT"]["count"] == 1
    assert client.get("/v1/reports/districts/d1").status_code == 200
    assert client.get("/v1/reports/classes/nope").status_code == 404
    assert client.get("/v1/reports/sessions/missing").status_code == 404


def test_admin_auto_finish(client):
    due = _create(client, endTime="2020-01-01T00:00:00Z")
    _create(client, endTime="2999-01-01T00:00:00Z")

    resp = client.post("/v1/admin/auto-finish/run")
    assert resp.json() == {"finished": [due["id"]]}
    assert client.get(f"/v1/sessions/{due['id']}").json()["status"] == "submitted"
