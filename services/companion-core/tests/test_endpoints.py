import httpx
import pytest
from fastapi.testclient import TestClient

from headspace.main import create_app
from headspace.store import keys


@pytest.fixture
def client(make_workspace):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/summarize"):
            return httpx.Response(200, json={"summary": "Short summary"})
        return httpx.Response(200, json={"response": "Noted!", "taskUpdates": {"newTasks": [{"text": "Journal tonight"}]}})

    workspace = make_workspace(handler=handler)
    with TestClient(create_app(workspace)) as test_client:
        test_client.workspace = workspace
        yield test_client


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_task_lifecycle(client):
    res = client.post("/tasks", json={"text": "Stretch"})
    assert res.status_code == 200
    task_id = res.json()["task"]["id"]

    res = client.post(f"/tasks/{task_id}/toggle")
    assert res.status_code == 200
    assert res.json()["lifetime_completed"] == 1

    listing = client.get("/tasks").json()
    assert listing["lifetimeCompleted"] == 1
    assert listing["progress"]["next"]["threshold"] == 5

    assert client.post("/tasks/clear-completed").status_code == 200
    assert client.get("/tasks").json()["tasks"] == []


def test_task_errors(client):
    assert client.post("/tasks", json={"text": "  "}).status_code == 400
    assert client.post("/tasks/missing/toggle").status_code == 404
    assert client.delete("/tasks/missing").status_code == 404


def test_directive_endpoint(client):
    res = client.post("/tasks/directive", json={"newTasks": [{"text": "a"}, {"text": "b"}, {"text": "c"}]})
    body = res.json()
    assert res.status_code == 200
    assert body["truncated"] == 1
    assert [task["text"] for task in body["added"]] == ["a", "b"]


def test_milestones_endpoint(client):
    body = client.get("/tasks/milestones").json()
    assert [item["threshold"] for item in body["milestones"]] == [5, 15, 30, 50, 100]


def test_journal_endpoints(client):
    res = client.post("/journal", json={"title": "Evening", "content": "Quiet walk", "mood": "calm"})
    assert res.status_code == 200
    entry = res.json()["entry"]
    assert entry["summary"] == "Short summary"

    listing = client.get("/journal").json()
    assert [item["id"] for item in listing["entries"]] == [entry["id"]]
    assert listing["lastMood"]["lastMood"] == "calm"

    assert client.post("/journal", json={"title": "no content"}).status_code == 400
    assert client.delete(f"/journal/{entry['id']}").status_code == 200
    assert client.delete(f"/journal/{entry['id']}").status_code == 404


def test_quiz_and_persona(client):
    res = client.post("/companion/quiz", json={"answers": ["luna_empathic", "sage_introspective", "luna_empathic"]})
    assert res.json()["companion"]["id"] == "luna_empathic"
    assert client.get("/companion").json()["companion"]["name"] == "Luna"

    res = client.post("/companion/quiz", json={"skip": True})
    assert res.json()["companion"]["id"] == "aura_calm"

    assert client.put("/companion/persona", json={"text": ""}).status_code == 400
    assert client.put("/companion/persona", json={"text": "Loves mornings"}).json() == {"persona": "Loves mornings"}
    assert len(client.get("/companion/catalog").json()) == 6


def test_conversation_endpoints(client):
    res = client.post("/companion/Aura/messages", json={"text": "Help me plan"})
    assert res.status_code == 200
    assert res.json()["assistant_message"]["text"] == "Noted!"
    assert [task.text for task in client.workspace.tasks.list_tasks()] == ["Journal tonight"]

    history = client.get("/companion/Aura/history").json()
    assert history["state"] == "idle"
    assert [message["role"] for message in history["messages"]] == ["user", "assistant"]

    assert client.post("/companion/Aura/messages", json={"text": ""}).status_code == 400
    assert client.delete("/companion/Aura/history").status_code == 400
    assert client.delete("/companion/Aura/history", params={"confirm": "true"}).status_code == 200
    assert client.get("/companion/Nobody/history").status_code == 404
    assert client.get("/companion/Aura/history").json()["messages"] == []


def test_reset_wipes_application_keys(client):
    client.post("/tasks", json={"text": "gone soon"})
    res = client.post("/reset")
    assert keys.TODO_TASKS in res.json()["removed"]
    assert client.get("/tasks").json()["tasks"] == []


def test_directive_endpoint_rejects_bad_shapes(client):
    assert client.post("/tasks/directive", json={"newTasks": "not a list"}).status_code == 400
    res = client.post("/tasks/directive", json={"newTasks": [{"reason": "no text"}]})
    assert res.status_code == 200
    assert res.json()["added"] == []


def test_journal_rejects_unknown_mood(client):
    res = client.post("/journal", json={"title": "t", "content": "c", "mood": "ecstatic-ish"})
    assert res.status_code == 400
