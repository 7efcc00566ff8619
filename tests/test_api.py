"""Tests for the session API."""

from typing import (
    Any,
    Dict,
    Iterator,
    List,
)

import pytest
from conftest import (
    RecordingTools,
    ScriptedGateway,
)
from fastapi.testclient import TestClient

from aion.agent.events import EventChannel
from aion.agent.orchestrator import Orchestrator
from aion.api import app as app_module
from aion.config import Settings
from aion.core.schema import (
    Decision,
    ToolCall,
)


@pytest.fixture
def gateway() -> ScriptedGateway:
    shell = ToolCall(name="run_command", args={"command": "make test"}, call_id="c1")
    return ScriptedGateway(Decision(tool_calls=[shell]), Decision(content="Tests pass."))


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    gateway: ScriptedGateway,
    tools: RecordingTools,
    test_settings: Settings,
) -> Iterator[TestClient]:
    def build() -> Orchestrator:
        return Orchestrator(
            gateway=gateway,  # type: ignore[arg-type]
            registry=tools.registry,
            events=EventChannel(maxsize=test_settings.EVENT_QUEUE_SIZE),
            settings_factory=lambda: test_settings,
        )

    monkeypatch.setattr(app_module, "sessions", {})
    monkeypatch.setattr(app_module, "build_orchestrator", build)
    with TestClient(app_module.app) as test_client:
        yield test_client


def _poll_until(client: TestClient, session_id: str, predicate: Any) -> List[Dict[str, Any]]:
    """Collect events until one satisfies *predicate*."""
    seen: List[Dict[str, Any]] = []
    for _ in range(20):
        resp = client.get(f"/sessions/{session_id}/events", params={"timeout": 2})
        assert resp.status_code == 200
        for event in resp.json()["events"]:
            seen.append(event)
            if predicate(event):
                return seen
    raise AssertionError(f"condition never met; saw {seen}")


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_and_list_sessions(client: TestClient) -> None:
    session_id = client.post("/sessions").json()["session_id"]
    assert client.get("/sessions").json() == [session_id]


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/sessions/nope/messages"),
        ("get", "/sessions/nope/events"),
        ("post", "/sessions/nope/reset"),
    ],
)
def test_unknown_session_is_404(client: TestClient, method: str, path: str) -> None:
    resp = getattr(client, method)(path)
    assert resp.status_code == 404


def test_events_timeout_is_bounded(client: TestClient) -> None:
    session_id = client.post("/sessions").json()["session_id"]
    resp = client.get(f"/sessions/{session_id}/events", params={"timeout": 600})
    assert resp.status_code == 422


def test_full_flow_with_approval(client: TestClient, tools: RecordingTools) -> None:
    session_id = client.post("/sessions").json()["session_id"]

    resp = client.post(f"/sessions/{session_id}/messages", json={"message": "run the tests"})
    assert resp.json() == {"accepted": True}

    seen = _poll_until(
        client,
        session_id,
        lambda e: e["type"] == "message" and e["message"]["requiresApproval"],
    )
    request = seen[-1]["message"]
    assert request["toolCall"]["name"] == "run_command"
    assert request["toolCall"]["callId"] == "c1"

    # A second message while waiting is turned away
    busy = client.post(f"/sessions/{session_id}/messages", json={"message": "hurry"})
    assert busy.json() == {"accepted": False}

    assert client.post(
        f"/sessions/{session_id}/approval", json={"granted": True}
    ).json() == {"resolved": True}

    seen = _poll_until(client, session_id, lambda e: e["type"] == "finished")
    assert seen[-1]["outcome"] == "completed"
    assert tools.invocations == [("run_command", "make test")]

    transcript = client.get(f"/sessions/{session_id}/messages").json()
    assert transcript["running"] is False
    contents = [m["content"] for m in transcript["messages"]]
    assert contents[0] == "run the tests"
    assert "ran" in contents
    assert contents[-1] == "Tests pass."


def test_approval_without_pending_request(client: TestClient) -> None:
    session_id = client.post("/sessions").json()["session_id"]
    resp = client.post(f"/sessions/{session_id}/approval", json={"granted": True})
    assert resp.json() == {"resolved": False}


def test_reset_clears_transcript(client: TestClient) -> None:
    session_id = client.post("/sessions").json()["session_id"]
    client.post(f"/sessions/{session_id}/messages", json={"message": "run the tests"})
    _poll_until(
        client,
        session_id,
        lambda e: e["type"] == "message" and e["message"]["requiresApproval"],
    )

    assert client.post(f"/sessions/{session_id}/reset").json() == {"status": "reset"}

    transcript = client.get(f"/sessions/{session_id}/messages").json()
    assert transcript == {"messages": [], "running": False}
    resp = client.post(f"/sessions/{session_id}/approval", json={"granted": True})
    assert resp.json() == {"resolved": False}
