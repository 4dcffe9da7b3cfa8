"""HTTP-level tests for the diagnostics and analysis endpoints."""
from __future__ import annotations

import json
from typing import Any, Iterator, List, Tuple

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from netdiag.api.routes import client_address
from netdiag.config import AnthropicConfig, Config
from netdiag.core.errors import ProviderError
from netdiag.main import app
from netdiag.orchestration.analyzer import Analyzer
from netdiag.orchestration.dispatcher import Dispatcher
from netdiag.orchestration.runner import AgentRunner
from netdiag.runtime import get_analyzer, get_config, get_dispatcher
from stubs import ScriptedLLM, make_agent, text_reply

CONFIGURED = Config(anthropic=AnthropicConfig(api_key="sk-ant-test"))
UNCONFIGURED = Config(anthropic=AnthropicConfig(api_key=None))


@pytest.fixture
def client() -> Iterator[TestClient]:
    yield TestClient(app)
    app.dependency_overrides.clear()


def parse_frames(body: str) -> List[Tuple[str, Any]]:
    events = []
    for frame in filter(None, body.split("\n\n")):
        event_line, data_line = frame.split("\n")
        events.append((event_line.removeprefix("event: "), json.loads(data_line.removeprefix("data: "))))
    return events


def request_with(headers: List[Tuple[bytes, bytes]], peer: Any = ("10.1.2.3", 5000)) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": peer})


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_diagnose_streams_server_sent_events(client: TestClient) -> None:
    llm = ScriptedLLM([text_reply('{"findings":[],"analysis":"ok"}')])
    dispatcher = Dispatcher(AgentRunner(llm), [make_agent("a")])
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    response = client.get("/api/diagnose", headers={"User-Agent": "pytest-browser"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-accel-buffering"] == "no"
    events = parse_frames(response.text)
    assert [name for name, _ in events] == ["init", "progress", "progress", "result", "done"]
    assert events[3][1]["data"] == {"findings": [], "analysis": "ok"}
    context = llm.calls[0]["messages"][0].content
    assert "User-Agent: pytest-browser" in context


def test_diagnose_reports_failures_as_error_results(client: TestClient) -> None:
    llm = ScriptedLLM([ProviderError("API key not configured")])
    app.dependency_overrides[get_dispatcher] = lambda: Dispatcher(AgentRunner(llm), [make_agent("a")])

    events = parse_frames(client.get("/api/diagnose").text)

    result = dict(events)["result"]
    assert result["status"] == "error"
    assert result["error"] == "API key not configured"
    assert events[-1] == ("done", {"message": "All diagnostics complete"})


def test_analyze_without_credential_is_unavailable(client: TestClient) -> None:
    app.dependency_overrides[get_config] = lambda: UNCONFIGURED

    response = client.post("/api/analyze", json={"type": "speed", "data": {"mbps": 10}})

    assert response.status_code == 503
    assert response.json() == {"error": "API key not configured"}


def test_analyze_returns_model_analysis(client: TestClient) -> None:
    llm = ScriptedLLM([text_reply('{"analysis": "Healthy connection."}')])
    app.dependency_overrides[get_config] = lambda: CONFIGURED
    app.dependency_overrides[get_analyzer] = lambda: Analyzer(AgentRunner(llm))

    response = client.post("/api/analyze", json={"type": "speed", "data": {"mbps": 900}})

    assert response.status_code == 200
    assert response.json() == {"analysis": "Healthy connection."}


def test_analyze_surfaces_llm_failure_as_server_error(client: TestClient) -> None:
    llm = ScriptedLLM([ProviderError("529 | overloaded", status_code=529)])
    app.dependency_overrides[get_config] = lambda: CONFIGURED
    app.dependency_overrides[get_analyzer] = lambda: Analyzer(AgentRunner(llm))

    response = client.post("/api/analyze", json={"type": "webrtc", "data": []})

    assert response.status_code == 500
    assert response.json() == {"error": "529 | overloaded"}


def test_analyze_requires_type(client: TestClient) -> None:
    app.dependency_overrides[get_config] = lambda: CONFIGURED

    assert client.post("/api/analyze", json={"data": {}}).status_code == 422


def test_client_address_prefers_forwarded_for() -> None:
    request = request_with([(b"x-forwarded-for", b"::ffff:203.0.113.9, 10.0.0.1")])

    assert client_address(request) == "203.0.113.9"


def test_client_address_falls_back_to_real_ip_then_peer() -> None:
    assert client_address(request_with([(b"x-real-ip", b"198.51.100.2")])) == "198.51.100.2"
    assert client_address(request_with([])) == "10.1.2.3"
    assert client_address(request_with([], peer=None)) == "unknown"
