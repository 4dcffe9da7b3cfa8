"""Tests for the parallel dispatcher and its event stream."""
from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import pytest

from netdiag.core.errors import TransportError
from netdiag.core.event_stream import EventStream, format_event
from netdiag.core.models import RequestMetadata, ToolSpec
from netdiag.orchestration.dispatcher import Dispatcher, build_user_context, parse_agent_reply
from netdiag.orchestration.runner import AgentRunner
from stubs import ScriptedLLM, collect_events, make_agent, text_reply, tool_reply

METADATA = RequestMetadata(
    client_ip="203.0.113.7",
    user_agent="pytest-agent",
    timestamp=datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc),
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def run_dispatch(dispatcher: Dispatcher) -> List[Tuple[str, Any]]:
    stream = EventStream()
    await dispatcher.dispatch(stream, METADATA)
    return await collect_events(stream)


def events_by_agent(events: List[Tuple[str, Any]]) -> Dict[str, List[str]]:
    """Per-agent sequence of progress types and result statuses."""
    sequences: Dict[str, List[str]] = defaultdict(list)
    for name, payload in events:
        if name == "progress":
            sequences[payload["agent"]].append(payload["type"])
        elif name == "result":
            sequences[payload["agent"]].append(f"result:{payload['status']}")
    return dict(sequences)


@pytest.mark.anyio
async def test_single_agent_without_tools_streams_full_envelope() -> None:
    llm = ScriptedLLM([text_reply('{"findings":[],"analysis":"ok"}')])
    dispatcher = Dispatcher(AgentRunner(llm), [make_agent("a")])

    events = await run_dispatch(dispatcher)

    assert events == [
        ("init", [{"name": "a", "displayName": "A"}]),
        ("progress", {"type": "start", "agent": "a", "displayName": "A"}),
        ("progress", {"type": "complete", "agent": "a"}),
        (
            "result",
            {
                "agent": "a",
                "displayName": "A",
                "status": "success",
                "data": {"findings": [], "analysis": "ok"},
            },
        ),
        ("done", {"message": "All diagnostics complete"}),
    ]


@pytest.mark.anyio
async def test_tool_progress_precedes_completion_and_findings_are_parsed() -> None:
    llm = ScriptedLLM(
        [
            tool_reply(("u1", "probe", {})),
            text_reply('{"findings":[{"label":"X","value":"1","status":"info"}],"analysis":"done"}'),
        ]
    )
    agent = make_agent(
        "a",
        tools=[ToolSpec(name="probe", description="stub")],
        handlers={"probe": lambda: {"x": 1}},
    )

    events = await run_dispatch(Dispatcher(AgentRunner(llm), [agent]))

    assert events[2] == ("progress", {"type": "tool", "agent": "a", "tool": "probe"})
    assert events_by_agent(events) == {"a": ["start", "tool", "complete", "result:success"]}
    result = dict(events)["result"]
    assert result["data"]["findings"] == [{"label": "X", "value": "1", "status": "info"}]


@pytest.mark.anyio
async def test_tool_failure_still_yields_success() -> None:
    def boom() -> None:
        raise RuntimeError("boom")

    llm = ScriptedLLM([tool_reply(("u1", "probe", {})), text_reply('{"findings":[],"analysis":"x"}')])
    agent = make_agent("a", handlers={"probe": boom})

    events = await run_dispatch(Dispatcher(AgentRunner(llm), [agent]))

    assert dict(events)["result"]["status"] == "success"
    assert llm.calls[1]["messages"][2].content[0].content == '{"error": "boom"}'


@pytest.mark.anyio
async def test_non_json_reply_falls_back_to_analysis_text() -> None:
    llm = ScriptedLLM([text_reply("hello world")])

    events = await run_dispatch(Dispatcher(AgentRunner(llm), [make_agent("a")]))

    assert dict(events)["result"]["data"] == {"findings": [], "analysis": "hello world"}


@pytest.mark.anyio
async def test_failing_agent_does_not_affect_peers() -> None:
    agent_a = make_agent("a")
    agent_b = make_agent("b")
    llm = ScriptedLLM(
        {
            agent_a.system_prompt: [text_reply('{"findings":[],"analysis":"fine"}')],
            agent_b.system_prompt: [TransportError("connection reset")],
        }
    )
    dispatcher = Dispatcher(AgentRunner(llm, transport_retries=0), [agent_a, agent_b])

    events = await run_dispatch(dispatcher)

    results = {payload["agent"]: payload for name, payload in events if name == "result"}
    assert results["a"]["status"] == "success"
    assert results["b"] == {
        "agent": "b",
        "displayName": "B",
        "status": "error",
        "error": "connection reset",
    }
    assert events[-1][0] == "done"
    assert events_by_agent(events)["b"] == ["start", "result:error"]


@pytest.mark.anyio
async def test_loop_budget_failure_isolated_from_peer() -> None:
    looping = make_agent("loop", handlers={"probe": lambda: 1})
    steady = make_agent("steady", handlers={"probe": lambda: 2})
    llm = ScriptedLLM(
        {
            looping.system_prompt: [tool_reply(("u1", "probe", {}))],
            steady.system_prompt: [
                tool_reply(("s1", "probe", {})),
                text_reply('{"findings":[],"analysis":"steady"}'),
            ],
        },
        repeat_last=True,
    )
    dispatcher = Dispatcher(AgentRunner(llm, max_turns=3), [looping, steady])

    events = await run_dispatch(dispatcher)

    sequences = events_by_agent(events)
    assert sequences["loop"] == ["start", "tool", "tool", "tool", "result:error"]
    assert sequences["steady"] == ["start", "tool", "complete", "result:success"]
    loop_result = next(p for n, p in events if n == "result" and p["agent"] == "loop")
    assert loop_result["error"] == "LoopBudgetExceeded"


@pytest.mark.anyio
async def test_every_declared_agent_gets_exactly_one_result_before_done() -> None:
    agents = [make_agent(name) for name in ("a", "b", "c", "d")]
    script: Dict[str, List[Any]] = {
        agent.system_prompt: [text_reply('{"findings":[],"analysis":"ok"}')] for agent in agents
    }
    script[agents[2].system_prompt] = [RuntimeError("exploded")]
    llm = ScriptedLLM(script)

    events = await run_dispatch(Dispatcher(AgentRunner(llm), agents))

    assert events[0][0] == "init"
    declared = [entry["name"] for entry in events[0][1]]
    result_agents = [payload["agent"] for name, payload in events if name == "result"]
    assert sorted(result_agents) == sorted(declared)
    assert [name for name, _ in events].count("done") == 1
    assert events[-1][0] == "done"


@pytest.mark.anyio
async def test_agents_run_concurrently() -> None:
    gate = asyncio.Event()
    arrived: List[str] = []

    async def wait_for_peer(name: str) -> str:
        arrived.append(name)
        if len(arrived) == 2:
            gate.set()
        await asyncio.wait_for(gate.wait(), timeout=2)
        return name

    agents = [
        make_agent("a", handlers={"sync": lambda: wait_for_peer("a")}),
        make_agent("b", handlers={"sync": lambda: wait_for_peer("b")}),
    ]
    llm = ScriptedLLM(
        {
            agent.system_prompt: [tool_reply(("u1", "sync", {})), text_reply("{}")]
            for agent in agents
        }
    )

    events = await run_dispatch(Dispatcher(AgentRunner(llm), agents))

    assert sorted(arrived) == ["a", "b"]
    assert all(p["status"] == "success" for n, p in events if n == "result")


@pytest.mark.anyio
async def test_disconnected_stream_drops_events_but_runs_finish() -> None:
    llm = ScriptedLLM([text_reply("{}")])
    dispatcher = Dispatcher(AgentRunner(llm), [make_agent("a")])
    stream = EventStream()
    stream.disconnect()

    results = await dispatcher.dispatch(stream, METADATA)

    assert [result.agent for result in results] == ["a"]
    assert stream.disconnected
    assert await stream.send("progress", {}) is False


@pytest.mark.anyio
async def test_open_stream_runs_dispatch_in_background() -> None:
    llm = ScriptedLLM([text_reply('{"findings":[],"analysis":"bg"}')])
    dispatcher = Dispatcher(AgentRunner(llm), [make_agent("a")])

    stream = dispatcher.open_stream(METADATA)
    events = await asyncio.wait_for(collect_events(stream), timeout=2)

    assert [name for name, _ in events] == ["init", "progress", "progress", "result", "done"]


def test_user_context_includes_client_facts() -> None:
    context = build_user_context(METADATA)

    assert context.splitlines() == [
        "Client IP: 203.0.113.7",
        "User-Agent: pytest-agent",
        "Timestamp: 2024-05-01T12:30:00.000Z",
        "",
        "Run all your diagnostic tools and provide a complete analysis.",
    ]


@pytest.mark.parametrize("address", ["127.0.0.1", "::1", "unknown"])
def test_user_context_advises_self_lookup_for_local_clients(address: str) -> None:
    metadata = RequestMetadata(client_ip=address, user_agent=None, timestamp=METADATA.timestamp)

    context = build_user_context(metadata)

    assert "Client IP: (local - use self-lookup)" in context
    assert "User-Agent: unknown" in context


def test_parse_agent_reply_keeps_valid_objects() -> None:
    text = '{"findings":[{"label":"L","value":"V","status":"good"}],"analysis":"A"}'

    assert parse_agent_reply(text) == {
        "findings": [{"label": "L", "value": "V", "status": "good"}],
        "analysis": "A",
    }


@pytest.mark.parametrize("text", ["X", "", "[1, 2]", '"just a string"', "{broken"])
def test_parse_agent_reply_falls_back_for_non_objects(text: str) -> None:
    assert parse_agent_reply(text) == {"findings": [], "analysis": text}


def test_parse_agent_reply_unwraps_markdown_fence() -> None:
    text = '```json\n{"findings": [], "analysis": "fenced"}\n```'

    assert parse_agent_reply(text) == {"findings": [], "analysis": "fenced"}


def test_format_event_frame_shape() -> None:
    assert format_event("done", {"message": "bye"}) == 'event: done\ndata: {"message": "bye"}\n\n'
