"""Dispatcher running every diagnostic agent in parallel onto one event stream."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import timezone
from typing import Any, Dict, List, Sequence, Set, Tuple

from netdiag.core.event_stream import EventStream
from netdiag.core.models import (
    AgentDescriptor,
    AgentResult,
    ProgressEvent,
    RequestMetadata,
    ResultStatus,
)
from netdiag.orchestration.runner import AgentRunner

logger = logging.getLogger(__name__)

LOCAL_ADDRESSES = frozenset({"127.0.0.1", "::1", "localhost", "unknown"})


def is_local_address(address: str) -> bool:
    return address in LOCAL_ADDRESSES


def build_user_context(metadata: RequestMetadata) -> str:
    """Build the opening user message shared by every agent of a request."""
    if is_local_address(metadata.client_ip):
        shown_ip = "(local - use self-lookup)"
    else:
        shown_ip = metadata.client_ip
    timestamp = (
        metadata.timestamp.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )
    return "\n".join(
        [
            f"Client IP: {shown_ip}",
            f"User-Agent: {metadata.user_agent or 'unknown'}",
            f"Timestamp: {timestamp}",
            "",
            "Run all your diagnostic tools and provide a complete analysis.",
        ]
    )


def strip_code_fence(text: str) -> str:
    """Extract the body of a markdown code block if the reply is wrapped in one."""
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0].strip()
    stripped = text.strip()
    if stripped.startswith("```") and stripped.count("```") >= 2:
        return stripped.split("```", 2)[1].strip()
    return text


def parse_agent_reply(text: str) -> Dict[str, Any]:
    """Parse an agent's final text, falling back to a findings-less analysis."""
    try:
        parsed = json.loads(strip_code_fence(text))
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    return {"findings": [], "analysis": text}


class Dispatcher:
    """Fan agents out concurrently and multiplex their events onto a stream."""

    def __init__(self, runner: AgentRunner, agents: Sequence[AgentDescriptor]) -> None:
        self._runner = runner
        self._agents: Tuple[AgentDescriptor, ...] = tuple(agents)
        self._tasks: Set[asyncio.Task[List[AgentResult]]] = set()

    def open_stream(self, metadata: RequestMetadata) -> EventStream:
        """Start a dispatch in the background and return the stream it writes to."""
        stream = EventStream()
        task = asyncio.create_task(self.dispatch(stream, metadata))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return stream

    async def dispatch(self, stream: EventStream, metadata: RequestMetadata) -> List[AgentResult]:
        """Run every agent and stream ``init``, ``progress``, ``result`` and ``done``."""
        context = build_user_context(metadata)
        logger.info("Dispatching %d agents for client %s", len(self._agents), metadata.client_ip)
        try:
            await stream.send(
                "init",
                [{"name": agent.name, "displayName": agent.display_name} for agent in self._agents],
            )
            results = await asyncio.gather(
                *(self._run_agent(stream, agent, context) for agent in self._agents)
            )
            await stream.send("done", {"message": "All diagnostics complete"})
        finally:
            await stream.close()

        failed = sum(1 for result in results if result.status is ResultStatus.ERROR)
        logger.info(
            "Diagnostics for client %s complete (%d ok, %d failed)",
            metadata.client_ip,
            len(results) - failed,
            failed,
        )
        return list(results)

    async def shutdown(self) -> None:
        """Cancel dispatches still running, e.g. on application shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_agent(
        self, stream: EventStream, agent: AgentDescriptor, context: str
    ) -> AgentResult:
        async def forward(event: ProgressEvent) -> None:
            await stream.send("progress", event.to_payload())

        try:
            text = await self._runner.run(agent, context, forward)
        except Exception as exc:
            logger.warning("Agent %s failed: %s", agent.name, exc)
            result = AgentResult(
                agent=agent.name,
                display_name=agent.display_name,
                status=ResultStatus.ERROR,
                error=str(exc) or type(exc).__name__,
            )
        else:
            result = AgentResult(
                agent=agent.name,
                display_name=agent.display_name,
                status=ResultStatus.SUCCESS,
                data=parse_agent_reply(text),
            )
        await stream.send("result", result.to_payload())
        return result
