"""Tool-use loop driving a single diagnostic agent to its final reply."""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from netdiag.core.errors import LoopBudgetExceeded, TransportError
from netdiag.core.models import (
    AgentDescriptor,
    LLMReply,
    ProgressEvent,
    ProgressType,
    StopReason,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from netdiag.services.llm_client import LLMClient

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class AgentRunner:
    """Drive agents through alternating model turns and local tool calls.

    One runner is shared by every agent of every request; all per-run state
    lives in the local conversation of :meth:`run`.
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        max_turns: int = 10,
        max_tokens: int = 1024,
        transport_retries: int = 1,
        retry_delay: float = 1.0,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._client = client
        self._max_turns = max_turns
        self._max_tokens = max_tokens
        self._transport_retries = max(transport_retries, 0)
        self._retry_delay = retry_delay

    async def run(
        self,
        agent: AgentDescriptor,
        user_context: str,
        on_progress: Optional[ProgressSink] = None,
    ) -> str:
        """Run ``agent`` until the model ends its turn and return the final text.

        Emits ``start`` first and ``complete`` last; ``complete`` is skipped
        when the run fails, in which case the error propagates to the caller.
        """
        await self._emit(
            on_progress,
            ProgressEvent(ProgressType.START, agent.name, display_name=agent.display_name),
        )
        logger.debug("Agent %s started", agent.name)

        conversation: List[Turn] = [Turn.user_text(user_context)]
        reply = await self._send(agent, conversation)
        turns = 1

        while reply.stop_reason is StopReason.TOOL_USE:
            tool_uses = reply.tool_uses
            if not tool_uses:
                # Only unsupported blocks came back; nothing left to answer.
                break

            results = await self._run_tools(agent, tool_uses, on_progress)
            if turns >= self._max_turns:
                logger.warning(
                    "Agent %s exceeded its budget of %d turns", agent.name, self._max_turns
                )
                raise LoopBudgetExceeded(self._max_turns)

            conversation.append(Turn.assistant(reply.content))
            conversation.append(Turn.tool_results(results))
            reply = await self._send(agent, conversation)
            turns += 1

        await self._emit(on_progress, ProgressEvent(ProgressType.COMPLETE, agent.name))
        logger.debug(
            "Agent %s finished after %d turns (%s)", agent.name, turns, reply.stop_reason.value
        )
        return reply.text

    async def _send(self, agent: AgentDescriptor, conversation: Sequence[Turn]) -> LLMReply:
        attempt = 0
        while True:
            try:
                return await self._client.send(
                    agent.system_prompt,
                    agent.tools,
                    list(conversation),
                    self._max_tokens,
                )
            except TransportError as exc:
                if attempt >= self._transport_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Transport failure for agent %s, retry %d/%d: %s",
                    agent.name,
                    attempt,
                    self._transport_retries,
                    exc,
                )
                await asyncio.sleep(self._retry_delay * attempt)

    async def _run_tools(
        self,
        agent: AgentDescriptor,
        tool_uses: Sequence[ToolUseBlock],
        on_progress: Optional[ProgressSink],
    ) -> List[ToolResultBlock]:
        """Execute tool calls one after another, in the order the model issued them."""
        results: List[ToolResultBlock] = []
        for block in tool_uses:
            await self._emit(
                on_progress, ProgressEvent(ProgressType.TOOL, agent.name, tool=block.name)
            )
            logger.debug("Agent %s calling tool %s", agent.name, block.name)
            try:
                output = await agent.dispatcher(block.name, block.input)
            except Exception as exc:
                logger.debug("Tool %s of agent %s failed: %s", block.name, agent.name, exc)
                results.append(
                    ToolResultBlock(
                        tool_use_id=block.id,
                        content=json.dumps({"error": str(exc)}),
                        is_error=True,
                    )
                )
            else:
                results.append(
                    ToolResultBlock(tool_use_id=block.id, content=json.dumps(output, default=str))
                )
        return results

    @staticmethod
    async def _emit(sink: Optional[ProgressSink], event: ProgressEvent) -> None:
        if sink is None:
            return
        try:
            outcome = sink(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Progress sink failed for agent %s", event.agent)
