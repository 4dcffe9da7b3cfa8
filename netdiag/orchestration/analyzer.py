"""Post-hoc analysis of test results gathered in the client's browser."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from netdiag.core.errors import UnknownToolError
from netdiag.core.models import AgentDescriptor
from netdiag.orchestration.dispatcher import strip_code_fence
from netdiag.orchestration.runner import AgentRunner

logger = logging.getLogger(__name__)

ANALYZER_PROMPT = """You are a network diagnostics analyst. Given test results from a client's browser, provide a brief, insightful analysis. Respond with a JSON object:
{
  "analysis": "<2-3 sentence analysis with practical recommendations.>"
}
Respond ONLY with valid JSON."""


async def _no_tools(name: str, arguments: Dict[str, Any]) -> Any:
    raise UnknownToolError(name)


ANALYZER_AGENT = AgentDescriptor(
    name="analyzer",
    display_name="Results Analyzer",
    system_prompt=ANALYZER_PROMPT,
    tools=(),
    dispatcher=_no_tools,
)


def build_analysis_context(kind: str, data: Any) -> str:
    return (
        f"Analyze these {kind} test results from the client's browser:\n"
        f"{json.dumps(data, indent=2)}"
    )


class Analyzer:
    """Run a tool-less agent over client-submitted measurements."""

    def __init__(self, runner: AgentRunner) -> None:
        self._runner = runner

    async def analyze(self, kind: str, data: Any) -> Dict[str, Any]:
        logger.info("Analyzing %s results", kind)
        text = await self._runner.run(ANALYZER_AGENT, build_analysis_context(kind, data))
        try:
            parsed = json.loads(strip_code_fence(text))
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        return {"analysis": text}
