"""Core data models shared across the runtime, dispatcher and transport."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union


class StopReason(str, Enum):
    """Why the model stopped producing the current assistant turn."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    # Any other reason the provider reports (refusal, pause_turn, ...); terminal.
    OTHER = "other"


class ProgressType(str, Enum):
    START = "start"
    TOOL = "tool"
    COMPLETE = "complete"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Declarative tool description forwarded verbatim to the model."""

    name: str
    description: str
    input_schema: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


ToolDispatcher = Callable[[str, Dict[str, Any]], Awaitable[Any]]


@dataclass(slots=True, frozen=True)
class AgentDescriptor:
    """Immutable description of one diagnostic agent, built once at startup."""

    name: str
    display_name: str
    system_prompt: str
    tools: Tuple[ToolSpec, ...]
    dispatcher: ToolDispatcher


@dataclass(slots=True, frozen=True)
class TextBlock:
    text: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True, frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(slots=True, frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            wire["is_error"] = True
        return wire


ContentBlock = Union[TextBlock, ToolUseBlock]


@dataclass(slots=True)
class Turn:
    """One entry of a conversation: user text, assistant blocks or tool results."""

    role: str
    content: Union[str, List[ContentBlock], List[ToolResultBlock]]

    @classmethod
    def user_text(cls, text: str) -> Turn:
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, blocks: List[ContentBlock]) -> Turn:
        return cls(role="assistant", content=list(blocks))

    @classmethod
    def tool_results(cls, results: List[ToolResultBlock]) -> Turn:
        return cls(role="user", content=list(results))

    def to_wire(self) -> Dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_wire() for block in self.content]}


@dataclass(slots=True)
class LLMReply:
    """Parsed reply to a single messages turn."""

    stop_reason: StopReason
    content: List[ContentBlock] = field(default_factory=list)

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def text(self) -> str:
        """Concatenate every text block, in order, separated by newlines."""
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """Lightweight in-flight notification emitted by the agent runtime."""

    type: ProgressType
    agent: str
    display_name: Optional[str] = None
    tool: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type.value, "agent": self.agent}
        if self.display_name is not None:
            payload["displayName"] = self.display_name
        if self.tool is not None:
            payload["tool"] = self.tool
        return payload


@dataclass(slots=True, frozen=True)
class AgentResult:
    """Terminal per-agent envelope carrying either parsed data or an error."""

    agent: str
    display_name: str
    status: ResultStatus
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "agent": self.agent,
            "displayName": self.display_name,
            "status": self.status.value,
        }
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(slots=True, frozen=True)
class RequestMetadata:
    """Client facts captured when a diagnostics stream is opened."""

    client_ip: str
    user_agent: Optional[str]
    timestamp: datetime
