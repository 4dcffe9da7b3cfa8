"""Exception hierarchy shared by the runtime, the LLM client and the probes."""
from __future__ import annotations

from typing import Optional


class DiagnosticsError(Exception):
    """Base class for every error raised by the diagnostics service."""


class LLMError(DiagnosticsError):
    """A turn against the language model provider failed."""


class TransportError(LLMError):
    """The provider could not be reached (connect, read or timeout failure)."""


class ProviderError(LLMError):
    """The provider answered with a non-2xx status or refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedReplyError(LLMError):
    """The provider reply does not follow the messages contract."""


class ToolError(DiagnosticsError):
    """A tool dispatcher rejected or failed a tool invocation."""


class UnknownToolError(ToolError):
    """The model asked for a tool the agent does not expose."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolInputError(ToolError):
    """Tool arguments do not match the tool's declared input schema."""


class LoopBudgetExceeded(DiagnosticsError):
    """The agent kept requesting tools past the configured turn limit."""

    def __init__(self, max_turns: int) -> None:
        super().__init__("LoopBudgetExceeded")
        self.max_turns = max_turns
