"""Anthropic Messages API client shared by every agent run."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import httpx

from netdiag.config import AnthropicConfig
from netdiag.core.errors import MalformedReplyError, ProviderError, TransportError
from netdiag.core.models import ContentBlock, LLMReply, StopReason, TextBlock, ToolSpec, ToolUseBlock, Turn
from netdiag.utils.sanitize import sanitize_error

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


@runtime_checkable
class LLMClient(Protocol):
    """Contract every language model client must satisfy."""

    async def send(
        self,
        system_prompt: str,
        tools: Sequence[ToolSpec],
        messages: Sequence[Turn],
        max_tokens: int,
    ) -> LLMReply: ...


def parse_reply(data: Any) -> LLMReply:
    """Turn a decoded messages reply into an :class:`LLMReply`.

    Content blocks of unknown types are dropped so newer block kinds do not
    break older deployments.
    """
    if not isinstance(data, dict):
        raise MalformedReplyError("Reply body is not a JSON object")

    raw_reason = data.get("stop_reason")
    if not isinstance(raw_reason, str):
        raise MalformedReplyError(f"Reply has no stop_reason: {raw_reason!r}")
    try:
        stop_reason = StopReason(raw_reason)
    except ValueError:
        logger.info("Treating stop_reason %r as end of run", raw_reason)
        stop_reason = StopReason.OTHER

    raw_content = data.get("content")
    if not isinstance(raw_content, list):
        raise MalformedReplyError("Reply is missing its content list")

    blocks: List[ContentBlock] = []
    for raw in raw_content:
        if not isinstance(raw, dict):
            raise MalformedReplyError("Content block is not an object")
        kind = raw.get("type")
        if kind == "text":
            text = raw.get("text")
            if not isinstance(text, str):
                raise MalformedReplyError("Text block without text")
            blocks.append(TextBlock(text=text))
        elif kind == "tool_use":
            block_id = raw.get("id")
            name = raw.get("name")
            tool_input = raw.get("input") or {}
            if not isinstance(block_id, str) or not isinstance(name, str):
                raise MalformedReplyError("Tool use block without id or name")
            if not isinstance(tool_input, dict):
                raise MalformedReplyError(f"Tool use block {block_id} has non-object input")
            blocks.append(ToolUseBlock(id=block_id, name=name, input=tool_input))
        else:
            logger.debug("Ignoring content block of type %r", kind)

    return LLMReply(stop_reason=stop_reason, content=blocks)


class AnthropicClient:
    """Stateless sender of messages turns with a cap on concurrent requests."""

    def __init__(
        self,
        config: AnthropicConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._semaphore = asyncio.Semaphore(config.max_concurrent)

    def _client(self) -> httpx.AsyncClient:
        """Lazy initialization of the shared HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout,
                transport=self._transport,
            )
        return self._http

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    async def send(
        self,
        system_prompt: str,
        tools: Sequence[ToolSpec],
        messages: Sequence[Turn],
        max_tokens: int,
    ) -> LLMReply:
        """Send one turn and return the parsed reply. Never retries."""
        if not system_prompt:
            raise ValueError("system_prompt is required")
        if not messages:
            raise ValueError("messages must not be empty")
        if not self._config.configured:
            raise ProviderError("API key not configured")

        body = {
            "model": self._config.model,
            "max_tokens": max_tokens or self._config.max_tokens,
            "system": system_prompt,
            "tools": [tool.to_wire() for tool in tools],
            "messages": [turn.to_wire() for turn in messages],
        }

        async with self._semaphore:
            try:
                response = await self._client().post(
                    "/v1/messages", json=body, headers=self._headers()
                )
            except httpx.TransportError as exc:
                raise TransportError(str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise ProviderError(
                sanitize_error(f"{response.status_code} | {response.text}"),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedReplyError("Reply body is not valid JSON") from exc
        return parse_reply(data)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
