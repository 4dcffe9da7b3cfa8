"""Base agent definition for diagnostic agents backed by network probes."""
from __future__ import annotations

import abc
from typing import Any, ClassVar, Dict, Optional, Tuple

import httpx

from netdiag.core.errors import ToolInputError, UnknownToolError
from netdiag.core.models import AgentDescriptor, ToolSpec

IPV6_ECHO_URL = "https://api6.ipify.org?format=json"

_JSON_TYPES: Dict[str, Tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


def validate_arguments(spec: ToolSpec, arguments: Dict[str, Any]) -> None:
    """Check tool arguments against the tool's declared input schema."""
    properties: Dict[str, Any] = spec.input_schema.get("properties", {})

    unknown = sorted(set(arguments) - set(properties))
    if unknown:
        raise ToolInputError(f"{spec.name}: unexpected argument(s): {', '.join(unknown)}")

    missing = [key for key in spec.input_schema.get("required", []) if key not in arguments]
    if missing:
        raise ToolInputError(f"{spec.name}: missing required argument(s): {', '.join(missing)}")

    for key, value in arguments.items():
        schema = properties[key]
        expected = _JSON_TYPES.get(schema.get("type", ""))
        if expected is not None:
            # bool is an int subclass but never a JSON number.
            if isinstance(value, bool) and bool not in expected:
                raise ToolInputError(f"{spec.name}: {key} must be a {schema['type']}")
            if not isinstance(value, expected):
                raise ToolInputError(f"{spec.name}: {key} must be a {schema['type']}")
        if "enum" in schema and value not in schema["enum"]:
            raise ToolInputError(
                f"{spec.name}: {key} must be one of {', '.join(map(str, schema['enum']))}"
            )


def tool(
    name: str,
    description: str,
    properties: Optional[Dict[str, Any]] = None,
    required: Tuple[str, ...] = (),
) -> ToolSpec:
    """Shorthand for an object-shaped tool schema."""
    return ToolSpec(
        name=name,
        description=description,
        input_schema={
            "type": "object",
            "properties": properties or {},
            "required": list(required),
        },
    )


class ProbeAgent(abc.ABC):
    """Diagnostic agent whose tools are ``probe_<tool name>`` coroutines.

    Subclasses declare ``name``, ``display_name``, ``system_prompt`` and
    ``tools`` as class attributes. Instances hold no mutable state, so a single
    instance serves every concurrent run.
    """

    name: ClassVar[str]
    display_name: ClassVar[str]
    system_prompt: ClassVar[str]
    tools: ClassVar[Tuple[ToolSpec, ...]]

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    def http(self, *, http2: bool = False) -> httpx.AsyncClient:
        """Open a short-lived HTTP client bounded by the probe timeout."""
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
            http2=http2,
        )

    def describe(self) -> AgentDescriptor:
        return AgentDescriptor(
            name=self.name,
            display_name=self.display_name,
            system_prompt=self.system_prompt,
            tools=self.tools,
            dispatcher=self.handle_tool,
        )

    async def handle_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Validate arguments and invoke the matching probe."""
        spec = next((candidate for candidate in self.tools if candidate.name == name), None)
        handler = getattr(self, f"probe_{name}", None)
        if spec is None or handler is None:
            raise UnknownToolError(name)
        validate_arguments(spec, arguments)
        return await handler(**arguments)

    async def ipv6_connectivity(self) -> Dict[str, Any]:
        """Report whether an IPv6-only endpoint is reachable; never raises."""
        try:
            async with self.http() as client:
                response = await client.get(IPV6_ECHO_URL)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError):
            return {"available": False}
        address = data.get("ip") if isinstance(data, dict) else None
        return {"available": True, "ipv6_address": address}
