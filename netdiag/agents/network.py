"""Network capability agent: IPv6, HTTP protocol support and reachability."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx

from netdiag.agents.base import ProbeAgent, tool

DEFAULT_URL = "https://cloudflare.com"

CONNECTIVITY_ENDPOINTS = (
    ("Cloudflare", "https://1.1.1.1/cdn-cgi/trace"),
    ("Google", "https://www.google.com/generate_204"),
    ("Apple", "https://captive.apple.com"),
)


class NetworkAgent(ProbeAgent):
    name = "network"
    display_name = "Network Capabilities"
    system_prompt = """You are a network diagnostics agent specializing in network capability detection.

Use your tools to test IPv6 connectivity, protocol support, and network features. Then respond with a JSON object:
{
  "findings": [
    {"label": "<capability>", "value": "<result>", "status": "good|bad|warn|info"}
  ],
  "analysis": "<1-2 sentence summary of network capabilities and any recommendations.>"
}

Respond ONLY with valid JSON."""

    tools = (
        tool("check_ipv6", "Test if IPv6 connectivity is available from this network"),
        tool(
            "check_protocol_support",
            "Check HTTP protocol support (HTTP/2, HTTP/3) by making requests to known endpoints",
            {"url": {"type": "string", "description": "URL to test protocol support against"}},
        ),
        tool(
            "check_connectivity",
            "Test general internet connectivity by reaching multiple well-known endpoints",
        ),
    )

    async def probe_check_ipv6(self) -> Dict[str, Any]:
        return await self.ipv6_connectivity()

    async def probe_check_protocol_support(self, url: Optional[str] = None) -> Dict[str, Any]:
        target = url or DEFAULT_URL
        async with self.http(http2=True) as client:
            response = await client.head(target)
        alt_svc = response.headers.get("alt-svc", "")
        return {
            "url": target,
            "http_version": response.http_version,
            "http2": response.http_version == "HTTP/2",
            "http3_advertised": "h3" in alt_svc,
            "alt_svc": alt_svc or None,
        }

    async def probe_check_connectivity(self) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        async with self.http() as client:
            for label, url in CONNECTIVITY_ENDPOINTS:
                started = time.perf_counter()
                try:
                    response = await client.head(url)
                except httpx.HTTPError as exc:
                    results.append(
                        {"name": label, "reachable": False, "error": str(exc) or type(exc).__name__}
                    )
                    continue
                results.append(
                    {
                        "name": label,
                        "reachable": True,
                        "latency_ms": round((time.perf_counter() - started) * 1000),
                        "status": response.status_code,
                    }
                )
        return {"endpoints": results}
