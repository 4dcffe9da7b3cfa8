"""IP address, ISP and geolocation agent."""
from __future__ import annotations

from typing import Any, Dict, Optional

from netdiag.agents.base import ProbeAgent, tool

IPAPI_URL = "https://ipapi.co"


class IPAgent(ProbeAgent):
    name = "ip"
    display_name = "IP & Location"
    system_prompt = """You are a network diagnostics agent specializing in IP address and ISP analysis.

Use your tools to gather information about the client's IP address, then respond with a JSON object:
{
  "findings": [
    {"label": "IPv4", "value": "<ip>", "status": "info", "detail": "<city, region, country>"},
    {"label": "IPv6", "value": "<ipv6 or 'not available'>", "status": "good|bad"},
    {"label": "ISP", "value": "<org>", "status": "info", "detail": "AS<number>"},
    {"label": "Location", "value": "<city, region, country>", "status": "info"}
  ],
  "analysis": "<1-2 sentence insight about the IP/ISP configuration. Note anything interesting like if it's a VPN, datacenter IP, or known ISP with specific behaviors.>"
}

Respond ONLY with valid JSON."""

    tools = (
        tool(
            "lookup_ip",
            "Look up geolocation and ISP information for an IP address via ipapi.co. "
            "Pass the IP address, or omit it for a server self-lookup.",
            {"ip": {"type": "string", "description": "IP address to look up"}},
        ),
        tool("check_ipv6", "Check if IPv6 connectivity is available from this network"),
    )

    async def probe_lookup_ip(self, ip: Optional[str] = None) -> Dict[str, Any]:
        url = f"{IPAPI_URL}/{ip}/json/" if ip else f"{IPAPI_URL}/json/"
        async with self.http() as client:
            response = await client.get(url)
        if not response.is_success:
            raise RuntimeError(f"ipapi.co returned {response.status_code}")
        return response.json()

    async def probe_check_ipv6(self) -> Dict[str, Any]:
        return await self.ipv6_connectivity()
