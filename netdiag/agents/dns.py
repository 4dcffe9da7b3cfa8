"""DNS security and configuration agent."""
from __future__ import annotations

import secrets
from typing import Any, Dict, List

import httpx

from netdiag.agents.base import ProbeAgent, tool

DOH_PROVIDERS: Dict[str, Dict[str, Any]] = {
    "cloudflare": {
        "label": "Cloudflare",
        "url": "https://cloudflare-dns.com/dns-query",
        "headers": {"Accept": "application/dns-json"},
    },
    "google": {
        "label": "Google",
        "url": "https://dns.google/resolve",
        "headers": {},
    },
    "quad9": {
        "label": "Quad9",
        "url": "https://dns.quad9.net:5053/dns-query",
        "headers": {"Accept": "application/dns-json"},
    },
}


class DNSAgent(ProbeAgent):
    name = "dns"
    display_name = "DNS Analysis"
    system_prompt = """You are a network diagnostics agent specializing in DNS security and configuration analysis.

Use your tools to check DNS resolver reachability, DNSSEC validation, DNS-over-HTTPS support, EDNS Client Subnet exposure, and DNS leak potential. Then respond with a JSON object:
{
  "findings": [
    {"label": "<check name>", "value": "<result>", "status": "good|bad|warn|info"}
  ],
  "analysis": "<2-3 sentence analysis of DNS security posture with actionable recommendations.>"
}

Status meanings: good = secure/optimal, bad = insecure/failing, warn = suboptimal, info = neutral.
Respond ONLY with valid JSON."""

    tools = (
        tool(
            "query_doh",
            "Send a DNS-over-HTTPS query to a provider. Returns the JSON response.",
            {
                "provider": {
                    "type": "string",
                    "enum": list(DOH_PROVIDERS),
                    "description": "Which DoH provider to query",
                },
                "domain": {"type": "string", "description": "Domain name to resolve"},
                "type": {
                    "type": "string",
                    "description": "DNS record type (A, AAAA, NS, etc.)",
                    "default": "A",
                },
            },
            required=("provider", "domain"),
        ),
        tool(
            "check_dnssec",
            "Check DNSSEC validation for a domain by querying with the DO (DNSSEC OK) flag",
            {"domain": {"type": "string", "description": "Domain to check DNSSEC for"}},
            required=("domain",),
        ),
        tool(
            "check_ecs",
            "Check if EDNS Client Subnet (ECS) is being used, which can leak client IP "
            "subnet information to authoritative DNS servers",
        ),
        tool(
            "test_dns_leak",
            "Test for DNS leaks by querying random subdomains through multiple DNS providers",
        ),
    )

    async def _resolve(self, client: httpx.AsyncClient, provider: str, params: Dict[str, str]) -> Any:
        settings = DOH_PROVIDERS[provider]
        response = await client.get(settings["url"], params=params, headers=settings["headers"])
        if not response.is_success:
            raise RuntimeError(f"DoH query failed: {response.status_code}")
        return response.json()

    async def probe_query_doh(self, provider: str, domain: str, type: str = "A") -> Any:  # noqa: A002
        async with self.http() as client:
            return await self._resolve(client, provider, {"name": domain, "type": type or "A"})

    async def probe_check_dnssec(self, domain: str) -> Dict[str, Any]:
        async with self.http() as client:
            data = await self._resolve(
                client, "cloudflare", {"name": domain, "type": "A", "do": "true"}
            )
        return {
            "domain": domain,
            "validated": bool(data.get("AD")),
            "status": data.get("Status"),
            "flags": {"AD": data.get("AD"), "CD": data.get("CD")},
        }

    async def probe_check_ecs(self) -> Dict[str, Any]:
        async with self.http() as client:
            data = await self._resolve(
                client,
                "google",
                {"name": "example.com", "type": "A", "edns_client_subnet": "0.0.0.0/0"},
            )
        comment = data.get("Comment")
        return {
            "ecs_detected": bool(comment) and "subnet" in str(comment).lower(),
            "comment": comment,
        }

    async def probe_test_dns_leak(self) -> Dict[str, Any]:
        results: List[Dict[str, Any]] = []
        async with self.http() as client:
            for provider, settings in DOH_PROVIDERS.items():
                name = f"{secrets.token_hex(4)}.example.com"
                try:
                    data = await self._resolve(client, provider, {"name": name, "type": "A"})
                except (httpx.HTTPError, RuntimeError, ValueError) as exc:
                    results.append(
                        {"provider": settings["label"], "reachable": False, "error": str(exc)}
                    )
                else:
                    results.append(
                        {"provider": settings["label"], "reachable": True, "status": data.get("Status")}
                    )
        return {"results": results}
