"""Connection security agent: TLS, security headers and certificates."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from netdiag.agents.base import ProbeAgent, tool

DEFAULT_URL = "https://cloudflare.com"

SECURITY_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-frame-options",
    "x-content-type-options",
    "referrer-policy",
    "permissions-policy",
    "x-xss-protection",
)


class SecurityAgent(ProbeAgent):
    name = "security"
    display_name = "Security"
    system_prompt = """You are a network diagnostics agent specializing in connection security analysis.

Use your tools to check TLS/HTTPS configuration, security headers, and certificate information for the client's connection. Then respond with a JSON object:
{
  "findings": [
    {"label": "<check name>", "value": "<result>", "status": "good|bad|warn|info"}
  ],
  "analysis": "<2-3 sentence security assessment with recommendations.>"
}

Focus on practical security implications. Respond ONLY with valid JSON."""

    tools = (
        tool(
            "check_tls",
            "Check TLS/HTTPS configuration by making a request to a target URL and "
            "inspecting the connection",
            {"url": {"type": "string", "description": "URL to check (defaults to cloudflare.com)"}},
        ),
        tool(
            "check_security_headers",
            "Fetch security-related HTTP headers from a URL (HSTS, CSP, X-Frame-Options, etc.)",
            {"url": {"type": "string", "description": "URL to check headers for"}},
            required=("url",),
        ),
        tool(
            "check_certificate",
            "Check basic certificate information for a domain via an HTTPS connection",
            {"domain": {"type": "string", "description": "Domain to check certificate for"}},
            required=("domain",),
        ),
    )

    async def probe_check_tls(self, url: Optional[str] = None) -> Dict[str, Any]:
        target = url or DEFAULT_URL
        async with self.http() as client:
            response = await client.head(target)
        final_url = str(response.url)
        return {
            "url": target,
            "status": response.status_code,
            "protocol": "HTTPS" if response.url.scheme == "https" else "HTTP",
            "http_version": response.http_version,
            "redirected": bool(response.history),
            "final_url": final_url,
        }

    async def probe_check_security_headers(self, url: str) -> Dict[str, Any]:
        async with self.http() as client:
            response = await client.head(url)
        found = {
            header: response.headers[header]
            for header in SECURITY_HEADERS
            if header in response.headers
        }
        return {"url": url, "security_headers": found, "total_found": len(found)}

    async def probe_check_certificate(self, domain: str) -> Dict[str, Any]:
        try:
            async with self.http() as client:
                response = await client.head(f"https://{domain}")
        except httpx.HTTPError as exc:
            return {"domain": domain, "https_works": False, "error": str(exc) or type(exc).__name__}
        return {
            "domain": domain,
            "https_works": True,
            "status": response.status_code,
            "note": "Certificate accepted by the TLS stack (valid chain, not expired)",
        }
