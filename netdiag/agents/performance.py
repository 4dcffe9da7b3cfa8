"""Performance agent: DNS and HTTP latency sampling."""
from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from netdiag.agents.base import ProbeAgent, tool

DOH_LATENCY_URL = "https://cloudflare-dns.com/dns-query"
DEFAULT_URL = "https://cloudflare.com"
MAX_SAMPLES = 20


def clamp_samples(requested: Optional[float], default: int) -> int:
    if not requested:
        return default
    return max(1, min(int(requested), MAX_SAMPLES))


def latency_stats(times: List[int]) -> Dict[str, Any]:
    """Summarize latency samples; jitter is the population standard deviation."""
    average = round(sum(times) / len(times))
    jitter = round(math.sqrt(sum((sample - average) ** 2 for sample in times) / len(times)))
    return {
        "samples": len(times),
        "min_ms": min(times),
        "max_ms": max(times),
        "avg_ms": average,
        "jitter_ms": jitter,
    }


class PerformanceAgent(ProbeAgent):
    name = "performance"
    display_name = "Performance"
    system_prompt = """You are a network diagnostics agent specializing in network performance analysis.

Use your tools to measure DNS query latency and overall network responsiveness. Then respond with a JSON object:
{
  "findings": [
    {"label": "<metric>", "value": "<result>", "status": "good|bad|warn|info"}
  ],
  "analysis": "<2-3 sentence performance assessment. Note if latency or jitter indicate congestion, routing issues, or throttling.>"
}

Latency guidelines: <50ms = good, 50-150ms = warn, >150ms = bad.
Jitter guidelines: <10ms = good, 10-30ms = warn, >30ms = bad.
Respond ONLY with valid JSON."""

    tools = (
        tool(
            "measure_dns_latency",
            "Measure DNS-over-HTTPS query latency by performing multiple queries and "
            "computing statistics",
            {
                "samples": {
                    "type": "number",
                    "description": "Number of latency samples to collect (default 10)",
                }
            },
        ),
        tool(
            "measure_http_latency",
            "Measure HTTP request latency to well-known endpoints",
            {
                "url": {
                    "type": "string",
                    "description": "URL to measure latency to (defaults to cloudflare)",
                },
                "samples": {"type": "number", "description": "Number of samples (default 5)"},
            },
        ),
    )

    def __init__(self, *, pause: float = 0.2, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.pause = pause

    async def _sample(self, count: int, request: Callable[[int], Awaitable[None]]) -> List[int]:
        times: List[int] = []
        for index in range(count):
            started = time.perf_counter()
            try:
                await request(index)
            except httpx.HTTPError:
                pass  # failed samples are skipped
            else:
                times.append(round((time.perf_counter() - started) * 1000))
            if index < count - 1 and self.pause:
                await asyncio.sleep(self.pause)
        return times

    async def probe_measure_dns_latency(self, samples: Optional[float] = None) -> Dict[str, Any]:
        count = clamp_samples(samples, 10)
        async with self.http() as client:

            async def query(index: int) -> None:
                await client.get(
                    DOH_LATENCY_URL,
                    params={"name": ".", "type": "NS", "_": str(time.time_ns() + index)},
                    headers={"Accept": "application/dns-json", "Cache-Control": "no-store"},
                )

            times = await self._sample(count, query)

        if not times:
            return {"error": "All measurements failed"}
        return {**latency_stats(times), "all_times_ms": times}

    async def probe_measure_http_latency(
        self, url: Optional[str] = None, samples: Optional[float] = None
    ) -> Dict[str, Any]:
        target = url or DEFAULT_URL
        count = clamp_samples(samples, 5)
        async with self.http() as client:

            async def head(index: int) -> None:
                await client.head(
                    target,
                    params={"_": str(time.time_ns() + index)},
                    headers={"Cache-Control": "no-store"},
                )

            times = await self._sample(count, head)

        if not times:
            return {"error": "All measurements failed"}
        stats = latency_stats(times)
        return {
            "url": target,
            "samples": stats["samples"],
            "avg_ms": stats["avg_ms"],
            "min_ms": stats["min_ms"],
            "max_ms": stats["max_ms"],
        }
