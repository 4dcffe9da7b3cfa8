"""HTTP API exposing the diagnostics stream and the results analyzer."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from netdiag.config import Config
from netdiag.core.errors import DiagnosticsError
from netdiag.core.models import RequestMetadata
from netdiag.orchestration.analyzer import Analyzer
from netdiag.orchestration.dispatcher import Dispatcher
from netdiag.runtime import get_analyzer, get_config, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["diagnostics"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class AnalyzeRequest(BaseModel):
    type: str = Field(..., description="Kind of browser-side test, e.g. speed or webrtc")
    data: Any = Field(default=None, description="Raw results reported by the browser")


def client_address(request: Request) -> str:
    """Resolve the client address, honouring reverse-proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    address = forwarded.split(",")[0].strip() if forwarded else ""
    if not address:
        address = request.headers.get("x-real-ip", "")
    if not address and request.client is not None:
        address = request.client.host
    if not address:
        return "unknown"
    return address.removeprefix("::ffff:")


def request_metadata(request: Request) -> RequestMetadata:
    return RequestMetadata(
        client_ip=client_address(request),
        user_agent=request.headers.get("user-agent"),
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/diagnose")
async def diagnose(
    request: Request,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> StreamingResponse:
    """Run every diagnostic agent and stream progress as server-sent events."""
    stream = dispatcher.open_stream(request_metadata(request))
    return StreamingResponse(
        stream.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    analyzer: Analyzer = Depends(get_analyzer),
    settings: Config = Depends(get_config),
) -> Any:
    """Analyze speed test or WebRTC results collected in the browser."""
    if not settings.anthropic.configured:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "API key not configured"},
        )
    try:
        return await analyzer.analyze(body.type, body.data)
    except DiagnosticsError as exc:
        logger.warning("Analysis of %s results failed: %s", body.type, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc)},
        )
