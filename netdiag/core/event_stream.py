"""One-way server-sent event channel carrying diagnostics events to a client."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Union

logger = logging.getLogger(__name__)

_CLOSE = object()


def format_event(event: str, data: Any) -> str:
    """Render a single ``event:``/``data:`` frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class EventStream:
    """Single-writer event channel drained by the HTTP response."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Union[str, object]] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._closed = False
        self._disconnected = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    async def send(self, event: str, data: Any) -> bool:
        """Queue one frame. Returns False once the stream stopped accepting writes."""
        async with self._lock:
            if self._closed:
                return False
            await self._queue.put(format_event(event, data))
            return True

    async def close(self) -> None:
        """Flush pending frames and end the stream."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            await self._queue.put(_CLOSE)

    def disconnect(self) -> None:
        """Mark the peer as gone; later writes are silently dropped."""
        if self._closed:
            return
        logger.info("Client disconnected; dropping further diagnostics events")
        self._closed = True
        self._disconnected = True

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the stream is closed."""
        try:
            while True:
                frame = await self._queue.get()
                if frame is _CLOSE:
                    return
                yield frame
        finally:
            # Reached without a close() when the response is torn down early.
            self.disconnect()
