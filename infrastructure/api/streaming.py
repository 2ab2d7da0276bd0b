"""
Server-sent events transport for assistant turns.

Each event goes out as one ``data: <json>`` frame. A turn is pumped into an
EventChannel by a background task so a client disconnect can cancel the
turn without waiting for the next provider event.
"""

import asyncio
import json
from contextlib import aclosing
from typing import AsyncIterator, Optional

from services.assistant_service.models import CancelToken, RunEvent
from services.assistant_service.service import Turn
from utils.logging_config import get_logger

logger = get_logger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_CLOSED = object()


def encode_frame(event: RunEvent) -> str:
    """Encode one event as an SSE data frame"""
    payload = json.dumps(event.to_dict(), separators=(",", ":"), ensure_ascii=False, default=str)
    return f"data: {payload}\n\n"


class EventChannel:
    """
    Single-consumer queue of encoded frames.
    Writes after close are dropped; close is idempotent.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, event: RunEvent) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(encode_frame(event))
        return True

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is _CLOSED:
                return
            yield frame


async def pump(events: AsyncIterator[RunEvent], channel: EventChannel):
    """
    Copy events into the channel until the terminal event, the end of the
    source, or the channel closing; the channel is closed on exit
    """
    try:
        async with aclosing(events) as source:
            async for event in source:
                if not channel.write(event) or event.is_terminal:
                    break
    finally:
        channel.close()


async def stream_turn(turn: Turn, cancel_token: Optional[CancelToken] = None) -> AsyncIterator[str]:
    """
    SSE body for one turn

    Leaving the body early (client disconnect) cancels the turn and the
    background pump.
    """
    token = cancel_token or CancelToken()
    channel = EventChannel()
    task = asyncio.create_task(pump(turn.events(token), channel))
    # A task cancelled before its first step never enters the turn
    task.add_done_callback(lambda _: turn.release())

    try:
        async for frame in channel:
            yield frame
    finally:
        if not task.done():
            logger.info(f"Client left turn on {turn.thread_id} early, cancelling")
            token.cancel()
            task.cancel()
        channel.close()
