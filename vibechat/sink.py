"""Event sink — the single ordered channel a request's events flow through.

Producers (the moderation gate, then the orchestrator/generation loop) hold an
``EventWriter`` and can only append. The transport iterates the sink itself.
The queue is bounded, so a producer waits while the client is slow to read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vibechat.schemas import StreamEvent

logger = logging.getLogger(__name__)

_END = object()


class EventWriter:
    """Send-only handle onto an ``EventSink``."""

    __slots__ = ("_sink",)

    def __init__(self, sink: EventSink):
        self._sink = sink

    async def write(self, event: StreamEvent) -> None:
        await self._sink._put(event)


class EventSink:
    """Bounded FIFO of stream events, closed once by its owner."""

    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def writer(self) -> EventWriter:
        return EventWriter(self)

    async def _put(self, event: StreamEvent) -> None:
        if self._closed:
            raise RuntimeError("Cannot write to a closed event sink")
        await self._queue.put(event)

    def close(self) -> None:
        """Mark end of stream. Safe to call more than once.

        The end marker is only queued when there is room; a full queue is
        drained by the reader, which then sees the closed flag.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_END)
        except asyncio.QueueFull:
            logger.debug("Sink full at close, reader will stop after draining")

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _END:
                return
            yield item
