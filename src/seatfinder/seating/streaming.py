"""
Streaming Module - Incremental lookup events and their SSE encoding.
====================================================================

A streamed lookup publishes one ``campus_result`` event per campus in
completion order, then a single ``complete`` event carrying the aggregate, or
an ``error`` event. The HTTP layer prepends a ``connected`` event.
"""

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from seatfinder.shared.schemas import CampusResult, SeatingResponse


class EventType(str, Enum):
    CONNECTED = "connected"
    CAMPUS_RESULT = "campus_result"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class StreamEvent:
    """Represents a single SSE event."""

    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        """Format as SSE data line."""
        payload = {"type": self.event_type.value, **self.data}
        return f"data: {json.dumps(payload, default=str)}\n\n"

    @property
    def is_terminal(self) -> bool:
        return self.event_type in (EventType.COMPLETE, EventType.ERROR)

    @classmethod
    def connected(cls) -> "StreamEvent":
        return cls(EventType.CONNECTED, {"message": "Streaming started"})

    @classmethod
    def campus_result(cls, result: CampusResult) -> "StreamEvent":
        return cls(EventType.CAMPUS_RESULT, result.model_dump(mode="json", by_alias=True))

    @classmethod
    def complete(cls, response: SeatingResponse) -> "StreamEvent":
        return cls(EventType.COMPLETE, response.model_dump(mode="json", by_alias=True))

    @classmethod
    def error(cls, message: str, error: str = "Internal server error") -> "StreamEvent":
        return cls(EventType.ERROR, {"error": error, "message": message})


class EventChannel:
    """
    Single-consumer queue of StreamEvents.

    The producer publishes until it sends a terminal event; the consumer
    iterates until that event arrives.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)
        if event.is_terminal:
            self._closed = True

    async def receive(self) -> Optional[StreamEvent]:
        """Next event, or None once the terminal event has been consumed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> StreamEvent:
        event = await self.receive()
        if event is None:
            raise StopAsyncIteration
        return event
