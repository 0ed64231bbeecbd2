"""Server-Sent Events streaming on top of the event bus."""

import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable

from fastapi import Request
from fastapi.responses import StreamingResponse

from switchboard.infrastructure.event_bus import Event, EventBus, TopicKind
from switchboard.settings import settings

logger = logging.getLogger(__name__)

CONNECTED_FRAME = "event: connected\ndata: {}\n\n"
HEARTBEAT_FRAME = ": ping\n\n"

EventFilter = Callable[[Event], bool]


def format_frame(event_name: str, data: Event) -> str:
    """Serialize one event as an SSE frame."""
    return f"event: {event_name}\ndata: {json.dumps(data, separators=(',', ':'), default=str)}\n\n"


def event_type_name(event: Event) -> str:
    """Frame name taken from the event's own ``type``."""
    return str(event.get("type") or "message")


class EventStream:
    """One client's stream: a single bus subscription plus a heartbeat timer.

    ``close()`` releases both together and is idempotent. It runs when the
    client disconnects, when a write fails, or when the generator is closed.
    """

    def __init__(
        self,
        event_bus: EventBus,
        kind: TopicKind,
        topic_id: str,
        event_filter: EventFilter | None = None,
        heartbeat_interval: float | None = None,
        event_name: Callable[[Event], str] = event_type_name,
        disconnect_poll_interval: float = 5.0,
    ):
        self.event_bus = event_bus
        self.kind = kind
        self.topic_id = topic_id
        self.event_filter = event_filter
        self.heartbeat_interval = (
            heartbeat_interval if heartbeat_interval is not None else settings.sse_heartbeat_interval_seconds
        )
        self.event_name = event_name
        self.disconnect_poll_interval = disconnect_poll_interval
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._unsubscribe: Callable[[], None] | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self.opened = False
        self.closed = False

    def open(self) -> None:
        """Queue the connected sentinel, subscribe and start the heartbeat."""
        if self.opened:
            return
        self.opened = True
        self._queue.put_nowait(CONNECTED_FRAME)
        self._unsubscribe = self.event_bus.subscribe(self.kind, self.topic_id, self._on_event)
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat())
        logger.info(f"[SSE] Stream opened on {self.kind.value}:{self.topic_id}")

    def close(self) -> None:
        """Unsubscribe and cancel the heartbeat in one step."""
        if self.closed:
            return
        self.closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
        logger.info(f"[SSE] Stream closed on {self.kind.value}:{self.topic_id}")

    def _on_event(self, event: Event) -> None:
        # Filtering happens here so one connection keeps one subscription
        if self.event_filter is not None and not self.event_filter(event):
            return
        self._queue.put_nowait(format_frame(self.event_name(event), event))

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self._queue.put_nowait(HEARTBEAT_FRAME)

    async def frames(
        self, is_disconnected: Callable[[], Awaitable[bool]] | None = None
    ) -> AsyncIterator[str]:
        """Yield frames until the client goes away.

        Args:
            is_disconnected: Transport close check (``Request.is_disconnected``)

        Yields:
            Serialized SSE frames
        """
        self.open()
        try:
            while not self.closed:
                try:
                    frame = await asyncio.wait_for(self._queue.get(), timeout=self.disconnect_poll_interval)
                except asyncio.TimeoutError:
                    if is_disconnected is not None and await is_disconnected():
                        break
                    continue
                yield frame
        finally:
            self.close()


def cors_headers(request: Request) -> dict[str, str]:
    """Access-control headers echoing the caller's origin.

    Streaming responses are written directly, so these are set explicitly
    rather than left to the CORS middleware.
    """
    origin = request.headers.get("origin")
    if not origin:
        return {"Access-Control-Allow-Origin": "*"}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def open_stream(
    request: Request,
    event_bus: EventBus,
    kind: TopicKind,
    topic_id: str,
    event_filter: EventFilter | None = None,
) -> StreamingResponse:
    """Build the text/event-stream response for one subscriber.

    Args:
        request: Incoming request (origin and disconnect check)
        event_bus: Process event bus
        kind: Topic namespace
        topic_id: Organization or contact id
        event_filter: Optional per-connection filter

    Returns:
        StreamingResponse bound to a fresh EventStream
    """
    stream = EventStream(event_bus, kind, topic_id, event_filter=event_filter)
    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        **cors_headers(request),
    }
    return StreamingResponse(
        stream.frames(request.is_disconnected),
        media_type="text/event-stream",
        headers=headers,
    )
