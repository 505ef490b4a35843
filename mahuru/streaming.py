"""SSE streaming utilities for live document and collection updates.

Three-layer separation:
- format_sse_event: wire formatting (event + JSON data)
- stream_topic: subscribes, then turns pushed snapshots into change events
- create_sse_response: wraps any SSE generator in the right HTTP response

The subscription lives exactly as long as the generator: when the client
disconnects Starlette closes the generator and the finally block
unsubscribes.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable

from pydantic import BaseModel
from starlette.responses import StreamingResponse

from mahuru.errors import MahuruError
from mahuru.schemas import ApiError, ChangeEvent
from mahuru.services.changes import Callback, Unsubscribe

logger = logging.getLogger("mahuru.streaming")

Subscribe = Callable[[Callback], Awaitable[Unsubscribe]]


def format_sse_event(event_type: str, data: BaseModel) -> str:
    """Formats a single SSE event string.

    Args:
        event_type: One of "change", "error".
        data: A Pydantic model (ChangeEvent or ApiError).

    Returns:
        SSE-formatted string: "event: {type}\\ndata: {json}\\n\\n"
    """
    return f"event: {event_type}\ndata: {data.model_dump_json()}\n\n"


def create_sse_response(generator: AsyncGenerator[str, None]) -> StreamingResponse:
    """Wraps an async generator of SSE-formatted strings in a StreamingResponse.

    Args:
        generator: Yields pre-formatted SSE event strings (output of format_sse_event).

    Returns:
        StreamingResponse with text/event-stream content type and proxy-safe headers.
    """
    return StreamingResponse(
        content=generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


async def stream_topic(subscribe: Subscribe, topic: str) -> AsyncGenerator[str, None]:
    """Streams every snapshot pushed for topic as a "change" event.

    The first event is the current snapshot (subscribe pushes it
    immediately). Once streaming has begun the HTTP status is already
    200, so a failure to subscribe is reported as an "error" event
    rather than raised.

    Args:
        subscribe: Registers a callback and returns its unsubscribe
            function, e.g. functools.partial(profiles.listen, uid).
        topic: Topic name echoed in every event.

    Yields:
        SSE-formatted strings.
    """
    queue: asyncio.Queue = asyncio.Queue()
    try:
        unsubscribe = await subscribe(queue.put_nowait)
    except MahuruError as exc:
        logger.warning("Live subscription to %s failed: %s", topic, exc.code)
        yield format_sse_event("error", ApiError(code=exc.code, message=exc.message))
        return

    try:
        while True:
            payload = await queue.get()
            yield format_sse_event("change", ChangeEvent(topic=topic, data=payload))
    finally:
        unsubscribe()
