"""Server-Sent Events helpers for the live log stream."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from autoconnect.core.log_bus import LogBus, LogEntry


def sse_json(event: str, data: Any, event_id: Optional[str] = None) -> Dict[str, str]:
    """Encode an object as compact JSON and wrap it as an SSE message dict."""
    message = {"event": event, "data": json.dumps(data, separators=(",", ":"), default=str)}
    if event_id is not None:
        message["id"] = str(event_id)
    return message


async def log_event_stream(bus: LogBus, maxsize: Optional[int] = None) -> AsyncIterator[Dict[str, str]]:
    """
    Yield a "connected" frame, then one "log" frame per entry published
    from now on. Nothing already in the buffer is replayed.

    Each client gets its own queue, bounded by the bus capacity unless
    ``maxsize`` is given. A client that falls behind loses its oldest
    pending entries, like the bus buffer itself.

    The bus subscription lives exactly as long as the generator: it is
    removed when the client disconnects and the generator is closed.
    """
    queue: "asyncio.Queue[LogEntry]" = asyncio.Queue(maxsize=maxsize or bus.capacity)

    def push(entry: LogEntry):
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(entry)

    unsubscribe = bus.subscribe(push)
    sequence = 0
    try:
        yield sse_json("connected", {
            "message": "Connected to log stream",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        while True:
            entry = await queue.get()
            sequence += 1
            yield sse_json("log", entry.to_dict(), event_id=sequence)
    finally:
        unsubscribe()
