"""
Upload progress events for matrix sessions using Redis Streams.
"""

import json
import asyncio
from typing import Dict, Optional, Any, AsyncIterator
from datetime import datetime
import redis.asyncio as aioredis

# Streams expire an hour after their last event
EVENTS_TTL_SECONDS = 3600


def events_key(session_id: str) -> str:
    return f"matrix:{session_id}:events"


class UploadEventEmitter:
    """Emit image upload events to Redis Streams for SSE consumption."""

    def __init__(self, redis_client: aioredis.Redis, session_id: str):
        """
        Initialize event emitter.

        Args:
            redis_client: Redis async client
            session_id: Matrix session ID
        """
        self.redis = redis_client
        self.session_id = session_id
        self.stream_key = events_key(session_id)

    async def emit_status(
        self,
        row_id: str,
        status: str,
        uploaded: int = 0,
        total: int = 0,
        error: Optional[str] = None
    ):
        """
        Emit status event.

        Args:
            row_id: Row receiving the images
            status: started, done, failed
            uploaded: Files uploaded so far
            total: Files in the batch
            error: Error message when failed
        """
        await self._emit("status", {
            "row_id": row_id,
            "status": status,
            "uploaded": uploaded,
            "total": total,
            "error": error
        })

    async def emit_progress(self, row_id: str, done: int, total: int):
        """
        Emit progress event (percent increases monotonically within a batch).

        Args:
            row_id: Row receiving the images
            done: Files uploaded
            total: Files in the batch
        """
        percent = round(done / total * 100) if total > 0 else 0
        await self._emit("progress", {
            "row_id": row_id,
            "done": done,
            "total": total,
            "percent": percent
        })

    async def _emit(self, event: str, data: Dict[str, Any]):
        data["ts"] = datetime.utcnow().isoformat()
        await self.redis.xadd(self.stream_key, {"event": event, "data": json.dumps(data)})
        await self.redis.expire(self.stream_key, EVENTS_TTL_SECONDS)


def _heartbeat(note: str = "ping") -> Dict[str, Any]:
    return {"id": None, "event": "comment", "data": note}


async def stream_session_events(
    redis_client: aioredis.Redis,
    session_id: str,
    last_id: str = "$",
    block_ms: int = 15000,
    max_failures: int = 3
) -> AsyncIterator[Dict[str, Any]]:
    """
    Follow a session's event stream.

    Yields a heartbeat whenever `block_ms` passes without events. After
    `max_failures` consecutive Redis connection errors a final "error"
    event is yielded and the stream ends.

    Args:
        redis_client: Redis async client
        session_id: Matrix session ID
        last_id: Resume after this entry ID ("$" for new events only)
        block_ms: XREAD block time
        max_failures: Connection errors tolerated in a row

    Yields:
        Dicts with 'id', 'event' and 'data' (JSON string) keys
    """
    stream_key = events_key(session_id)
    failures = 0

    while True:
        try:
            batches = await redis_client.xread({stream_key: last_id}, count=10, block=block_ms)
        except aioredis.ConnectionError as e:
            failures += 1
            if failures >= max_failures:
                yield {
                    "id": None,
                    "event": "error",
                    "data": json.dumps({"error": f"Redis connection lost: {str(e)}"})
                }
                return
            await asyncio.sleep(1)
            yield _heartbeat(f"retrying_connection_{failures}")
            continue

        failures = 0
        if not batches:
            yield _heartbeat()
            continue

        for _, entries in batches:
            for entry_id, fields in entries:
                last_id = entry_id
                yield {
                    "id": entry_id,
                    "event": fields.get("event", "message"),
                    "data": fields.get("data", "{}")
                }
