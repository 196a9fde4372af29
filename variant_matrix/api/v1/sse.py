"""
Server-Sent Events (SSE) endpoint for image upload progress.
"""

import json
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Request, HTTPException, status, Header, Query
from fastapi.responses import StreamingResponse

from variant_matrix.deps import get_redis, get_session_store
from variant_matrix.core.events import stream_session_events
from variant_matrix.core.session_store import RedisSessionStore, SessionNotFoundError

router = APIRouter()


def _format_event(event: Dict[str, Any]) -> str:
    """Render one stream entry as an SSE frame."""
    if event.get("event") == "comment":
        return f": {event.get('data', 'ping')}\n\n"

    frame = ""
    if event.get("id"):
        frame += f"id: {event['id']}\n"
    return frame + f"event: {event.get('event', 'message')}\ndata: {event.get('data', '{}')}\n\n"


def _for_row(event: Dict[str, Any], row_id: Optional[str]) -> bool:
    if not row_id or event.get("event") in ("comment", "error"):
        return True
    try:
        return json.loads(event.get("data") or "{}").get("row_id") == row_id
    except ValueError:
        return False


@router.get("")
async def stream_upload_events(
    session_id: str,
    request: Request,
    row_id: Optional[str] = Query(None, description="Only events for this row"),
    last_event_id: Optional[str] = Header(None, alias="Last-Event-ID"),
    store: RedisSessionStore = Depends(get_session_store)
):
    """
    Stream a session's upload status and progress events.

    Resumes after Last-Event-ID when the header is sent.
    """
    try:
        session = await store.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    redis = await get_redis()
    try:
        await redis.ping()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Redis connection failed: {str(e)}"
        )

    greeting = json.dumps({"session_id": session_id, "uploading_row": session.matrix.uploading_row})

    async def frames():
        yield f"event: connected\ndata: {greeting}\n\n"
        try:
            async for event in stream_session_events(redis, session_id, last_event_id or "$"):
                if await request.is_disconnected():
                    return
                if _for_row(event, row_id):
                    yield _format_event(event)
                if event.get("event") == "error":
                    return
        except Exception as e:
            yield f"event: error\ndata: {json.dumps({'error': str(e)})}\n\n"

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )
