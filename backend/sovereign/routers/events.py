"""
Sovereign Credit Intelligence - Lifecycle Events API Router

Streams a subject's lifecycle events as Server-Sent Events. The event bus
subscription lives exactly as long as the client connection.
"""
import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ..dependencies import get_loop
from ..services.intelligence import IntelligenceLoop

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

KEEPALIVE_SECONDS = 15.0


@router.get("/{user_id}")
async def stream_events(user_id: str, request: Request, loop: IntelligenceLoop = Depends(get_loop)):
    """Server-Sent Events stream of lifecycle progress for one subject."""
    subscription = loop.events.subscribe(user_id)

    async def event_stream():
        async with subscription:
            while True:
                if await request.is_disconnected():
                    logger.info(f"Event stream client for {user_id} disconnected")
                    break
                try:
                    event = await subscription.get(timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if event is None:
                    break
                yield f"event: {event.phase.value}\ndata: {json.dumps(event.to_dict())}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
