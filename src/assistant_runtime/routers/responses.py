"""Streaming relay routes."""

from __future__ import annotations

import json
from contextlib import aclosing

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse

from ..client import ResponsesClient
from ..config import Settings
from ..errors import TransportError
from ..schemas.responses import ResponseStreamRequest
from ..sse import DONE_SENTINEL
from ..streaming import to_text_chunks

router = APIRouter(prefix="/api", tags=["responses"])


@router.post("/responses/stream", response_model=None, status_code=200)
async def stream_response(
    payload: ResponseStreamRequest,
    request: Request,
) -> EventSourceResponse:
    """Relay upstream text deltas to the browser through Server-Sent Events."""

    client: ResponsesClient = request.app.state.responses_client
    settings: Settings = request.app.state.settings
    body = payload.to_payload(settings.default_model)

    async def event_publisher():
        try:
            async with aclosing(to_text_chunks(client.stream_response(body))) as chunks:
                async for chunk in chunks:
                    yield {"event": "message", "data": json.dumps({"delta": chunk})}
        except TransportError as exc:
            detail = exc.detail if isinstance(exc.detail, str) else json.dumps(exc.detail)
            yield {
                "event": "error",
                "data": json.dumps({"error": detail, "status": exc.status_code}),
            }
        yield {"event": "message", "data": DONE_SENTINEL}

    return EventSourceResponse(event_publisher())


__all__ = ["router"]
