"""Inbound webhook route."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from ..config import Settings
from ..events import (
    EventDispatcher,
    ResponseCompleted,
    ResponseFailed,
    ToolCallRequested,
)
from ..services.response_status import ResponseStatus, ResponseStatusStore
from ..utils.json_access import ShapeError, decode_json_object
from ..webhooks import (
    WebhookVerifier,
    extract_error_message,
    extract_event_type,
    extract_response_id,
    extract_tool_calls,
)

logger = logging.getLogger(__name__)

TOOL_CALL_EVENTS = frozenset(
    {
        "response.required_action",
        "response.tool_call.created",
        "response.tool_call.required",
    }
)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def handle_webhook(request: Request) -> JSONResponse:
    """Verify, decode and route one webhook delivery."""

    settings: Settings = request.app.state.settings
    if not settings.webhooks_enabled:
        return _error("Webhooks disabled", status.HTTP_404_NOT_FOUND)

    secret = settings.webhooks_signing_secret
    if secret is None or not secret.get_secret_value():
        return _error("Signing secret not configured", status.HTTP_403_FORBIDDEN)

    signature = request.headers.get(settings.webhooks_signature_header, "")
    if not signature:
        return _error("Missing signature header", status.HTTP_400_BAD_REQUEST)
    timestamp = request.headers.get(settings.webhooks_timestamp_header)

    raw = await request.body()
    verifier: WebhookVerifier = getattr(
        request.app.state, "webhook_verifier", None
    ) or WebhookVerifier.from_settings(settings)
    result = verifier.verify(raw, signature, timestamp)
    if not result.verified:
        logger.warning("Rejected webhook with invalid signature")
        return _error("Invalid signature", status.HTTP_401_UNAUTHORIZED)

    try:
        payload = decode_json_object(raw)
    except ShapeError:
        return _error("Invalid JSON", status.HTTP_400_BAD_REQUEST)

    response_id = extract_response_id(payload)
    if not response_id:
        return _error("Missing response id", status.HTTP_422_UNPROCESSABLE_ENTITY)

    event_type = extract_event_type(payload)
    store: ResponseStatusStore = request.app.state.response_status_store
    dispatcher: EventDispatcher = request.app.state.event_dispatcher
    logger.info(
        "Webhook %s for response %s verified via %s scheme",
        event_type or "unknown",
        response_id,
        result.scheme,
    )
    await _route_event(event_type, response_id, payload, store, dispatcher)
    return JSONResponse({"ok": True})


async def _route_event(
    event_type: str | None,
    response_id: str,
    payload: dict[str, Any],
    store: ResponseStatusStore,
    dispatcher: EventDispatcher,
) -> None:
    if event_type == "response.completed":
        store.set_status(response_id, ResponseStatus.COMPLETED.value, payload)
        await dispatcher.dispatch(ResponseCompleted(response_id, payload))
    elif event_type == "response.failed":
        store.set_status(response_id, ResponseStatus.FAILED.value, payload)
        await dispatcher.dispatch(
            ResponseFailed(response_id, extract_error_message(payload), payload)
        )
    elif event_type in TOOL_CALL_EVENTS:
        store.set_status(response_id, ResponseStatus.REQUIRES_ACTION.value, payload)
        await dispatcher.dispatch(
            ToolCallRequested(response_id, extract_tool_calls(payload), payload)
        )
    else:
        # Unknown types are recorded for observability without failing the delivery.
        store.set_status(response_id, event_type or "unknown", payload)


def create_webhook_router(path: str) -> APIRouter:
    router = APIRouter(tags=["webhooks"])
    router.add_api_route(
        path,
        handle_webhook,
        methods=["POST"],
        response_model=None,
        name="handle_webhook",
    )
    return router


__all__ = ["create_webhook_router", "handle_webhook"]
