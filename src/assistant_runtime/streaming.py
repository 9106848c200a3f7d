"""Reduce parsed SSE events to text deltas and normalized stream events."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncGenerator,
    AsyncIterable,
    Awaitable,
    Callable,
    Optional,
    TypeVar,
    Union,
)

from .errors import ResponseCanceledError
from .sse import SseEvent
from .utils.json_access import dig

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEXT_DELTA_EVENTS = frozenset({"response.output_text.delta"})
TEXT_DONE_EVENTS = frozenset({"response.output_text.done", "response.output_text.completed"})
TERMINAL_EVENTS = frozenset({"response.completed", "response.failed", "response.canceled"})


@dataclass
class NormalizedEvent:
    """A decoded stream event with running text accumulation applied."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    is_final: bool = False
    delta: str = ""
    accumulated: str = ""
    text: Optional[str] = None


def _decode_data(event: SseEvent) -> Optional[dict[str, Any]]:
    if event.is_done or not event.data:
        return None
    try:
        decoded = json.loads(event.data)
    except json.JSONDecodeError:
        return {"data": event.data}
    if isinstance(decoded, dict):
        return decoded
    return {"data": decoded}


def _effective_type(event: SseEvent, data: Optional[dict[str, Any]]) -> str:
    # Some upstreams omit the ``event:`` line and carry the type in the body.
    if event.type == "message" and data is not None:
        body_type = data.get("type")
        if isinstance(body_type, str) and body_type:
            return body_type
    return event.type


def _delta_from_data(data: dict[str, Any]) -> str:
    for path in (("delta",), ("text",), ("item", "delta"), ("output_text", "delta")):
        value = dig(data, *path)
        if isinstance(value, str):
            return value
    return ""


def _completed_text(data: dict[str, Any]) -> str:
    for path in (("text",), ("output_text",), ("item", "text")):
        value = dig(data, *path)
        if isinstance(value, str):
            return value
    return ""


def extract_delta_text(event: SseEvent) -> str:
    """Return the text fragment carried by ``event`` or ``""`` for control events."""

    data = _decode_data(event)
    if data is None:
        return ""
    event_type = _effective_type(event, data)
    if event_type in TEXT_DELTA_EVENTS:
        return _delta_from_data(data)
    if event_type == "message":
        # Chat Completions chunk.
        content = dig(data, "choices", 0, "delta", "content")
        if isinstance(content, str):
            return content
    return ""


async def to_text_chunks(
    events: AsyncIterable[SseEvent],
    on_chunk: Optional[Callable[[str], Any]] = None,
) -> AsyncGenerator[str, None]:
    """Yield non-empty text deltas until the stream signals completion.

    ``on_chunk`` is called synchronously right before each chunk is yielded.
    Closing this generator closes ``events`` and, through it, the connection.
    """

    try:
        async for event in events:
            if event.is_done:
                break
            chunk = extract_delta_text(event)
            if not chunk:
                continue
            if on_chunk is not None:
                on_chunk(chunk)
            yield chunk
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


async def accumulate(
    events: AsyncIterable[SseEvent],
    *,
    raise_on_cancel: bool = False,
) -> AsyncGenerator[NormalizedEvent, None]:
    """Yield :class:`NormalizedEvent` items, accumulating ``output_text`` deltas.

    Delta events carry the running ``accumulated`` text, text-done events carry
    the full ``text``, and the accumulator resets after each terminal event.
    """

    accumulated = ""
    try:
        async for event in events:
            if event.is_done:
                break
            data = _decode_data(event) or {}
            event_type = _effective_type(event, data)

            if event_type in TEXT_DELTA_EVENTS:
                delta = _delta_from_data(data)
                accumulated += delta
                yield NormalizedEvent(
                    type=event_type, data=data, delta=delta, accumulated=accumulated
                )
                continue

            if event_type in TEXT_DONE_EVENTS:
                text = _completed_text(data) or accumulated
                accumulated = text
                yield NormalizedEvent(
                    type=event_type, data=data, accumulated=accumulated, text=text
                )
                continue

            is_final = event_type in TERMINAL_EVENTS
            if event_type == "response.canceled" and raise_on_cancel:
                raise ResponseCanceledError(
                    dig(data, "response", "id", default="") or "Response canceled"
                )
            yield NormalizedEvent(
                type=event_type,
                data=data,
                is_final=is_final,
                accumulated=accumulated,
            )
            if is_final:
                accumulated = ""
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


async def drive(
    items: AsyncIterable[T],
    on_event: Callable[[T], Union[None, Awaitable[None]]],
    *,
    should_stop: Optional[Callable[[T], bool]] = None,
) -> int:
    """Drive ``items`` to completion, invoking ``on_event`` for each one.

    Returns the number of items delivered. When ``should_stop`` returns true
    after an item has been delivered, the source is closed and iteration ends.
    """

    delivered = 0
    try:
        async for item in items:
            result = on_event(item)
            if inspect.isawaitable(result):
                await result
            delivered += 1
            if should_stop is not None and should_stop(item):
                logger.debug("Stream consumer stopped after %d item(s)", delivered)
                break
    finally:
        aclose = getattr(items, "aclose", None)
        if aclose is not None:
            await aclose()
    return delivered


__all__ = [
    "NormalizedEvent",
    "TERMINAL_EVENTS",
    "accumulate",
    "drive",
    "extract_delta_text",
    "to_text_chunks",
]
