"""Webhook-derived events and a small observer dispatcher."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseCompleted:
    response_id: str
    payload: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class ResponseFailed:
    response_id: str
    error: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class ToolCallRequested:
    response_id: str
    tool_calls: list[Any] = field(default_factory=list)
    payload: dict[str, Any] = field(default_factory=dict, repr=False)


WebhookEvent = Union[ResponseCompleted, ResponseFailed, ToolCallRequested]
Listener = Callable[[WebhookEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    """Fan events out to subscribed listeners.

    Listener failures are logged and never propagate to the dispatcher's
    caller, so an observer cannot change the outcome of a webhook request.
    """

    def __init__(self) -> None:
        self._listeners: list[tuple[Optional[type], Listener]] = []

    def subscribe(self, listener: Listener, event_type: Optional[type] = None) -> Callable[[], None]:
        entry = (event_type, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    async def dispatch(self, event: WebhookEvent) -> None:
        for event_type, listener in list(self._listeners):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Listener %r failed for %s", listener, type(event).__name__
                )


__all__ = [
    "EventDispatcher",
    "Listener",
    "ResponseCompleted",
    "ResponseFailed",
    "ToolCallRequested",
    "WebhookEvent",
]
