"""Server-Sent Events framing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterable, Generator, Iterable, Optional

from .utils.json_access import ShapeError, decode_json_object

DONE_SENTINEL = "[DONE]"

FINAL_EVENT_TYPES = frozenset(
    {"response.completed", "response.failed", "response.canceled"}
)


@dataclass
class SseEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    type: str = "message"
    event_id: Optional[str] = None
    raw: tuple[str, ...] = field(default=(), repr=False)

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_SENTINEL or self.type == "done"

    @property
    def is_final(self) -> bool:
        return self.type in FINAL_EVENT_TYPES

    def json(self) -> dict[str, Any]:
        """Decode ``data`` as a JSON object, raising :class:`ShapeError` otherwise."""

        if self.is_done:
            raise ShapeError("Stream sentinel carries no JSON payload")
        return decode_json_object(self.data)

    def asdict(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {"event": self.type, "data": self.data}
        if self.event_id is not None:
            payload["id"] = self.event_id
        return payload


class SseEventParser:
    """Incremental line-oriented SSE parser.

    Feed it one line at a time (with or without the trailing newline). A blank
    line terminates the current block and returns the event it described.
    """

    def __init__(self) -> None:
        self._event_type: Optional[str] = None
        self._event_id: Optional[str] = None
        self._data: list[str] = []
        self._raw: list[str] = []

    def feed(self, line: str) -> Optional[SseEvent]:
        line = line.rstrip("\n").rstrip("\r")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None

        self._raw.append(line)
        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event_type = value or None
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._event_id = value or None
        return None

    def flush(self) -> Optional[SseEvent]:
        """Emit the pending block, if it carried any data or type."""

        if not self._data and self._event_type is None:
            self._reset()
            return None
        event = SseEvent(
            data="\n".join(self._data),
            type=self._event_type or "message",
            event_id=self._event_id,
            raw=tuple(self._raw),
        )
        self._reset()
        return event

    def _reset(self) -> None:
        self._event_type = None
        self._event_id = None
        self._data = []
        self._raw = []

    def parse(self, lines: Iterable[str]) -> Generator[SseEvent, None, None]:
        for line in lines:
            event = self.feed(line)
            if event is not None:
                yield event
        event = self.flush()
        if event is not None:
            yield event

    async def aparse(self, lines: AsyncIterable[str]) -> AsyncGenerator[SseEvent, None]:
        """Parse an async line source; closing this generator closes ``lines``."""

        try:
            async for line in lines:
                event = self.feed(line)
                if event is not None:
                    yield event
            event = self.flush()
            if event is not None:
                yield event
        finally:
            aclose = getattr(lines, "aclose", None)
            if aclose is not None:
                await aclose()


def parse_lines(lines: Iterable[str]) -> Generator[SseEvent, None, None]:
    return SseEventParser().parse(lines)


def aparse_lines(lines: AsyncIterable[str]) -> AsyncGenerator[SseEvent, None]:
    return SseEventParser().aparse(lines)


__all__ = [
    "DONE_SENTINEL",
    "FINAL_EVENT_TYPES",
    "SseEvent",
    "SseEventParser",
    "aparse_lines",
    "parse_lines",
]
