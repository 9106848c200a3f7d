"""Tests for the SSE line parser."""

from typing import AsyncIterator

import pytest

from assistant_runtime.sse import SseEvent, SseEventParser, parse_lines
from assistant_runtime.utils.json_access import ShapeError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def test_parses_canonical_block() -> None:
    events = list(parse_lines(["event: x", "data: {\"a\":1}", ""]))

    assert len(events) == 1
    assert events[0].type == "x"
    assert events[0].json() == {"a": 1}


def test_multiple_data_lines_are_joined() -> None:
    events = list(
        parse_lines(
            [
                "event: completion",
                "id: test-id",
                "data: part one",
                "data: part two",
                "",
            ]
        )
    )

    assert events[0].data == "part one\npart two"
    assert events[0].asdict() == {
        "event": "completion",
        "data": "part one\npart two",
        "id": "test-id",
    }


def test_default_type_is_message() -> None:
    events = list(parse_lines(["data: hello", ""]))

    assert events[0].type == "message"
    assert events[0].data == "hello"


def test_comments_and_unknown_fields_are_ignored() -> None:
    events = list(parse_lines([": keep-alive", "retry: 1000", "data: ok", ""]))

    assert [event.data for event in events] == ["ok"]


def test_blank_lines_without_fields_emit_nothing() -> None:
    assert list(parse_lines(["", "", ": ping", ""])) == []


def test_handles_trailing_newlines_and_missing_space() -> None:
    parser = SseEventParser()

    assert parser.feed("event:delta\r\n") is None
    assert parser.feed("data:{\"x\":2}\n") is None
    event = parser.feed("\n")

    assert event is not None
    assert event.type == "delta"
    assert event.json() == {"x": 2}


def test_trailing_block_is_flushed_at_end_of_input() -> None:
    events = list(parse_lines(["data: tail"]))

    assert [event.data for event in events] == ["tail"]


def test_done_sentinel() -> None:
    event = SseEvent(data="[DONE]")

    assert event.is_done
    with pytest.raises(ShapeError):
        event.json()


def test_final_event_types() -> None:
    assert SseEvent(data="{}", type="response.completed").is_final
    assert not SseEvent(data="{}", type="response.output_text.delta").is_final


class TrackingLines:
    def __init__(self, lines: list[str]) -> None:
        self._lines = iter(lines)
        self.closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        try:
            return next(self._lines)
        except StopIteration:
            raise StopAsyncIteration from None

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.anyio
async def test_aparse_yields_events_and_closes_source() -> None:
    source = TrackingLines(["event: a", "data: 1", "", "data: 2", "", "data: 3", ""])
    events = SseEventParser().aparse(source)

    first = await events.__anext__()
    assert first.type == "a"
    await events.aclose()

    assert source.closed
