"""Tests for the Responses API client wrapper."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, AsyncIterator

import httpx
import pytest

from assistant_runtime.client import ResponsesClient
from assistant_runtime.retry import RetryPolicy
from assistant_runtime.transport import FileReference, Transport


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def no_sleep(delay: float) -> None:
    return None


def make_client(handler: Any) -> ResponsesClient:
    transport = Transport(
        base_url="https://api.test",
        api_key="sk-test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_policy=RetryPolicy(jitter=False),
        sleep=no_sleep,
    )
    return ResponsesClient(transport, default_model="gpt-test")


def sse_body(*events: dict[str, Any]) -> bytes:
    blocks = [
        f"event: {event['type']}\ndata: {json.dumps(event)}\n\n" for event in events
    ]
    blocks.append("data: [DONE]\n\n")
    return "".join(blocks).encode()


class TrackingStream(httpx.AsyncByteStream):
    def __init__(self, body: bytes) -> None:
        self._body = body
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for line in self._body.splitlines(keepends=True):
            yield line

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.anyio
async def test_create_response_applies_default_model_and_idempotency() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "resp_1", "output": []})

    client = make_client(handler)
    result = await client.create_response({"input": "hello"})

    assert result["id"] == "resp_1"
    assert seen[0].url.path == "/v1/responses"
    assert json.loads(seen[0].content) == {"input": "hello", "model": "gpt-test"}
    assert seen[0].headers["Idempotency-Key"]


@pytest.mark.anyio
async def test_explicit_model_is_kept() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "resp_1"})

    client = make_client(handler)
    await client.send_turn({"model": "custom", "input": "hello"})

    assert json.loads(seen[0].content)["model"] == "custom"


@pytest.mark.anyio
async def test_stream_text_yields_deltas() -> None:
    body = sse_body(
        {"type": "response.created", "response": {"id": "resp_1"}},
        {"type": "response.output_text.delta", "delta": "Hel"},
        {"type": "response.output_text.delta", "delta": "lo"},
        {"type": "response.completed", "response": {"id": "resp_1"}},
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"Content-Type": "text/event-stream"}, content=body
        )

    client = make_client(handler)
    chunks = [chunk async for chunk in client.stream_text({"input": "hi"})]

    assert chunks == ["Hel", "lo"]


@pytest.mark.anyio
async def test_stream_accumulated_reports_final_event() -> None:
    body = sse_body(
        {"type": "response.output_text.delta", "delta": "A"},
        {"type": "response.output_text.delta", "delta": "B"},
        {"type": "response.completed", "response": {"id": "resp_1"}},
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"Content-Type": "text/event-stream"}, content=body
        )

    client = make_client(handler)
    events = [event async for event in client.stream_accumulated({"input": "hi"})]

    assert [event.type for event in events] == [
        "response.output_text.delta",
        "response.output_text.delta",
        "response.completed",
    ]
    assert events[-1].is_final
    assert events[-1].accumulated == "AB"


@pytest.mark.anyio
async def test_abandoning_a_stream_closes_the_connection() -> None:
    stream = TrackingStream(
        sse_body(
            {"type": "response.output_text.delta", "delta": "one"},
            {"type": "response.output_text.delta", "delta": "two"},
            {"type": "response.output_text.delta", "delta": "three"},
        )
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"Content-Type": "text/event-stream"}, stream=stream
        )

    client = make_client(handler)
    chunks = client.stream_text({"input": "hi"})

    assert await chunks.__anext__() == "one"
    await chunks.aclose()

    assert stream.closed


@pytest.mark.anyio
async def test_response_lifecycle_endpoints() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.method == "DELETE":
            return httpx.Response(200, json={"deleted": True})
        return httpx.Response(200, json={"id": "resp_1", "status": "completed"})

    client = make_client(handler)

    assert (await client.get_response("resp_1"))["status"] == "completed"
    await client.cancel_response("resp_1")
    assert await client.delete_response("resp_1") is True
    await client.list_input_items("resp_1", params={"limit": 5})

    assert seen == [
        ("GET", "/v1/responses/resp_1"),
        ("POST", "/v1/responses/resp_1/cancel"),
        ("DELETE", "/v1/responses/resp_1"),
        ("GET", "/v1/responses/resp_1/input_items"),
    ]


@pytest.mark.anyio
async def test_lifecycle_endpoints_require_an_id() -> None:
    client = make_client(lambda request: httpx.Response(200, json={}))

    with pytest.raises(ValueError):
        await client.get_response("")


@pytest.mark.anyio
async def test_transcribe_audio_sends_multipart(tmp_path: Path) -> None:
    audio = tmp_path / "speech.mp3"
    audio.write_bytes(b"ID3" + b"\x01" * 64)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"text": "hello there"})

    client = make_client(handler)
    result = await client.transcribe_audio(FileReference(audio), language="en")

    assert result == {"text": "hello there"}
    assert seen[0].url.path == "/v1/audio/transcriptions"
    assert b'name="language"' in seen[0].content
    assert b'filename="speech.mp3"' in seen[0].content


@pytest.mark.anyio
async def test_upload_file_accepts_open_handle(tmp_path: Path) -> None:
    document = tmp_path / "data.jsonl"
    document.write_text('{"a": 1}\n')
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "file_1"})

    client = make_client(handler)
    with document.open("rb") as handle:
        result = await client.upload_file(handle, purpose="batch")
        assert not handle.closed

    assert result == {"id": "file_1"}
    assert b'filename="data.jsonl"' in seen[0].content
    assert b"batch" in seen[0].content
