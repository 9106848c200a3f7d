"""Tests for the inbound webhook route."""

from __future__ import annotations

import json
import time
from typing import Any

import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from assistant_runtime.app import create_app
from assistant_runtime.config import Settings
from assistant_runtime.events import ResponseCompleted, ResponseFailed, ToolCallRequested
from assistant_runtime.webhooks import sign_payload

SECRET = "whsec_router"
PATH = "/ai-assistant/webhook"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "api_key": SecretStr("sk-test"),
        "webhooks_enabled": True,
        "webhooks_signing_secret": SecretStr(SECRET),
    }
    values.update(overrides)
    return Settings(**values)


def signed_headers(body: bytes, timestamp: int | None = None) -> dict[str, str]:
    ts = int(time.time()) if timestamp is None else timestamp
    return {
        "X-OpenAI-Signature": sign_payload(body, SECRET, ts),
        "X-OpenAI-Timestamp": str(ts),
        "Content-Type": "application/json",
    }


@pytest.fixture
def app():
    return create_app(make_settings())


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def test_completed_event_updates_status_and_notifies(app, client: TestClient) -> None:
    received: list[Any] = []
    app.state.event_dispatcher.subscribe(received.append)
    body = json.dumps(
        {
            "type": "response.completed",
            "response": {"id": "resp_1", "conversation_id": "conv_1"},
        }
    ).encode()

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    store = app.state.response_status_store
    assert store.get_last_status("resp_1") == "completed"
    assert store.get_last_status_by_conversation("conv_1") == "completed"
    assert received == [ResponseCompleted("resp_1", json.loads(body))]


def test_failed_event_carries_error(app, client: TestClient) -> None:
    received: list[Any] = []
    app.state.event_dispatcher.subscribe(received.append, ResponseFailed)
    body = json.dumps(
        {"type": "response.failed", "response": {"id": "resp_2", "error": {"message": "boom"}}}
    ).encode()

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 200
    assert app.state.response_status_store.get_last_status("resp_2") == "failed"
    assert len(received) == 1
    assert received[0].error == "boom"


def test_tool_call_event_marks_requires_action(app, client: TestClient) -> None:
    received: list[Any] = []
    app.state.event_dispatcher.subscribe(received.append, ToolCallRequested)
    body = json.dumps(
        {
            "type": "response.required_action",
            "data": {
                "response": {
                    "id": "resp_3",
                    "required_action": {
                        "submit_tool_outputs": {"tool_calls": [{"id": "call_1"}]}
                    },
                }
            },
        }
    ).encode()

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 200
    assert app.state.response_status_store.get_last_status("resp_3") == "requires_action"
    assert received[0].tool_calls == [{"id": "call_1"}]


def test_unknown_event_type_is_recorded(app, client: TestClient) -> None:
    body = json.dumps({"type": "response.in_progress", "response_id": "resp_4"}).encode()

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 200
    assert app.state.response_status_store.get_last_status("resp_4") == "response.in_progress"


def test_invalid_signature_is_rejected(app, client: TestClient) -> None:
    body = b'{"type":"response.completed","response":{"id":"resp_1"}}'
    headers = signed_headers(body)
    headers["X-OpenAI-Signature"] = "sha256=" + "0" * 64

    response = client.post(PATH, content=body, headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}
    assert app.state.response_status_store.get_status("resp_1") is None


def test_replayed_delivery_is_rejected(client: TestClient) -> None:
    body = b'{"type":"response.completed","response":{"id":"resp_1"}}'
    stale = int(time.time()) - 3600

    response = client.post(PATH, content=body, headers=signed_headers(body, stale))

    assert response.status_code == 401


def test_legacy_signature_is_accepted(client: TestClient) -> None:
    body = b'{"type":"response.completed","response":{"id":"resp_5"}}'
    headers = {"X-OpenAI-Signature": sign_payload(body, SECRET)}

    response = client.post(PATH, content=body, headers=headers)

    assert response.status_code == 200


def test_missing_signature_header(client: TestClient) -> None:
    response = client.post(PATH, content=b"{}")

    assert response.status_code == 400
    assert response.json() == {"error": "Missing signature header"}


def test_invalid_json_after_valid_signature(client: TestClient) -> None:
    body = b"not json"

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON"}


def test_missing_response_id(client: TestClient) -> None:
    body = b'{"type":"response.completed"}'

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 422


def test_disabled_webhooks_return_404() -> None:
    client = TestClient(create_app(make_settings(webhooks_enabled=False)))

    response = client.post(PATH, content=b"{}", headers={"X-OpenAI-Signature": "x"})

    assert response.status_code == 404


def test_missing_secret_returns_403() -> None:
    client = TestClient(create_app(make_settings(webhooks_signing_secret=None)))

    response = client.post(PATH, content=b"{}", headers={"X-OpenAI-Signature": "x"})

    assert response.status_code == 403


def test_listener_failure_does_not_fail_delivery(app, client: TestClient) -> None:
    def broken(event: Any) -> None:
        raise RuntimeError("listener bug")

    app.state.event_dispatcher.subscribe(broken)
    body = b'{"type":"response.completed","response":{"id":"resp_6"}}'

    response = client.post(PATH, content=body, headers=signed_headers(body))

    assert response.status_code == 200


def test_custom_webhook_path() -> None:
    client = TestClient(create_app(make_settings(webhooks_path="/hooks/openai")))
    body = b'{"type":"response.completed","response":{"id":"resp_7"}}'

    assert client.post("/hooks/openai", content=body, headers=signed_headers(body)).status_code == 200
    assert client.post(PATH, content=body, headers=signed_headers(body)).status_code == 404
