"""Tests for the in-memory response status store."""

import pytest

from assistant_runtime.services.response_status import ResponseStatus, ResponseStatusStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_status_is_indexed_by_response_and_conversation() -> None:
    store = ResponseStatusStore(clock=FakeClock())
    payload = {"response": {"id": "resp_1", "conversation_id": "conv_1"}}

    store.set_status("resp_1", "completed", payload)

    assert store.get_last_status("resp_1") == "completed"
    record = store.get_by_conversation_id("conv_1")
    assert record is not None
    assert record.last_response_id == "resp_1"
    assert record.payload == payload


def test_latest_update_wins() -> None:
    store = ResponseStatusStore(clock=FakeClock())

    store.set_status("resp_1", "in_progress")
    store.set_status("resp_1", "failed")

    assert store.get_last_status("resp_1") == "failed"


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    store = ResponseStatusStore(ttl_seconds=60, clock=clock)
    store.set_status("resp_1", "completed", {"conversation_id": "conv_1"})

    clock.now += 59
    assert store.get_last_status("resp_1") == "completed"

    clock.now += 1
    assert store.get_status("resp_1") is None
    assert store.get_last_status_by_conversation("conv_1") is None


def test_empty_ids_are_rejected() -> None:
    store = ResponseStatusStore()

    with pytest.raises(ValueError):
        store.set_status("", "completed")
    with pytest.raises(ValueError):
        store.get_status("")
    with pytest.raises(ValueError):
        store.get_by_conversation_id("")


def test_status_enum_parsing() -> None:
    assert ResponseStatus.parse("Canceled") is ResponseStatus.CANCELLED
    assert ResponseStatus.parse("requires_action") is ResponseStatus.REQUIRES_ACTION
    assert ResponseStatus.parse("bogus") is None
    assert ResponseStatus.COMPLETED.is_terminal
    assert ResponseStatus.IN_PROGRESS.is_active
