"""In-memory record of response statuses reported by webhooks."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from ..utils.json_access import first_present

DEFAULT_TTL_SECONDS = 86400


class ResponseStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"

    @property
    def is_terminal(self) -> bool:
        return self in {
            ResponseStatus.COMPLETED,
            ResponseStatus.FAILED,
            ResponseStatus.CANCELLED,
            ResponseStatus.INCOMPLETE,
        }

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    @classmethod
    def parse(cls, value: str) -> Optional["ResponseStatus"]:
        normalized = value.strip().lower()
        if normalized == "canceled":
            normalized = "cancelled"
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass
class StatusRecord:
    status: str
    payload: dict[str, Any] = field(default_factory=dict)
    updated_at: float = 0.0
    expires_at: float = 0.0
    last_response_id: Optional[str] = None


def extract_conversation_id(payload: Mapping[str, Any]) -> Optional[str]:
    value = first_present(
        payload,
        ("response", "conversation_id"),
        ("data", "response", "conversation_id"),
        ("conversation_id",),
        ("conversation", "id"),
    )
    return str(value) if value is not None else None


class ResponseStatusStore:
    """Track the latest status per response id, indexed by conversation too.

    Entries expire ``ttl_seconds`` after their last update.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock or time.time
        self._by_response: dict[str, StatusRecord] = {}
        self._by_conversation: dict[str, StatusRecord] = {}

    def set_status(
        self,
        response_id: str,
        status: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        ttl_seconds: Optional[int] = None,
    ) -> StatusRecord:
        if not response_id:
            raise ValueError("response_id cannot be empty")
        data = dict(payload or {})
        now = self._clock()
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        record = StatusRecord(
            status=status, payload=data, updated_at=now, expires_at=now + ttl
        )
        self._by_response[response_id] = record

        conversation_id = extract_conversation_id(data)
        if conversation_id:
            self._by_conversation[conversation_id] = StatusRecord(
                status=status,
                payload=data,
                updated_at=now,
                expires_at=now + ttl,
                last_response_id=response_id,
            )
        return record

    def get_status(self, response_id: str) -> Optional[StatusRecord]:
        if not response_id:
            raise ValueError("response_id cannot be empty")
        return self._fresh(self._by_response, response_id)

    def get_last_status(self, response_id: str) -> Optional[str]:
        record = self.get_status(response_id)
        return record.status if record is not None else None

    def get_by_conversation_id(self, conversation_id: str) -> Optional[StatusRecord]:
        if not conversation_id:
            raise ValueError("conversation_id cannot be empty")
        return self._fresh(self._by_conversation, conversation_id)

    def get_last_status_by_conversation(self, conversation_id: str) -> Optional[str]:
        record = self.get_by_conversation_id(conversation_id)
        return record.status if record is not None else None

    def _fresh(
        self, records: dict[str, StatusRecord], key: str
    ) -> Optional[StatusRecord]:
        record = records.get(key)
        if record is None:
            return None
        if record.expires_at <= self._clock():
            del records[key]
            return None
        return record


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "ResponseStatus",
    "ResponseStatusStore",
    "StatusRecord",
    "extract_conversation_id",
]
