"""Storage contract for tool invocations emitted during a response."""

from __future__ import annotations

import asyncio
import secrets
from enum import Enum
from typing import Any, Optional, Protocol


class InvocationState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ToolInvocationsStore(Protocol):
    """Records shaped ``{id, response_id, name, arguments, state, result_summary}``."""

    async def put(self, invocation: dict[str, Any]) -> str:
        ...

    async def get(self, invocation_id: Optional[str]) -> Optional[dict[str, Any]]:
        ...

    async def list_by_response(self, response_id: str) -> list[dict[str, Any]]:
        ...

    async def delete(self, invocation_id: Optional[str]) -> bool:
        ...


class InMemoryToolInvocationsStore:
    """Process-local implementation used by default and in tests."""

    def __init__(self) -> None:
        self._invocations: dict[str, dict[str, Any]] = {}
        self._by_response: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    async def put(self, invocation: dict[str, Any]) -> str:
        response_id = invocation.get("response_id")
        if not isinstance(response_id, str) or not response_id:
            raise ValueError("Tool invocation must include response_id")
        invocation_id = invocation.get("id")
        if not isinstance(invocation_id, str) or not invocation_id:
            invocation_id = secrets.token_hex(8)

        record = dict(invocation)
        record["id"] = invocation_id
        async with self._lock:
            self._invocations[invocation_id] = record
            ids = self._by_response.setdefault(response_id, [])
            if invocation_id not in ids:
                ids.append(invocation_id)
        return invocation_id

    async def get(self, invocation_id: Optional[str]) -> Optional[dict[str, Any]]:
        if invocation_id is None:
            return None
        record = self._invocations.get(invocation_id)
        return dict(record) if record is not None else None

    async def list_by_response(self, response_id: str) -> list[dict[str, Any]]:
        ids = self._by_response.get(response_id, [])
        return [dict(self._invocations[invocation_id]) for invocation_id in ids]

    async def delete(self, invocation_id: Optional[str]) -> bool:
        if invocation_id is None:
            return False
        async with self._lock:
            record = self._invocations.pop(invocation_id, None)
            if record is None:
                return False
            response_id = record.get("response_id")
            ids = self._by_response.get(response_id, [])
            if invocation_id in ids:
                ids.remove(invocation_id)
            if not ids:
                self._by_response.pop(response_id, None)
        return True


__all__ = ["InMemoryToolInvocationsStore", "InvocationState", "ToolInvocationsStore"]
