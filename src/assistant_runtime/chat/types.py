"""Type definitions for the tool-calling subsystem."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol

if TYPE_CHECKING:
    from .envelope import ResponseEnvelope


class ToolExecutor(Protocol):
    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None = None
    ) -> Any:
        ...

    def format_tool_result(self, result: Any) -> Any:
        ...


class TurnSender(Protocol):
    async def send_turn(self, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        ...


class LoopStatus(str, Enum):
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    TOOL_CALLS_REQUESTED = "tool_calls_requested"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"
    ROUND_LIMIT_REACHED = "round_limit_reached"


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: Any = None
    # Set when the model sent arguments that are not valid JSON.
    arguments_error: Optional[str] = None


@dataclass
class ToolCallResult:
    tool_call_id: str
    output: Any
    name: Optional[str] = None
    is_error: bool = False

    def output_text(self) -> str:
        """Return ``output`` in the string form the Responses API expects."""

        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, ensure_ascii=False, default=str)


@dataclass
class TurnState:
    max_rounds: int
    context: dict[str, Any]
    rounds_used: int = 0
    status: LoopStatus = LoopStatus.SENDING
    pending_tool_calls: list[ToolCallRequest] = field(default_factory=list)
    last_response: Optional["ResponseEnvelope"] = None
    results: list[ToolCallResult] = field(default_factory=list)


@dataclass
class LoopResult:
    status: LoopStatus
    response: Optional["ResponseEnvelope"]
    rounds_used: int
    tool_results: list[ToolCallResult]
    state: TurnState

    @property
    def done(self) -> bool:
        return self.status is LoopStatus.DONE

    @property
    def round_limit_reached(self) -> bool:
        return self.status is LoopStatus.ROUND_LIMIT_REACHED


__all__ = [
    "LoopResult",
    "LoopStatus",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolExecutor",
    "TurnSender",
    "TurnState",
]
