"""Tool-calling orchestration."""

from .envelope import ResponseEnvelope, normalize_response
from .tool_loop import ToolCallLoop, append_chat_tool_messages, append_function_call_outputs
from .tool_registry import ToolRegistry
from .types import (
    LoopResult,
    LoopStatus,
    ToolCallRequest,
    ToolCallResult,
    ToolExecutor,
    TurnSender,
    TurnState,
)

__all__ = [
    "LoopResult",
    "LoopStatus",
    "ResponseEnvelope",
    "ToolCallLoop",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolExecutor",
    "ToolRegistry",
    "TurnSender",
    "TurnState",
    "append_chat_tool_messages",
    "append_function_call_outputs",
    "normalize_response",
]
