"""In-memory stores used by the webhook and tool layers."""

from .response_status import ResponseStatus, ResponseStatusStore, StatusRecord
from .tool_invocations import (
    InMemoryToolInvocationsStore,
    InvocationState,
    ToolInvocationsStore,
)

__all__ = [
    "InMemoryToolInvocationsStore",
    "InvocationState",
    "ResponseStatus",
    "ResponseStatusStore",
    "StatusRecord",
    "ToolInvocationsStore",
]
