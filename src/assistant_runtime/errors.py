"""Exception taxonomy shared by the transport, streaming, webhook and tool layers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .retry import ErrorKind
from .utils.json_access import ShapeError

if TYPE_CHECKING:
    from .chat.types import LoopResult, TurnState


class AssistantRuntimeError(Exception):
    """Base class for all runtime failures raised by this package."""


class TransportError(AssistantRuntimeError):
    """Wrap transport or API failures when communicating with the upstream API."""

    def __init__(
        self,
        status_code: int | None,
        detail: Any,
        *,
        kind: ErrorKind | None = None,
        attempts: int = 1,
        body: Any = None,
    ) -> None:
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail
        self.body = body
        self.kind = kind
        self.attempts = attempts

    def __str__(self) -> str:
        details: list[str] = []
        if self.status_code is not None:
            details.append(f"status={self.status_code}")
        if self.kind is not None:
            details.append(f"kind={self.kind.value}")
        if self.attempts > 1:
            details.append(f"attempts={self.attempts}")
        if not details:
            return str(self.detail)
        return f"{self.detail} [{' '.join(details)}]"


class TransientTransportError(TransportError):
    """Timeout, connection reset, 429 or 5xx that survived every retry."""


class PermanentTransportError(TransportError):
    """4xx (other than 429) or a malformed response body; never retried."""


class StreamInterruptedError(TransportError):
    """An SSE connection dropped after the stream had started."""


class StreamTimeoutError(StreamInterruptedError):
    """An SSE stream stalled past its read timeout."""


class ResponseCanceledError(AssistantRuntimeError):
    """The upstream reported that a streamed response was canceled."""


class SignatureVerificationError(AssistantRuntimeError):
    """An inbound webhook failed signature verification."""


class ToolExecutionError(AssistantRuntimeError):
    """A tool call failed.

    Non-fatal failures are reported back to the model as a tool result. Set
    ``fatal=True`` to abort the whole tool-calling loop instead.
    """

    def __init__(self, message: str, *, tool_name: str | None = None, fatal: bool = False) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.fatal = fatal


class ToolNotFoundError(ToolExecutionError):
    """The model asked for a tool that is not registered."""


class ToolLoopError(AssistantRuntimeError):
    """The tool-calling loop failed; carries the round and last state."""

    def __init__(self, message: str, *, round: int, state: "TurnState") -> None:
        super().__init__(message)
        self.round = round
        self.state = state


class RoundLimitExceeded(AssistantRuntimeError):
    """The model still wanted tools when the round budget ran out."""

    def __init__(self, result: "LoopResult") -> None:
        super().__init__(
            f"Tool calling stopped after {result.rounds_used} round(s) "
            f"with {len(result.state.pending_tool_calls)} pending tool call(s)"
        )
        self.result = result


__all__ = [
    "AssistantRuntimeError",
    "PermanentTransportError",
    "ResponseCanceledError",
    "RoundLimitExceeded",
    "ShapeError",
    "SignatureVerificationError",
    "StreamInterruptedError",
    "StreamTimeoutError",
    "ToolExecutionError",
    "ToolLoopError",
    "ToolNotFoundError",
    "TransientTransportError",
    "TransportError",
]
