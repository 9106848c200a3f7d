"""Client runtime for the Responses API: transport, streaming, webhooks and tool calling."""

from .chat import LoopResult, LoopStatus, ToolCallLoop, ToolRegistry
from .client import ResponsesClient
from .errors import (
    AssistantRuntimeError,
    PermanentTransportError,
    ResponseCanceledError,
    RoundLimitExceeded,
    ShapeError,
    SignatureVerificationError,
    StreamInterruptedError,
    StreamTimeoutError,
    ToolExecutionError,
    ToolLoopError,
    ToolNotFoundError,
    TransientTransportError,
    TransportError,
)
from .idempotency import IdempotencyKeyDeriver, canonical_json, derive_idempotency_key
from .retry import ErrorKind, RetryDecision, RetryPolicy
from .sse import SseEvent, SseEventParser
from .streaming import NormalizedEvent, accumulate, drive, extract_delta_text, to_text_chunks
from .transport import FileReference, Transport
from .webhooks import WebhookVerificationResult, WebhookVerifier, verify_webhook_signature

__all__ = [
    "AssistantRuntimeError",
    "ErrorKind",
    "FileReference",
    "IdempotencyKeyDeriver",
    "LoopResult",
    "LoopStatus",
    "NormalizedEvent",
    "PermanentTransportError",
    "ResponseCanceledError",
    "ResponsesClient",
    "RetryDecision",
    "RetryPolicy",
    "RoundLimitExceeded",
    "ShapeError",
    "SignatureVerificationError",
    "SseEvent",
    "SseEventParser",
    "StreamInterruptedError",
    "StreamTimeoutError",
    "ToolCallLoop",
    "ToolExecutionError",
    "ToolLoopError",
    "ToolNotFoundError",
    "ToolRegistry",
    "TransientTransportError",
    "Transport",
    "TransportError",
    "WebhookVerificationResult",
    "WebhookVerifier",
    "accumulate",
    "canonical_json",
    "derive_idempotency_key",
    "drive",
    "extract_delta_text",
    "to_text_chunks",
    "verify_webhook_signature",
]
