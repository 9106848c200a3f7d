"""Inbound webhook signature verification and payload helpers."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Literal, Mapping, Optional, Union

from .errors import SignatureVerificationError
from .utils.json_access import dig, first_present

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_SKEW_SECONDS = 300
SIGNATURE_PREFIX = "sha256="
# Unix seconds stay below 12 digits for the foreseeable future.
MAX_TIMESTAMP_DIGITS = 12

Scheme = Literal["timestamped", "legacy", "none"]
Body = Union[bytes, str]


@dataclass(frozen=True)
class WebhookVerificationResult:
    verified: bool
    scheme: Scheme = "none"

    def __bool__(self) -> bool:
        return self.verified


def _as_bytes(value: Body) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _clean_timestamp(value: Optional[str]) -> Optional[str]:
    """Return the stripped header timestamp, or ``None`` unless it is plain ASCII digits."""

    text = (value or "").strip()
    if not text or len(text) > MAX_TIMESTAMP_DIGITS:
        return None
    if not (text.isascii() and text.isdigit()):
        return None
    return text


def sign_payload(body: Body, secret: str, timestamp: Optional[Union[int, str]] = None) -> str:
    """Return the ``sha256=<hex>`` signature a sender would attach to ``body``.

    With a ``timestamp`` the timestamped scheme (``"{ts}.{body}"``) is used,
    otherwise the legacy body-only scheme.
    """

    raw = _as_bytes(body)
    if timestamp is not None:
        raw = f"{timestamp}.".encode("ascii") + raw
    return SIGNATURE_PREFIX + _hmac_hex(secret, raw)


class WebhookVerifier:
    """Verify HMAC-SHA256 webhook signatures with replay protection.

    The timestamped scheme signs ``"{timestamp}.{raw_body}"`` and is only
    attempted when the timestamp is a plain integer inside the allowed clock
    skew. When it is absent, stale or does not match, the legacy body-only
    signature is checked if ``allow_legacy`` is enabled.
    """

    def __init__(
        self,
        secret: str,
        *,
        max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS,
        allow_legacy: bool = True,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if not secret:
            raise ValueError("Webhook signing secret must not be empty")
        self._secret = secret
        self._max_skew = max_skew_seconds if max_skew_seconds >= 1 else DEFAULT_MAX_SKEW_SECONDS
        self._allow_legacy = allow_legacy
        self._clock = clock or time.time

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, clock: Optional[Callable[[], float]] = None
    ) -> "WebhookVerifier":
        secret = settings.webhooks_signing_secret
        return cls(
            secret.get_secret_value() if secret else "",
            max_skew_seconds=settings.webhooks_max_skew_seconds,
            allow_legacy=settings.webhooks_allow_legacy_signatures,
            clock=clock,
        )

    @property
    def max_skew_seconds(self) -> int:
        return self._max_skew

    def verify(
        self,
        raw_body: Body,
        provided_signature: Optional[str],
        provided_timestamp: Optional[str] = None,
    ) -> WebhookVerificationResult:
        if not provided_signature:
            return WebhookVerificationResult(False, "none")

        signature = provided_signature.strip()
        if signature.startswith(SIGNATURE_PREFIX):
            signature = signature[len(SIGNATURE_PREFIX):]
        # compare_digest rejects non-ASCII str operands, so compare bytes.
        provided = signature.encode("utf-8", errors="replace")
        body = _as_bytes(raw_body)

        timestamp = _clean_timestamp(provided_timestamp)
        if timestamp is not None:
            if abs(self._clock() - int(timestamp)) <= self._max_skew:
                expected = _hmac_hex(self._secret, f"{timestamp}.".encode("ascii") + body)
                if hmac.compare_digest(expected.encode("ascii"), provided):
                    return WebhookVerificationResult(True, "timestamped")
            else:
                logger.debug("Webhook timestamp %s outside the allowed skew", timestamp)

        if self._allow_legacy:
            expected = _hmac_hex(self._secret, body)
            if hmac.compare_digest(expected.encode("ascii"), provided):
                return WebhookVerificationResult(True, "legacy")

        return WebhookVerificationResult(False, "none")

    def require(
        self,
        raw_body: Body,
        provided_signature: Optional[str],
        provided_timestamp: Optional[str] = None,
    ) -> WebhookVerificationResult:
        """Like :meth:`verify` but raise :class:`SignatureVerificationError` on failure."""

        result = self.verify(raw_body, provided_signature, provided_timestamp)
        if not result.verified:
            raise SignatureVerificationError("Invalid signature")
        return result


def verify_webhook_signature(
    raw_body: Body,
    provided_signature: Optional[str],
    provided_timestamp: Optional[str],
    secret: str,
    max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS,
    *,
    clock: Optional[Callable[[], float]] = None,
) -> WebhookVerificationResult:
    return WebhookVerifier(
        secret, max_skew_seconds=max_skew_seconds, clock=clock
    ).verify(raw_body, provided_signature, provided_timestamp)


def extract_event_type(payload: Mapping[str, Any]) -> Optional[str]:
    value = first_present(payload, ("type",), ("event",))
    return value if isinstance(value, str) else None


def extract_response_id(payload: Mapping[str, Any]) -> Optional[str]:
    """Return the correlating response id, trying the known payload shapes in order."""

    value = first_present(
        payload,
        ("response", "id"),
        ("data", "response", "id"),
        ("response_id",),
        ("id",),
    )
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value)
    return None


def extract_tool_calls(payload: Mapping[str, Any]) -> list[Any]:
    tool_calls = first_present(
        payload,
        ("response", "required_action", "submit_tool_outputs", "tool_calls"),
        ("data", "response", "required_action", "submit_tool_outputs", "tool_calls"),
        ("tool_calls",),
    )
    if isinstance(tool_calls, list) and tool_calls:
        return list(tool_calls)

    collected: list[Any] = []
    output = dig(payload, "response", "output")
    if isinstance(output, list):
        for block in output:
            if (
                isinstance(block, Mapping)
                and block.get("type") == "tool_call"
                and isinstance(block.get("tool_call"), Mapping)
            ):
                collected.append(block["tool_call"])
    return collected


def extract_error_message(payload: Mapping[str, Any]) -> Optional[str]:
    value = first_present(
        payload, ("error", "message"), ("response", "error", "message")
    )
    return value if isinstance(value, str) else None


__all__ = [
    "DEFAULT_MAX_SKEW_SECONDS",
    "WebhookVerificationResult",
    "WebhookVerifier",
    "extract_error_message",
    "extract_event_type",
    "extract_response_id",
    "extract_tool_calls",
    "sign_payload",
    "verify_webhook_signature",
]
