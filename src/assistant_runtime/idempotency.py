"""Deterministic idempotency keys for replay-safe requests."""

from __future__ import annotations

import hashlib
import json
import time
from typing import TYPE_CHECKING, Any, Callable, Optional

if TYPE_CHECKING:
    from .config import Settings

DEFAULT_BUCKET_SECONDS = 60

Clock = Callable[[], float]


def canonical_json(payload: Any) -> bytes:
    """Serialize ``payload`` with stable key ordering and no insignificant whitespace."""

    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def _bucket_index(now: float, bucket_seconds: int) -> int:
    return int(now // bucket_seconds)


def derive_idempotency_key(
    path: str,
    canonical_body: bytes,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
    clock: Clock = time.time,
    *,
    method: str = "POST",
) -> str:
    """Return the hex SHA-256 of ``method|path|body|bucket``.

    Identical requests started inside the same bucket window share a key, so
    the origin can deduplicate a retry that already succeeded upstream.
    """

    if bucket_seconds < 1:
        bucket_seconds = DEFAULT_BUCKET_SECONDS
    bucket = _bucket_index(clock(), bucket_seconds)
    digest = hashlib.sha256()
    digest.update(method.upper().encode("ascii"))
    digest.update(b"|")
    digest.update(path.encode("utf-8"))
    digest.update(b"|")
    digest.update(canonical_body)
    digest.update(b"|")
    digest.update(str(bucket).encode("ascii"))
    return digest.hexdigest()


class IdempotencyKeyDeriver:
    """Stateless key derivation bound to a bucket width and a clock."""

    def __init__(
        self,
        bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
        clock: Optional[Clock] = None,
    ) -> None:
        self._bucket_seconds = (
            bucket_seconds if bucket_seconds >= 1 else DEFAULT_BUCKET_SECONDS
        )
        self._clock = clock or time.time

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, clock: Optional[Clock] = None
    ) -> "IdempotencyKeyDeriver":
        return cls(settings.idempotency_bucket_seconds, clock)

    @property
    def bucket_seconds(self) -> int:
        return self._bucket_seconds

    def derive(self, path: str, canonical_body: bytes, *, method: str = "POST") -> str:
        return derive_idempotency_key(
            path,
            canonical_body,
            self._bucket_seconds,
            self._clock,
            method=method,
        )

    def derive_for_payload(self, path: str, payload: Any, *, method: str = "POST") -> str:
        return self.derive(path, canonical_json(payload), method=method)


__all__ = [
    "DEFAULT_BUCKET_SECONDS",
    "IdempotencyKeyDeriver",
    "canonical_json",
    "derive_idempotency_key",
]
