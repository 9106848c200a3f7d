"""Tests for idempotency key derivation."""

from assistant_runtime.idempotency import (
    IdempotencyKeyDeriver,
    canonical_json,
    derive_idempotency_key,
)


def fixed_clock(value: float):
    return lambda: value


def test_canonical_json_is_order_independent() -> None:
    assert canonical_json({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'
    assert canonical_json({"a": 1, "b": 2}) == canonical_json({"b": 2, "a": 1})
    assert canonical_json({"text": "héllo"}) == '{"text":"héllo"}'.encode("utf-8")


def test_same_request_in_same_bucket_shares_key() -> None:
    body = canonical_json({"model": "gpt", "input": "hi"})

    first = derive_idempotency_key("/v1/responses", body, 60, fixed_clock(120.0))
    second = derive_idempotency_key("/v1/responses", body, 60, fixed_clock(179.9))

    assert first == second
    assert len(first) == 64
    assert int(first, 16) >= 0


def test_key_changes_with_bucket_path_body_and_method() -> None:
    body = canonical_json({"input": "hi"})
    base = derive_idempotency_key("/v1/responses", body, 60, fixed_clock(120.0))

    assert derive_idempotency_key("/v1/responses", body, 60, fixed_clock(180.0)) != base
    assert derive_idempotency_key("/v1/files", body, 60, fixed_clock(120.0)) != base
    assert (
        derive_idempotency_key(
            "/v1/responses", canonical_json({"input": "bye"}), 60, fixed_clock(120.0)
        )
        != base
    )
    assert (
        derive_idempotency_key("/v1/responses", body, 60, fixed_clock(120.0), method="PUT")
        != base
    )


def test_non_positive_bucket_falls_back_to_default() -> None:
    body = canonical_json({})

    assert derive_idempotency_key("/x", body, 0, fixed_clock(30.0)) == derive_idempotency_key(
        "/x", body, 60, fixed_clock(30.0)
    )
    assert IdempotencyKeyDeriver(bucket_seconds=-5).bucket_seconds == 60


def test_deriver_is_insensitive_to_payload_key_order() -> None:
    deriver = IdempotencyKeyDeriver(bucket_seconds=60, clock=fixed_clock(1000.0))

    first = deriver.derive_for_payload("/v1/responses", {"model": "m", "input": "hi"})
    second = deriver.derive_for_payload("/v1/responses", {"input": "hi", "model": "m"})

    assert first == second
