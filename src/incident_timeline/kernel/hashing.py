from __future__ import annotations

import hashlib
from typing import Any, Callable, Mapping

from incident_timeline.assurance.logging import canonical_json
from incident_timeline.kernel.failures import DigestError

DigestFn = Callable[[bytes], str]


def sha256_hex(value: str | bytes) -> str:
    data = value if isinstance(value, (bytes, bytearray)) else value.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hashlib_digest(algorithm: str) -> DigestFn:
    """Return a digest function backed by the named ``hashlib`` algorithm."""
    if algorithm == "sha256":
        return sha256_hex
    hashlib.new(algorithm)

    def _digest(data: bytes) -> str:
        return hashlib.new(algorithm, data).hexdigest()

    return _digest


def canonical_bytes(prev_hash: str | None, payload: Mapping[str, Any]) -> bytes:
    envelope: dict[str, Any] = {"entrySansHash": dict(payload)}
    if prev_hash is not None:
        envelope["prevHash"] = prev_hash
    try:
        return canonical_json(envelope).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise DigestError(f"Entry payload cannot be canonicalized: {exc}") from exc


def digest(prev_hash: str | None, payload: Mapping[str, Any], digest_fn: DigestFn | None = None) -> str:
    data = canonical_bytes(prev_hash, payload)
    return (digest_fn or sha256_hex)(data)


def audit_hash(actor_id: str, action: str, resource: str, timestamp: str) -> str:
    return sha256_hex(f"{actor_id}:{action}:{resource}:{timestamp}")


__all__ = [
    "DigestFn",
    "audit_hash",
    "canonical_bytes",
    "digest",
    "hashlib_digest",
    "sha256_hex",
]
