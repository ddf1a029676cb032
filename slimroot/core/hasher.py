"""Canonical hashing helpers for content addressing and cache keys.

Every identity in slimroot (artifact, closure, layer, manifest, cache key)
is a ``sha256:<hex>`` string derived from either raw bytes or a canonical
JSON serialization, so that identical inputs always hash identically.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def digest_bytes(data: bytes) -> str:
    """Content-address raw bytes as ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(data)}"


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object.

    Returns "sha256:<hex>" of its canonical JSON form.
    """
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def strip_algorithm(digest: str) -> str:
    """Strip the ``sha256:`` prefix from a digest, if present."""
    return digest.removeprefix("sha256:")


def compute_closure_digest(artifact_identities: list[tuple]) -> str:
    """Digest of a closure: sorted per-artifact identity tuples.

    Each tuple starts with the artifact path and carries its content hash
    and metadata (mode, owner, kind), so closures that differ only in
    permissions get different digests.
    """
    return content_address(sorted([list(entry) for entry in artifact_identities]))


def compute_manifest_identity(
    layer_digests: list[str], exec_metadata: dict[str, Any]
) -> str:
    """Identity of an image: ordered layer digests plus execution metadata.

    Layer order is significant (later layers shadow earlier ones), so it
    is hashed as given rather than sorted.
    """
    payload = {"layers": list(layer_digests), "exec": exec_metadata}
    return content_address(payload)
