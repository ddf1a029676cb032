"""Content-addressed, immutable blob store in OCI image-layout form.

Storage layout: {base_path}/blobs/sha256/{sha256}
No delete method — blobs are immutable once stored.
"""

from __future__ import annotations

from pathlib import Path

from slimroot.core.hasher import sha256_hex, strip_algorithm
from slimroot.models.oci import Descriptor


class BlobIntegrityError(RuntimeError):
    """Raised when a stored blob's hash does not match its address."""


class BlobStore:
    """SHA-256 keyed, immutable blob store.

    Every blob is stored under its SHA-256 digest. Storing the same
    content twice is a no-op (idempotent). There is no update or delete.

    Parameters
    ----------
    base_path:
        Root directory of the image layout.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        (self._base / "blobs" / "sha256").mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    def _blob_path(self, sha256_digest: str) -> Path:
        return self._base / "blobs" / "sha256" / sha256_digest

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def store(self, data: bytes, *, media_type: str) -> Descriptor:
        """Store data and return its descriptor.

        If the content already exists (same hash), verifies integrity
        and returns the descriptor without overwriting.
        """
        digest = sha256_hex(data)
        path = self._blob_path(digest)

        if path.exists():
            if not self.verify(digest):
                raise BlobIntegrityError(
                    f"Existing blob at {digest} failed integrity check"
                )
        else:
            path.write_bytes(data)

        return Descriptor(media_type=media_type, digest=f"sha256:{digest}", size=len(data))

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, digest: str) -> bool:
        """Re-hash stored data and compare against the digest."""
        hex_digest = strip_algorithm(digest)
        path = self._blob_path(hex_digest)
        if not path.exists():
            return False
        return sha256_hex(path.read_bytes()) == hex_digest
