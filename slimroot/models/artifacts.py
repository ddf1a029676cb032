"""Artifact and closure models — immutable filesystem entries."""

from __future__ import annotations

import posixpath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from slimroot.core.errors import PathCollision
from slimroot.core.hasher import compute_closure_digest, digest_bytes


def normalize_image_path(path: str) -> str:
    """Return the canonical absolute POSIX form of an in-image path.

    Raises ``ValueError`` for relative paths and ``..`` segments.
    """
    if not path.startswith("/"):
        raise ValueError(f"Image paths must be absolute: {path!r}")
    if ".." in path.split("/"):
        raise ValueError(f"Image paths may not contain '..': {path!r}")
    normalized = posixpath.normpath(path)
    # normpath keeps a leading "//" as-is
    return "/" + normalized.lstrip("/")


class Owner(BaseModel):
    """Numeric ownership recorded in the layer tarball."""

    model_config = ConfigDict(frozen=True)

    uid: int = Field(default=0, ge=0)
    gid: int = Field(default=0, ge=0)


class Artifact(BaseModel):
    """A single entry destined for the final root filesystem.

    Identity is the pair (``path``, ``content_hash``). The content hash is
    derived from ``content`` when not supplied; a supplied hash that does
    not match the content is rejected.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    content: bytes = b""
    mode: int = 0o644
    owner: Owner = Owner()
    kind: Literal["file", "directory"] = "file"
    override: bool = False  # may shadow a base-layer path
    content_hash: str = ""

    @model_validator(mode="before")
    @classmethod
    def _derive_content_hash(cls, data: Any) -> Any:
        if isinstance(data, dict):
            content = data.get("content", b"")
            if isinstance(content, str):
                content = content.encode("utf-8")
            expected = digest_bytes(content)
            supplied = data.get("content_hash")
            if supplied and supplied != expected:
                raise ValueError(
                    f"content_hash {supplied} does not match content ({expected})"
                )
            data = {**data, "content": content, "content_hash": expected}
        return data

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return normalize_image_path(value)

    @field_validator("mode")
    @classmethod
    def _check_mode(cls, value: int) -> int:
        if not 0 <= value <= 0o7777:
            raise ValueError(f"mode out of range: {oct(value)}")
        return value

    @model_validator(mode="after")
    def _check_directory(self) -> Artifact:
        if self.kind == "directory" and self.content:
            raise ValueError(f"directory artifact {self.path} cannot carry content")
        return self

    @property
    def identity(self) -> tuple[str, str, int, int, int, str, bool]:
        """Everything that lands in a layer for this path."""
        return (
            self.path, self.content_hash, self.mode,
            self.owner.uid, self.owner.gid, self.kind, self.override,
        )

    @property
    def is_executable(self) -> bool:
        return self.kind == "file" and bool(self.mode & 0o111)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


def merge_artifacts(artifacts: list[Artifact], *, origin: str = "") -> list[Artifact]:
    """Deduplicate artifacts by destination path, sorted by path.

    Identical (path, content) pairs collapse to the first occurrence.
    Same path with different content, mode, owner or kind raises
    ``PathCollision``.
    """
    by_path: dict[str, Artifact] = {}
    for artifact in artifacts:
        existing = by_path.get(artifact.path)
        if existing is None:
            by_path[artifact.path] = artifact
            continue
        if existing.content_hash != artifact.content_hash:
            raise PathCollision(
                artifact.path,
                [existing.content_hash, artifact.content_hash],
                detail=origin,
            )
        if (existing.mode, existing.owner, existing.kind) != (
            artifact.mode,
            artifact.owner,
            artifact.kind,
        ):
            raise PathCollision(
                artifact.path,
                [existing.content_hash, artifact.content_hash],
                detail=f"{origin} metadata differs".strip(),
            )
    return [by_path[path] for path in sorted(by_path)]


class DependencyClosure(BaseModel):
    """Everything a binary needs at run time, the binary included.

    ``requirements`` maps each resolved requirement (soname, interpreter,
    or auxiliary name) to the destination paths it contributed.
    """

    model_config = ConfigDict(frozen=True)

    binary: Artifact
    artifacts: tuple[Artifact, ...]
    requirements: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    digest: str = ""

    @classmethod
    def from_artifacts(
        cls,
        binary: Artifact,
        artifacts: list[Artifact],
        requirements: dict[str, tuple[str, ...]] | None = None,
    ) -> DependencyClosure:
        """Build a closure, enforcing the one-content-per-path invariant."""
        merged = merge_artifacts([binary, *artifacts], origin="dependency closure")
        digest = compute_closure_digest([a.identity for a in merged])
        return cls(
            binary=binary,
            artifacts=tuple(merged),
            requirements=dict(sorted((requirements or {}).items())),
            digest=digest,
        )

    @property
    def paths(self) -> list[str]:
        return [a.path for a in self.artifacts]

    def get(self, path: str) -> Artifact | None:
        """Return the artifact at ``path``, if any."""
        normalized = normalize_image_path(path)
        for artifact in self.artifacts:
            if artifact.path == normalized:
                return artifact
        return None
