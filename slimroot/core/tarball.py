"""Deterministic layer tarballs.

Rendering is reproducible: entries are sorted by path, every timestamp is
zero, user/group names are empty, and missing parent directories are
emitted as ``0755 root:root``. Whiteouts use the OCI ``.wh.<name>``
convention.
"""

from __future__ import annotations

import io
import logging
import posixpath
import tarfile
from collections.abc import Iterable

from slimroot.core.errors import PathCollision
from slimroot.core.hasher import digest_bytes
from slimroot.models.artifacts import Artifact, Owner, merge_artifacts
from slimroot.models.layers import Layer

logger = logging.getLogger(__name__)

WHITEOUT_PREFIX = ".wh."
OPAQUE_WHITEOUT = ".wh..wh..opq"
DIRECTORY_MODE = 0o755


def _parents(path: str) -> list[str]:
    parents = []
    current = posixpath.dirname(path)
    while current not in ("/", ""):
        parents.append(current)
        current = posixpath.dirname(current)
    return parents


def whiteout_marker(path: str) -> str:
    """In-image path of the whiteout marker that hides ``path``."""
    return posixpath.join(posixpath.dirname(path), WHITEOUT_PREFIX + posixpath.basename(path))


def _tarinfo(name: str, artifact: Artifact) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name=name.lstrip("/"))
    info.mode = artifact.mode
    info.uid = artifact.owner.uid
    info.gid = artifact.owner.gid
    info.uname = ""
    info.gname = ""
    info.mtime = 0
    if artifact.kind == "directory":
        info.type = tarfile.DIRTYPE
        info.size = 0
    else:
        info.type = tarfile.REGTYPE
        info.size = artifact.size_bytes
    return info


def render_tar(artifacts: Iterable[Artifact], whiteouts: Iterable[str] = ()) -> bytes:
    """Render artifacts and whiteout markers as an uncompressed tar stream."""
    entries: dict[str, Artifact] = {a.path: a for a in artifacts}
    for hidden in whiteouts:
        marker = whiteout_marker(hidden)
        entries[marker] = Artifact(path=marker, mode=0o644)

    for path in list(entries):
        for parent in _parents(path):
            existing = entries.get(parent)
            if existing is None:
                entries[parent] = Artifact(
                    path=parent, kind="directory", mode=DIRECTORY_MODE, owner=Owner()
                )
            elif existing.kind != "directory":
                raise PathCollision(
                    parent, [existing.content_hash], detail=f"file is a parent of {path}"
                )

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for path in sorted(entries):
            artifact = entries[path]
            info = _tarinfo(path, artifact)
            if artifact.kind == "directory":
                tar.addfile(info)
            else:
                tar.addfile(info, io.BytesIO(artifact.content))
    return buffer.getvalue()


def make_layer(artifacts: Iterable[Artifact], whiteouts: Iterable[str] = ()) -> Layer:
    """Render and digest a layer from already-deduplicated artifacts."""
    ordered = tuple(sorted(artifacts, key=lambda a: a.path))
    hidden = tuple(sorted(set(whiteouts)))
    data = render_tar(ordered, hidden)
    return Layer(
        artifacts=ordered,
        whiteouts=hidden,
        digest=digest_bytes(data),
        size_bytes=len(data),
    )


def read_layer(data: bytes) -> Layer:
    """Load an existing uncompressed layer tarball, e.g. a base image layer.

    Regular files and directories become artifacts and ``.wh.`` markers
    become whiteouts. Links and device nodes are skipped. The result is
    re-rendered canonically, so its digest is that of the normalized
    tarball rather than of ``data``.
    """
    artifacts: list[Artifact] = []
    whiteouts: list[str] = []
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
        for member in tar.getmembers():
            name = member.name.removeprefix("./").strip("/")
            if not name or name == ".":
                continue
            path = "/" + name
            base = posixpath.basename(path)
            if base == OPAQUE_WHITEOUT:
                logger.warning("opaque whiteout at %s is not supported; skipped", path)
                continue
            if base.startswith(WHITEOUT_PREFIX):
                whiteouts.append(
                    posixpath.join(posixpath.dirname(path), base[len(WHITEOUT_PREFIX):])
                )
                continue
            owner = Owner(uid=member.uid, gid=member.gid)
            if member.isdir():
                artifacts.append(
                    Artifact(path=path, kind="directory", mode=member.mode, owner=owner)
                )
            elif member.isfile():
                extracted = tar.extractfile(member)
                content = extracted.read() if extracted is not None else b""
                artifacts.append(
                    Artifact(path=path, content=content, mode=member.mode, owner=owner)
                )
            else:
                logger.debug("skipping non-regular tar member %s", member.name)

    merged = merge_artifacts(artifacts, origin="layer tarball")
    return make_layer(merged, whiteouts)
