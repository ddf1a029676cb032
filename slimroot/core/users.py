"""Extra artifacts for running as a non-root user.

A scratch image has no ``/etc/passwd``; runtimes resolving a named user
need one, and the working directory should exist and belong to that user.
"""

from __future__ import annotations

from slimroot.models.artifacts import Artifact, Owner

NOBODY_UID = 65534


def user_records(
    name: str,
    uid: int = NOBODY_UID,
    gid: int | None = None,
    *,
    group: str | None = None,
    home: str = "/nonexistent",
    shell: str = "/sbin/nologin",
) -> list[Artifact]:
    """``/etc/passwd`` and ``/etc/group`` declaring root and ``name``."""
    gid = uid if gid is None else gid
    group = group or name
    passwd = (
        "root:x:0:0:root:/root:/sbin/nologin\n"
        f"{name}:x:{uid}:{gid}:{name}:{home}:{shell}\n"
    )
    groups = "root:x:0:\n" + f"{group}:x:{gid}:\n"
    return [
        Artifact(path="/etc/passwd", content=passwd.encode("utf-8"), mode=0o644),
        Artifact(path="/etc/group", content=groups.encode("utf-8"), mode=0o644),
    ]


def working_directory(path: str, uid: int = 0, gid: int = 0) -> Artifact:
    """A directory marker so ``WorkingDir`` exists with the right owner."""
    return Artifact(
        path=path, kind="directory", mode=0o755, owner=Owner(uid=uid, gid=gid)
    )
