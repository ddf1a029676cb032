"""Flattened view of an ordered layer stack."""

from __future__ import annotations

from collections.abc import Iterable

from slimroot.models.artifacts import Artifact
from slimroot.models.layers import Layer


def _is_within(path: str, parent: str) -> bool:
    return path == parent or path.startswith(parent.rstrip("/") + "/")


def flatten(layers: Iterable[Layer]) -> dict[str, Artifact]:
    """Apply ``layers`` in order and return the visible path -> artifact map.

    A layer's whiteouts are applied before its own artifacts, and hide the
    whited-out path together with everything beneath it. Later layers
    shadow earlier ones at identical paths.
    """
    view: dict[str, Artifact] = {}
    for layer in layers:
        for hidden in layer.whiteouts:
            for path in [p for p in view if _is_within(p, hidden)]:
                del view[path]
        for artifact in layer.artifacts:
            view[artifact.path] = artifact
    return dict(sorted(view.items()))


def visible_files(view: dict[str, Artifact]) -> list[Artifact]:
    """Regular files in a flattened view, sorted by path."""
    return [a for a in view.values() if a.kind == "file"]
