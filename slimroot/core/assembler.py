"""Image assembler — layers plus execution metadata into a manifest."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from slimroot.core.errors import EmptyImage, InvalidEntrypoint, UnknownUser
from slimroot.core.filesystem import flatten, visible_files
from slimroot.core.hasher import compute_manifest_identity
from slimroot.models.artifacts import Artifact
from slimroot.models.layers import Layer
from slimroot.models.manifest import ExecMetadata, ImageManifest

logger = logging.getLogger(__name__)

PASSWD_PATH = "/etc/passwd"


def _passwd_names(passwd: Artifact) -> set[str]:
    names = set()
    for line in passwd.content.decode("utf-8", errors="replace").splitlines():
        if line and not line.startswith("#"):
            names.add(line.split(":", 1)[0])
    return names


class ImageAssembler:
    """Verifies a layer stack is runnable and emits its manifest."""

    def assemble(self, layers: Sequence[Layer], exec_metadata: ExecMetadata) -> ImageManifest:
        """Compose ``layers`` (in order) with ``exec_metadata``.

        Raises ``EmptyImage`` when there is nothing to run,
        ``InvalidEntrypoint`` when ``entrypoint[0]`` is not an executable
        file in the flattened view, and ``UnknownUser`` when a named user
        has no ``/etc/passwd`` record.
        """
        if not layers:
            raise EmptyImage("No layers supplied")

        view = flatten(layers)
        if not visible_files(view):
            raise EmptyImage(f"{len(layers)} layer(s) supplied but no files are visible")

        entrypoint = exec_metadata.entrypoint_path
        target = view.get(entrypoint)
        if target is None:
            raise InvalidEntrypoint(entrypoint, "not present in the composed layers")
        if target.kind != "file":
            raise InvalidEntrypoint(entrypoint, "is a directory")
        if not target.is_executable:
            raise InvalidEntrypoint(entrypoint, f"mode {oct(target.mode)} is not executable")

        if exec_metadata.is_named_user:
            name = exec_metadata.user.split(":", 1)[0]
            passwd = view.get(PASSWD_PATH)
            if passwd is None or name not in _passwd_names(passwd):
                raise UnknownUser(name)

        layer_digests = [layer.digest for layer in layers]
        identity = compute_manifest_identity(
            layer_digests, exec_metadata.model_dump(mode="json")
        )
        manifest = ImageManifest(
            layers=tuple(layer_digests),
            exec_metadata=exec_metadata,
            identity=identity,
        )
        logger.info(
            "assembled image %s from %d layer(s), entrypoint %s",
            identity, len(layers), entrypoint,
        )
        return manifest


def assemble(layers: Sequence[Layer], exec_metadata: ExecMetadata) -> ImageManifest:
    """Functional shorthand for ``ImageAssembler().assemble``."""
    return ImageAssembler().assemble(layers, exec_metadata)
