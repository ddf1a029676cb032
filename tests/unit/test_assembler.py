"""Tests for ImageAssembler — entrypoint checks, shadowing, identity."""

from __future__ import annotations

import pytest

from slimroot.core.assembler import ImageAssembler, assemble
from slimroot.core.errors import EmptyImage, InvalidEntrypoint, UnknownUser
from slimroot.core.tarball import make_layer
from slimroot.core.users import user_records
from slimroot.models.artifacts import Artifact
from slimroot.models.manifest import ExecMetadata


@pytest.fixture
def app_layer():
    return make_layer([Artifact(path="/app/server", content=b"bin", mode=0o755)])


class TestEntrypoint:
    def test_valid_entrypoint(self, app_layer):
        manifest = ImageAssembler().assemble(
            [app_layer], ExecMetadata(entrypoint=("/app/server", "--port", "8080"))
        )
        assert manifest.layers == (app_layer.digest,)
        assert manifest.identity.startswith("sha256:")

    def test_relative_entrypoint_uses_working_dir(self, app_layer):
        manifest = assemble(
            [app_layer], ExecMetadata(entrypoint=("./server",), working_dir="/app")
        )
        assert manifest.exec_metadata.entrypoint_path == "/app/server"

    def test_missing_entrypoint(self, app_layer):
        with pytest.raises(InvalidEntrypoint) as excinfo:
            assemble([app_layer], ExecMetadata(entrypoint=("/bin/sh",)))
        assert excinfo.value.entrypoint == "/bin/sh"

    def test_non_executable_entrypoint(self):
        layer = make_layer([Artifact(path="/app/server", content=b"bin", mode=0o644)])
        with pytest.raises(InvalidEntrypoint):
            assemble([layer], ExecMetadata(entrypoint=("/app/server",)))

    def test_directory_entrypoint(self, app_layer):
        with pytest.raises(InvalidEntrypoint):
            assemble(
                [app_layer, make_layer([Artifact(path="/srv", kind="directory", mode=0o755)])],
                ExecMetadata(entrypoint=("/srv",)),
            )

    def test_later_layer_shadows(self, app_layer):
        shadow = make_layer([Artifact(path="/app/server", content=b"data", mode=0o644)])
        with pytest.raises(InvalidEntrypoint):
            assemble([app_layer, shadow], ExecMetadata(entrypoint=("/app/server",)))

    def test_whited_out_entrypoint(self, app_layer):
        hide = make_layer([Artifact(path="/etc/motd", content=b"hi")], whiteouts=["/app"])
        with pytest.raises(InvalidEntrypoint):
            assemble([app_layer, hide], ExecMetadata(entrypoint=("/app/server",)))


class TestEmptyImage:
    def test_no_layers(self):
        with pytest.raises(EmptyImage):
            assemble([], ExecMetadata(entrypoint=("/app/server",)))

    def test_layers_without_files(self):
        layer = make_layer([Artifact(path="/app", kind="directory", mode=0o755)])
        with pytest.raises(EmptyImage):
            assemble([layer], ExecMetadata(entrypoint=("/app/server",)))


class TestUser:
    def test_named_user_requires_passwd(self, app_layer):
        with pytest.raises(UnknownUser) as excinfo:
            assemble([app_layer], ExecMetadata(entrypoint=("/app/server",), user="app"))
        assert excinfo.value.user == "app"

    def test_named_user_with_records(self, app_layer):
        users = make_layer(user_records("app", 10001))
        manifest = assemble(
            [app_layer, users], ExecMetadata(entrypoint=("/app/server",), user="app")
        )
        assert manifest.exec_metadata.user == "app"

    def test_numeric_user_needs_no_records(self, app_layer):
        manifest = assemble(
            [app_layer], ExecMetadata(entrypoint=("/app/server",), user="65534:65534")
        )
        assert manifest.exec_metadata.user == "65534:65534"


class TestIdentity:
    def test_identical_inputs_identical_identity(self, app_layer):
        meta = ExecMetadata(entrypoint=("/app/server",), env={"B": "2", "A": "1"})
        same = ExecMetadata(entrypoint=("/app/server",), env={"A": "1", "B": "2"})
        assert assemble([app_layer], meta).identity == assemble([app_layer], same).identity

    def test_metadata_changes_identity(self, app_layer):
        a = assemble([app_layer], ExecMetadata(entrypoint=("/app/server",)))
        b = assemble([app_layer], ExecMetadata(entrypoint=("/app/server", "-v")))
        assert a.identity != b.identity

    def test_layer_order_changes_identity(self, app_layer):
        other = make_layer([Artifact(path="/etc/motd", content=b"hi")])
        meta = ExecMetadata(entrypoint=("/app/server",))
        assert (
            assemble([app_layer, other], meta).identity
            != assemble([other, app_layer], meta).identity
        )
