"""Tests for Pydantic data models — validation, immutability, identity."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from slimroot.core.errors import PathCollision
from slimroot.core.hasher import digest_bytes
from slimroot.models.artifacts import Artifact, DependencyClosure, normalize_image_path
from slimroot.models.config import ResolverConfig, load_resolver_config
from slimroot.models.manifest import ExecMetadata


class TestArtifact:
    def test_content_hash_derived(self):
        artifact = Artifact(path="/etc/motd", content=b"hello")
        assert artifact.content_hash == digest_bytes(b"hello")

    def test_mismatched_hash_rejected(self):
        with pytest.raises(ValidationError):
            Artifact(path="/etc/motd", content=b"hello", content_hash="sha256:00")

    def test_frozen(self):
        artifact = Artifact(path="/etc/motd", content=b"hello")
        with pytest.raises(ValidationError):
            artifact.path = "/etc/other"

    def test_relative_path_rejected(self):
        with pytest.raises(ValidationError):
            Artifact(path="etc/motd", content=b"x")

    def test_dotdot_rejected(self):
        with pytest.raises(ValidationError):
            Artifact(path="/etc/../root/.ssh/id", content=b"x")

    def test_path_normalized(self):
        assert Artifact(path="//usr//lib/./libc.so", content=b"x").path == "/usr/lib/libc.so"

    def test_directory_cannot_carry_content(self):
        with pytest.raises(ValidationError):
            Artifact(path="/app", kind="directory", content=b"x")

    def test_executable_bits(self):
        assert Artifact(path="/bin/a", content=b"x", mode=0o755).is_executable
        assert not Artifact(path="/bin/a", content=b"x", mode=0o644).is_executable
        assert not Artifact(path="/bin", kind="directory", mode=0o755).is_executable

    def test_normalize_root(self):
        assert normalize_image_path("/") == "/"


class TestDependencyClosure:
    def test_deduplicates_by_path(self):
        binary = Artifact(path="/app/a", content=b"a", mode=0o755)
        lib = Artifact(path="/lib/x.so", content=b"x")
        closure = DependencyClosure.from_artifacts(binary, [lib, lib])
        assert closure.paths == ["/app/a", "/lib/x.so"]

    def test_conflicting_content_collides(self):
        binary = Artifact(path="/app/a", content=b"a", mode=0o755)
        with pytest.raises(PathCollision):
            DependencyClosure.from_artifacts(
                binary,
                [Artifact(path="/lib/x.so", content=b"1"), Artifact(path="/lib/x.so", content=b"2")],
            )

    def test_digest_independent_of_input_order(self):
        binary = Artifact(path="/app/a", content=b"a", mode=0o755)
        libs = [Artifact(path="/lib/x.so", content=b"x"), Artifact(path="/lib/y.so", content=b"y")]
        a = DependencyClosure.from_artifacts(binary, libs)
        b = DependencyClosure.from_artifacts(binary, list(reversed(libs)))
        assert a.digest == b.digest


class TestExecMetadata:
    def test_empty_entrypoint_rejected(self):
        with pytest.raises(ValidationError):
            ExecMetadata(entrypoint=())

    def test_env_sorted_and_listed(self):
        meta = ExecMetadata(entrypoint=("/a",), env={"Z": "1", "A": "2"})
        assert meta.env_list() == ["A=2", "Z=1"]

    def test_invalid_env_name(self):
        with pytest.raises(ValidationError):
            ExecMetadata(entrypoint=("/a",), env={"A=B": "1"})

    def test_named_user_detection(self):
        assert ExecMetadata(entrypoint=("/a",), user="app").is_named_user
        assert not ExecMetadata(entrypoint=("/a",), user="1000:1000").is_named_user
        assert not ExecMetadata(entrypoint=("/a",)).is_named_user


class TestResolverConfig:
    def test_default_auxiliary_map(self):
        config = ResolverConfig()
        assert config.auxiliary["trust-anchors"].destination == "/etc/ssl/certs/ca-certificates.crt"
        assert "timezone-db" in config.auxiliary

    def test_config_hash_stable(self, tmp_path):
        assert (
            ResolverConfig.for_roots(tmp_path).config_hash()
            == ResolverConfig.for_roots(tmp_path).config_hash()
        )

    def test_config_hash_tracks_policy(self, tmp_path):
        strict = ResolverConfig.for_roots(tmp_path)
        loose = ResolverConfig.for_roots(tmp_path, ambiguity_policy="first-match")
        assert strict.config_hash() != loose.config_hash()

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            ResolverConfig(ambiguity_policy="newest")

    def test_load_json_relative_roots(self, tmp_path):
        path = tmp_path / "resolver.json"
        path.write_text(json.dumps({
            "config_version": "2",
            "search_roots": [{"host_root": "sysroot", "library_dirs": ["/lib"]}],
        }))
        config = load_resolver_config(path)
        assert config.config_version == "2"
        assert config.search_roots[0].host_root == tmp_path / "sysroot"
        assert config.search_roots[0].library_dirs == ("lib",)

    def test_load_toml(self, tmp_path):
        path = tmp_path / "resolver.toml"
        path.write_text(
            'ambiguity_policy = "first-match"\n'
            "[[search_roots]]\n"
            'host_root = "/opt/sysroot"\n'
            "[auxiliary.trust-anchors]\n"
            'source = "etc/pki/tls/certs/ca-bundle.crt"\n'
            'destination = "/etc/ssl/certs/ca-certificates.crt"\n'
        )
        config = load_resolver_config(path)
        assert config.ambiguity_policy == "first-match"
        assert str(config.search_roots[0].host_root) == "/opt/sysroot"
        assert config.auxiliary["trust-anchors"].source == "etc/pki/tls/certs/ca-bundle.crt"
