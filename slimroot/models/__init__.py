"""slimroot data models — all Pydantic v2, all frozen (immutable)."""

from slimroot.models.artifacts import Artifact, DependencyClosure, Owner
from slimroot.models.cache import CacheEntry, CacheKey
from slimroot.models.config import AuxiliarySource, ResolverConfig, SearchRoot
from slimroot.models.layers import Layer
from slimroot.models.manifest import ExecMetadata, ImageManifest
from slimroot.models.oci import Descriptor

__all__ = [
    # artifacts
    "Artifact",
    "DependencyClosure",
    "Owner",
    # layers
    "Layer",
    # manifest
    "ExecMetadata",
    "ImageManifest",
    # cache
    "CacheEntry",
    "CacheKey",
    # config
    "AuxiliarySource",
    "ResolverConfig",
    "SearchRoot",
    # oci
    "Descriptor",
]
