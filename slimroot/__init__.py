"""slimroot: minimal runtime image assembler.

Given a compiled executable, slimroot resolves the minimal closure of
files it needs at run time (shared libraries, the program interpreter,
trust anchors, timezone data, user records) against an explicit search
path, and produces a reproducible, content-addressed layered image:

  - Dependency resolution by static ELF inspection (pyelftools)
  - Deterministic layer tarballs with OCI whiteouts
  - Image manifests whose identity depends only on their inputs
  - Session-scoped build cache keyed by content hashes
  - OCI image-layout export (directory or tar archive)
"""

__version__ = "0.1.0"
__description__ = "Minimal runtime image assembler"

from slimroot.core.session import AssemblyRequest, AssemblyResult, AssemblySession
from slimroot.models.config import ResolverConfig

__all__ = [
    "AssemblyRequest",
    "AssemblyResult",
    "AssemblySession",
    "ResolverConfig",
    "__version__",
]
