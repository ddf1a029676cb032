"""Error taxonomy for image assembly.

Every failure is a deterministic function of the inputs, so nothing here
is retried. Callers receive the offending requirement, path or
entrypoint on the exception itself.
"""

from __future__ import annotations


class AssemblyError(RuntimeError):
    """Base class for all assembly failures."""


class UnresolvableDependency(AssemblyError):
    """A required shared object or auxiliary artifact could not be located."""

    def __init__(self, requirement: str, detail: str = "") -> None:
        self.requirement = requirement
        message = f"Unresolvable dependency: {requirement}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class AmbiguousDependency(AssemblyError):
    """Multiple differing candidates, or a cycle, for one requirement."""

    def __init__(self, requirement: str, candidates: list[str]) -> None:
        self.requirement = requirement
        self.candidates = list(candidates)
        super().__init__(
            f"Ambiguous dependency: {requirement} "
            f"(candidates: {', '.join(self.candidates)})"
        )


class PathCollision(AssemblyError):
    """Two artifacts target the same destination path with differing content."""

    def __init__(self, path: str, content_hashes: list[str], detail: str = "") -> None:
        self.path = path
        self.content_hashes = list(content_hashes)
        message = f"Path collision at {path}: {', '.join(self.content_hashes)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class EmptyImage(AssemblyError):
    """No layers, or no files at all in the composed layer set."""


class InvalidEntrypoint(AssemblyError):
    """The entrypoint does not resolve to an executable file in the image."""

    def __init__(self, entrypoint: str, reason: str) -> None:
        self.entrypoint = entrypoint
        super().__init__(f"Invalid entrypoint {entrypoint!r}: {reason}")


class UnknownUser(AssemblyError):
    """A named user is declared but has no record in the image's /etc/passwd."""

    def __init__(self, user: str) -> None:
        self.user = user
        super().__init__(f"User {user!r} has no /etc/passwd record in the image")


class AssemblyCancelled(AssemblyError):
    """The caller cancelled resolution between closure entries."""
