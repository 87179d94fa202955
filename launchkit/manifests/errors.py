# launchkit/manifests/errors.py
from __future__ import annotations

from launchkit.core.errors import LauncherError

__all__ = ["ManifestError", "ManifestNotFound", "ManifestCycle", "ManifestInvalid"]



class ManifestError(LauncherError):
    """Base class for manifest resolution errors."""

    def __init__(self, message: str, *, versionId: str | None = None, **context: object) -> None:
        super().__init__(message, versionId=versionId, **context)
        self.versionId = versionId



class ManifestNotFound(ManifestError):
    """No source (cache or registry) has a descriptor for the id."""

    def __init__(self, versionId: str, *, sources: tuple[str, ...] = ()) -> None:
        tried = ", ".join(sources) if sources else "no sources"
        super().__init__(f"Version '{versionId}' not found (tried {tried})", versionId=versionId, sources=sources)
        self.sources = sources



class ManifestCycle(ManifestError):
    """The inheritsFrom chain revisits an id already being resolved."""

    def __init__(self, chain: tuple[str, ...]) -> None:
        super().__init__(
            "Inheritance cycle: " + " -> ".join(chain),
            versionId=chain[0] if chain else None,
            chain=chain,
        )
        self.chain = chain



class ManifestInvalid(ManifestError):
    """Descriptor is structurally broken (bad JSON, missing main class...)."""
