# launchkit/loaders/variants.py
from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from launchkit.core.errors import LauncherError

__all__ = [
    "LoaderKind",
    "LoaderSelection",
    "LoaderPatch",
    "LoaderHandler",
    "LoaderVersionIncompatible",
    "LoaderInstallError",
    "FetchJson",
    "FetchBytes",
]

FetchJson = Callable[[str], Awaitable[Any]]
FetchBytes = Callable[[str], Awaitable[bytes]]



class LoaderKind(str, Enum):
    FABRIC = "fabric"
    QUILT = "quilt"
    FORGE = "forge"
    NEOFORGE = "neoforge"

    def __str__(self) -> str:
        return self.value



class LoaderSelection(BaseModel):
    """Which loader an instance runs, stored in its config.json."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: LoaderKind
    version: str



@dataclass(frozen=True)
class LoaderPatch:
    """
    What one loader adds on top of a game version: a partial version
    descriptor (libraries, main class, arguments) plus the artifacts shipped
    inside the installer (`maven/` relative path -> bytes).

    Forge-style installers that patch the client also carry their
    `install_profile.json` (`profile`) and the installer jar itself, which
    the processors read data files from. The jar is not persisted here.
    """
    kind: LoaderKind
    loaderVersion: str
    gameVersion: str
    descriptor: dict[str, Any]
    embedded: dict[str, bytes] = field(default_factory=dict)
    profile: dict[str, Any] | None = None
    installer: bytes | None = field(default=None, repr=False, compare=False)

    @property
    def hasProcessors(self) -> bool:
        return bool(self.profile and self.profile.get("processors"))

    def toDict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "loaderVersion": self.loaderVersion,
            "gameVersion": self.gameVersion,
            "descriptor": self.descriptor,
            "embedded": sorted(self.embedded),
            "profile": self.profile,
        }

    @classmethod
    def fromDict(cls, data: dict[str, Any]) -> LoaderPatch:
        # Embedded artifacts are already on disk once a patch is persisted
        return cls(
            kind=LoaderKind(data["kind"]),
            loaderVersion=str(data["loaderVersion"]),
            gameVersion=str(data["gameVersion"]),
            descriptor=dict(data["descriptor"]),
            profile=dict(data["profile"]) if data.get("profile") else None,
        )



class LoaderHandler(Protocol):
    """Per-kind metadata lookup; one implementation per LoaderKind."""
    kind: LoaderKind

    async def availableVersions(self, gameVersion: str) -> list[str]: ...

    async def fetchPatch(self, gameVersion: str, loaderVersion: str) -> LoaderPatch: ...



class LoaderVersionIncompatible(LauncherError):
    """The loader version does not support the instance's game version."""

    def __init__(self, kind: LoaderKind, loaderVersion: str, gameVersion: str, constraint: str) -> None:
        super().__init__(
            f"{kind.value} {loaderVersion} requires game version {constraint}, instance has {gameVersion}",
            kind=kind.value,
            loaderVersion=loaderVersion,
            gameVersion=gameVersion,
            constraint=constraint,
        )
        self.kind = kind
        self.loaderVersion = loaderVersion
        self.gameVersion = gameVersion
        self.constraint = constraint



class LoaderInstallError(LauncherError):
    """Loader metadata or installer could not be read."""
