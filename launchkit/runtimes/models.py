# launchkit/runtimes/models.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from launchkit.core.errors import LauncherError
from launchkit.platform.host import Platform

__all__ = ["RuntimeBinary", "UnsupportedPlatform", "RuntimeProvisionError"]



@dataclass(frozen=True, slots=True)
class RuntimeBinary:
    """A Java executable usable for launching; `platform` is `Platform.__str__` form."""
    majorVersion: int
    path: Path
    platform: str
    version: str = ""
    component: str = ""

    def toDict(self) -> dict[str, Any]:
        out = asdict(self)
        out["path"] = str(self.path)
        return out

    @classmethod
    def fromDict(cls, data: dict[str, Any]) -> RuntimeBinary:
        return cls(
            majorVersion=int(data["majorVersion"]),
            path=Path(data["path"]),
            platform=str(data["platform"]),
            version=str(data.get("version") or ""),
            component=str(data.get("component") or ""),
        )



class UnsupportedPlatform(LauncherError):
    """No runtime build is published for this OS/architecture."""

    def __init__(self, platform: Platform, majorVersion: int, *, component: str | None = None) -> None:
        super().__init__(
            f"No Java {majorVersion} runtime available for {platform}",
            platform=str(platform),
            majorVersion=majorVersion,
            component=component,
        )
        self.platform = platform
        self.majorVersion = majorVersion
        self.component = component



class RuntimeProvisionError(LauncherError):
    """A runtime download finished but did not produce a usable executable."""
