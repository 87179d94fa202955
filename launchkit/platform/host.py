# launchkit/platform/host.py
from __future__ import annotations

import platform as _platform
import sys
from dataclasses import dataclass
from typing import Literal

__all__ = ["Platform", "OsName", "Arch", "currentPlatform", "CLASSPATH_SEPARATORS"]

OsName = Literal["windows", "osx", "linux"]
Arch = Literal["x86", "x86_64", "arm64", "arm32"]

CLASSPATH_SEPARATORS: dict[str, str] = {"windows": ";", "osx": ":", "linux": ":"}

# platform.machine() spellings -> manifest arch names
_MACHINE_ALIASES: dict[str, Arch] = {
    "x86_64": "x86_64", "amd64": "x86_64", "x64": "x86_64",
    "i386": "x86", "i486": "x86", "i586": "x86", "i686": "x86", "x86": "x86",
    "aarch64": "arm64", "arm64": "arm64", "armv8l": "arm64",
    "armv7l": "arm32", "armv7": "arm32", "armv6l": "arm32", "arm": "arm32",
}



@dataclass(frozen=True, slots=True)
class Platform:
    """
    Host description used for rule evaluation and runtime selection.
    Hashable, so it can be part of cache keys.
    """
    osName: OsName
    arch: Arch
    osVersion: str = ""

    @property
    def is64Bit(self) -> bool:
        return self.arch in ("x86_64", "arm64")

    @property
    def classpathSeparator(self) -> str:
        return CLASSPATH_SEPARATORS[self.osName]

    @property
    def archBits(self) -> str:
        """Value for the legacy `${arch}` placeholder in native classifiers."""
        return "64" if self.is64Bit else "32"

    def javaRuntimeKey(self) -> str | None:
        """Platform key used by the Mojang Java runtime index, or None if unsupported."""
        if self.osName == "linux":
            return {"x86_64": "linux", "x86": "linux-i386"}.get(self.arch)
        if self.osName == "osx":
            return {"x86_64": "mac-os", "arm64": "mac-os-arm64"}.get(self.arch)
        return {"x86_64": "windows-x64", "x86": "windows-x86", "arm64": "windows-arm64"}.get(self.arch)

    def __str__(self) -> str:
        return f"{self.osName}-{self.arch}"



def _detectOs() -> OsName:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "osx"
    return "linux"



def currentPlatform() -> Platform:
    machine = _platform.machine().lower()
    arch = _MACHINE_ALIASES.get(machine)
    if arch is None:
        arch = "x86_64" if sys.maxsize > 2**32 else "x86"
    return Platform(osName=_detectOs(), arch=arch, osVersion=_platform.release())
