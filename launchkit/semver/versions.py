# launchkit/semver/versions.py
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Literal

__all__ = [
    "Version",
    "VersionComparator",
    "VersionRequirement",
    "parseVersion",
    "parseJavaVersion",
    "exactRequirement",
    "satisfies",
]



# Numeric core with any number of components (Forge uses four: 14.23.5.2859),
# then optional -prerelease and +build. Leading zeroes are tolerated because
# loader and runtime versions in the wild carry them ("1.8.0_05").
VERSION_PATTERN_RE = re.compile(
    r"^v?(?P<core>\d+(?:\.\d+)*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

# 1.8.0_51, 1.8.0_51-b16, 1.7.0
_LEGACY_JAVA_RE = re.compile(r"^1\.(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:_(?P<update>\d+))?(?:-.*)?$")



@total_ordering
@dataclass(frozen=True)
class Version:
    numbers: tuple[int, ...]
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @property
    def major(self) -> int:
        return self.numbers[0]

    @property
    def minor(self) -> int:
        return self.numbers[1] if len(self.numbers) > 1 else 0

    @property
    def patch(self) -> int:
        return self.numbers[2] if len(self.numbers) > 2 else 0

    def __str__(self) -> str:
        base = ".".join(str(num) for num in self.numbers)
        prerelease = f"-{'.'.join(self.prerelease)}" if self.prerelease else ""
        build = f"+{'.'.join(self.build)}" if self.build else ""
        return f"{base}{prerelease}{build}"

    def _paddedNumbers(self, width: int) -> tuple[int, ...]:
        return self.numbers + (0,) * (width - len(self.numbers))

    def _prereleaseCmpKey(self) -> tuple:
        # Numeric identifiers sort before alphanumeric ones
        parts: list[tuple[int, int | str]] = []
        for ident in self.prerelease:
            if ident.isdigit():
                parts.append((0, int(ident)))
            else:
                parts.append((1, ident))
        return tuple(parts)

    def _cmpKey(self, width: int) -> tuple:
        # Build is ignored for ordering; a release outranks its prereleases
        releaseFlag = 1 if not self.prerelease else 0
        return (self._paddedNumbers(width), releaseFlag, self._prereleaseCmpKey())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        width = max(len(self.numbers), len(other.numbers))
        return self._paddedNumbers(width) == other._paddedNumbers(width) and self.prerelease == other.prerelease

    def __hash__(self) -> int:
        numbers = list(self.numbers)
        while len(numbers) > 1 and numbers[-1] == 0:
            numbers.pop()
        return hash((tuple(numbers), self.prerelease))

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        width = max(len(self.numbers), len(other.numbers), 3)
        return self._cmpKey(width) < other._cmpKey(width)



def parseVersion(raw: str) -> Version:
    """
    Parse a dotted version string.

    Accepted forms (examples):
        "1.20"          -> 1.20
        "1.20.1"        -> 1.20.1
        "1.21-pre1"     -> 1.21 with prerelease ("pre1",)
        "0.15.0"        -> Fabric loader
        "47.2.0"        -> Forge
        "14.23.5.2859"  -> old Forge, four components
        "20.4.80-beta"  -> NeoForge
        "17.0.8+7"      -> Java runtime with build metadata

    Rejected: snapshot ids ("23w13a"), alpha/beta ids ("b1.7.3"), "1..2", "".
    """
    if raw is None:
        raise ValueError("Version string cannot be None")

    if not isinstance(raw, str):
        raise TypeError(f"Version string must be a string type, got {type(raw).__name__}")

    raw = raw.strip()
    if not raw:
        raise ValueError("Version string cannot be empty or whitespace only")

    mtch = VERSION_PATTERN_RE.match(raw)
    if not mtch:
        raise ValueError(f"Invalid version {raw!r}")

    numbers = tuple(int(part) for part in mtch.group("core").split("."))
    prereleaseGroup = mtch.group("prerelease")
    buildGroup = mtch.group("build")
    return Version(
        numbers=numbers,
        prerelease=tuple(prereleaseGroup.split(".")) if prereleaseGroup else (),
        build=tuple(buildGroup.split(".")) if buildGroup else (),
    )



def parseJavaVersion(raw: str) -> Version:
    """
    Parse a Java runtime version into major.minor.patch.

        "1.8.0_51"  -> 8.0.51
        "1.8.0"     -> 8.0.0
        "17.0.8"    -> 17.0.8
        "21.0.3+9"  -> 21.0.3 (+9 kept as build)
        "17"        -> 17
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"Invalid Java version {raw!r}")
    raw = raw.strip()
    legacy = _LEGACY_JAVA_RE.match(raw)
    if legacy:
        return Version(numbers=(
            int(legacy.group("major")),
            int(legacy.group("minor") or 0),
            int(legacy.group("update") or 0),
        ))
    return parseVersion(raw)



# ------------------------------------------------------------------ #
# Requirements
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class VersionComparator:
    operator: Literal["<", "<=", ">", ">=", "=="]
    version: Version

    def matches(self, version: Version) -> bool:
        if self.operator == "==":
            return version == self.version
        if self.operator == ">=":
            return version >= self.version
        if self.operator == "<=":
            return version <= self.version
        if self.operator == ">":
            return version > self.version
        if self.operator == "<":
            return version < self.version
        raise ValueError(f"Unknown operator {self.operator!r}")

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"



@dataclass(frozen=True)
class VersionRequirement:
    # OR of alternatives; comparators inside one alternative are AND-ed
    alternatives: tuple[tuple[VersionComparator, ...], ...]
    raw: str = ""

    def __str__(self) -> str:
        return self.raw or " || ".join(" ".join(str(comp) for comp in alt) for alt in self.alternatives)



def exactRequirement(version: str) -> VersionRequirement:
    return VersionRequirement(alternatives=((VersionComparator("==", parseVersion(version)),),), raw=f"[{version}]")



def satisfies(version: Version, requirement: VersionRequirement | None) -> bool:
    """
    Checks if a version satisfies the given requirement; None always matches.
    """
    if requirement is None:
        return True
    return any(all(comp.matches(version) for comp in alt) for alt in requirement.alternatives)

