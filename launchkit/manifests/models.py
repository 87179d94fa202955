# launchkit/manifests/models.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from launchkit.platform.host import Platform

__all__ = [
    "OsRule", "Rule", "Artifact", "LibraryDownloads", "ExtractRule", "LibraryEntry",
    "ArgumentEntry", "Arguments", "AssetIndexRef", "DownloadRef", "JavaVersionRef",
    "LoggingFile", "LoggingConfig", "VersionDescriptor",
    "MavenCoordinate", "parseMavenCoordinate",
    "ArgumentTemplate", "ResolvedLibrary", "ResolvedManifest",
    "DEFAULT_JAVA_MAJOR", "DEFAULT_JAVA_COMPONENT",
]

DEFAULT_JAVA_MAJOR = 8
DEFAULT_JAVA_COMPONENT = "jre-legacy"


# ------------------------------------------------------------------ #
# Raw descriptor documents (registry / loader metadata JSON)
# ------------------------------------------------------------------ #
# Unknown keys are ignored: these documents come from third parties and
# grow new fields regularly.

class _Doc(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)



class OsRule(_Doc):
    name: str | None = None
    arch: str | None = None
    version: str | None = None



class Rule(_Doc):
    action: Literal["allow", "disallow"] = "allow"
    os: OsRule | None = None
    features: dict[str, bool] | None = None



class Artifact(_Doc):
    path: str | None = None
    sha1: str | None = None
    size: int | None = None
    url: str = ""



class LibraryDownloads(_Doc):
    artifact: Artifact | None = None
    classifiers: dict[str, Artifact] | None = None



class ExtractRule(_Doc):
    exclude: list[str] = Field(default_factory=list)



class LibraryEntry(_Doc):
    """One `libraries[]` element. Loader metadata often only has name + url (maven base)."""
    name: str
    downloads: LibraryDownloads | None = None
    url: str | None = None
    sha1: str | None = None
    size: int | None = None
    rules: list[Rule] | None = None
    natives: dict[str, str] | None = None
    extract: ExtractRule | None = None



class ArgumentEntry(_Doc):
    rules: list[Rule] = Field(default_factory=list)
    value: Union[str, list[str]]



class Arguments(_Doc):
    game: list[Union[str, ArgumentEntry]] = Field(default_factory=list)
    jvm: list[Union[str, ArgumentEntry]] = Field(default_factory=list)



class AssetIndexRef(_Doc):
    id: str
    sha1: str | None = None
    size: int | None = None
    totalSize: int | None = None
    url: str = ""



class DownloadRef(_Doc):
    sha1: str | None = None
    size: int | None = None
    url: str



class JavaVersionRef(_Doc):
    component: str = DEFAULT_JAVA_COMPONENT
    majorVersion: int = DEFAULT_JAVA_MAJOR



class LoggingFile(_Doc):
    id: str
    sha1: str | None = None
    size: int | None = None
    url: str



class LoggingConfig(_Doc):
    argument: str
    file: LoggingFile
    type: str | None = None



class VersionDescriptor(_Doc):
    """A version JSON document: vanilla version, or a loader profile inheriting from one."""
    id: str
    inheritsFrom: str | None = None
    type: str | None = None
    mainClass: str | None = None
    minecraftArguments: str | None = None
    arguments: Arguments | None = None
    libraries: list[LibraryEntry] = Field(default_factory=list)
    assetIndex: AssetIndexRef | None = None
    assets: str | None = None
    javaVersion: JavaVersionRef | None = None
    downloads: dict[str, DownloadRef] = Field(default_factory=dict)
    logging: dict[str, LoggingConfig] = Field(default_factory=dict)
    releaseTime: str | None = None



# ------------------------------------------------------------------ #
# Maven coordinates
# ------------------------------------------------------------------ #

@dataclass(frozen=True, slots=True)
class MavenCoordinate:
    group: str
    artifact: str
    version: str
    classifier: str | None = None
    extension: str = "jar"

    @property
    def key(self) -> str:
        """Logical library name: the coordinate without its version."""
        base = f"{self.group}:{self.artifact}"
        return f"{base}:{self.classifier}" if self.classifier else base

    def withClassifier(self, classifier: str | None) -> MavenCoordinate:
        return MavenCoordinate(self.group, self.artifact, self.version, classifier, self.extension)

    def path(self) -> str:
        fileName = f"{self.artifact}-{self.version}"
        if self.classifier:
            fileName += f"-{self.classifier}"
        return f"{self.group.replace('.', '/')}/{self.artifact}/{self.version}/{fileName}.{self.extension}"

    def __str__(self) -> str:
        out = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier:
            out += f":{self.classifier}"
        if self.extension != "jar":
            out += f"@{self.extension}"
        return out



def parseMavenCoordinate(name: str) -> MavenCoordinate:
    """
    "group:artifact:version[:classifier][@extension]" -> MavenCoordinate.
    """
    raw = name.strip()
    extension = "jar"
    if "@" in raw:
        raw, extension = raw.rsplit("@", 1)
    parts = raw.split(":")
    if len(parts) < 3 or len(parts) > 4 or any(not part for part in parts):
        raise ValueError(f"Invalid library name {name!r}, expected group:artifact:version[:classifier]")
    classifier = parts[3] if len(parts) == 4 else None
    return MavenCoordinate(parts[0], parts[1], parts[2], classifier, extension or "jar")



# ------------------------------------------------------------------ #
# Resolved (merged, platform-specific) manifest
# ------------------------------------------------------------------ #

@dataclass(frozen=True, slots=True)
class ArgumentTemplate:
    """
    One argument group; `rules` still hold feature conditions that can only
    be decided at launch time (OS conditions are decided the same way).
    """
    values: tuple[str, ...]
    rules: tuple[Rule, ...] = ()



@dataclass(frozen=True, slots=True)
class ResolvedLibrary:
    key: str
    name: str
    path: str
    url: str
    sha1: str | None = None
    size: int | None = None
    native: bool = False
    extractExclude: tuple[str, ...] = ()



@dataclass(frozen=True)
class ResolvedManifest:
    """
    Fully merged manifest for one platform: no parent reference left.

    `chain` lists the merged descriptor ids from the most specific to the
    root; `jarVersionId` is the id whose client download provides the jar.
    """
    id: str
    platform: Platform
    chain: tuple[str, ...]
    mainClass: str
    libraries: tuple[ResolvedLibrary, ...] = ()
    jvmArguments: tuple[ArgumentTemplate, ...] = ()
    gameArguments: tuple[ArgumentTemplate, ...] = ()
    legacyArguments: str | None = None
    assetIndex: AssetIndexRef | None = None
    javaMajorVersion: int = DEFAULT_JAVA_MAJOR
    javaComponent: str = DEFAULT_JAVA_COMPONENT
    clientDownload: DownloadRef | None = None
    jarVersionId: str | None = None
    loggingConfig: LoggingConfig | None = None
    type: str = "release"
    releaseTime: str | None = None
    hasModernArguments: bool = False

    @property
    def baseVersionId(self) -> str:
        """The root of the inheritance chain: the game version."""
        return self.chain[-1]

    def library(self, key: str) -> ResolvedLibrary | None:
        for lib in self.libraries:
            if lib.key == key:
                return lib
        return None

    def classpathLibraries(self) -> tuple[ResolvedLibrary, ...]:
        return tuple(lib for lib in self.libraries if not lib.native)

    def nativeLibraries(self) -> tuple[ResolvedLibrary, ...]:
        return tuple(lib for lib in self.libraries if lib.native)
