# launchkit/loaders/forge.py
from __future__ import annotations

import io
import json
import logging
import zipfile
from typing import Any

from launchkit.http import client as httpClient
from launchkit.semver.versions import exactRequirement, parseVersion, satisfies
from .variants import (
    FetchBytes,
    FetchJson,
    LoaderInstallError,
    LoaderKind,
    LoaderPatch,
    LoaderVersionIncompatible,
)

logger = logging.getLogger(__name__)

__all__ = [
    "FORGE_METADATA_URL",
    "FORGE_MAVEN_URL",
    "NEOFORGE_VERSIONS_URL",
    "NEOFORGE_MAVEN_URL",
    "ForgeHandler",
    "NeoForgeHandler",
    "readInstaller",
    "readInstallProfile",
    "neoforgeGameVersion",
]

FORGE_METADATA_URL = "https://files.minecraftforge.net/net/minecraftforge/forge/maven-metadata.json"
FORGE_MAVEN_URL = "https://maven.minecraftforge.net/net/minecraftforge/forge"
NEOFORGE_VERSIONS_URL = "https://maven.neoforged.net/api/maven/versions/releases/net/neoforged/neoforge"
NEOFORGE_MAVEN_URL = "https://maven.neoforged.net/releases/net/neoforged/neoforge"



def readInstaller(data: bytes, *, source: str = "installer") -> tuple[dict[str, Any], dict[str, bytes]]:
    """
    Pull the version descriptor and the bundled maven artifacts out of a
    Forge/NeoForge installer jar.

    Modern installers carry `version.json`; pre-1.13 ones nest it as
    `versionInfo` inside `install_profile.json`. Bundled artifacts live
    under `maven/<relative path>`.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as err:
        raise LoaderInstallError(f"{source} is not a zip archive", source=source) from err

    with archive:
        names = set(archive.namelist())
        if "version.json" in names:
            descriptor = json.loads(archive.read("version.json"))
        elif "install_profile.json" in names:
            profile = json.loads(archive.read("install_profile.json"))
            descriptor = profile.get("versionInfo") if isinstance(profile, dict) else None
        else:
            descriptor = None
        if not isinstance(descriptor, dict):
            raise LoaderInstallError(f"{source} has no version descriptor", source=source)

        embedded: dict[str, bytes] = {}
        for name in sorted(names):
            if name.startswith("maven/") and not name.endswith("/"):
                embedded[name[len("maven/"):]] = archive.read(name)
    return descriptor, embedded



def readInstallProfile(data: bytes) -> dict[str, Any] | None:
    """
    The installer's `install_profile.json` when it lists client patching
    processors (1.13+ Forge, every NeoForge); None for older installers.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            if "install_profile.json" not in archive.namelist():
                return None
            profile = json.loads(archive.read("install_profile.json"))
    except zipfile.BadZipFile:
        return None
    if not isinstance(profile, dict) or not profile.get("processors"):
        return None
    return profile



class ForgeHandler:
    """
    Forge: `maven-metadata.json` maps each game version to the
    `<game>-<forge>` builds that exist for it; the patch is the installer's
    version descriptor.
    """
    kind = LoaderKind.FORGE

    def __init__(self, *, fetchJson: FetchJson | None = None, fetchBytes: FetchBytes | None = None) -> None:
        self._fetchJson: FetchJson = fetchJson or httpClient.getJson
        self._fetchBytes: FetchBytes = fetchBytes or httpClient.getBytes

    @staticmethod
    def fullVersion(gameVersion: str, loaderVersion: str) -> str:
        return loaderVersion if loaderVersion.startswith(f"{gameVersion}-") else f"{gameVersion}-{loaderVersion}"

    async def availableVersions(self, gameVersion: str) -> list[str]:
        metadata = await self._fetchJson(FORGE_METADATA_URL)
        builds = metadata.get(gameVersion, []) if isinstance(metadata, dict) else []
        prefix = f"{gameVersion}-"
        return [build[len(prefix):] if build.startswith(prefix) else build for build in builds]

    async def _gameVersionsFor(self, loaderVersion: str) -> list[str]:
        metadata = await self._fetchJson(FORGE_METADATA_URL)
        out: list[str] = []
        for game, builds in (metadata or {}).items():
            if any(build == f"{game}-{loaderVersion}" or build == loaderVersion for build in builds):
                out.append(game)
        return out

    async def fetchPatch(self, gameVersion: str, loaderVersion: str) -> LoaderPatch:
        short = loaderVersion[len(gameVersion) + 1:] if loaderVersion.startswith(f"{gameVersion}-") else loaderVersion
        if short not in await self.availableVersions(gameVersion):
            supported = await self._gameVersionsFor(short)
            constraint = " || ".join(supported) if supported else "none known"
            raise LoaderVersionIncompatible(self.kind, short, gameVersion, constraint)

        full = self.fullVersion(gameVersion, short)
        url = f"{FORGE_MAVEN_URL}/{full}/forge-{full}-installer.jar"
        data = await self._fetchBytes(url)
        descriptor, embedded = readInstaller(data, source=url)
        profile = readInstallProfile(data)
        logger.info("Read Forge %s installer (%d bundled artifacts, %d processors)", full, len(embedded), len(profile["processors"]) if profile else 0)
        return LoaderPatch(
            kind=self.kind, loaderVersion=short, gameVersion=gameVersion, descriptor=descriptor, embedded=embedded,
            profile=profile, installer=data if profile else None,
        )



def neoforgeGameVersion(loaderVersion: str) -> str:
    """
    NeoForge `A.B.C[-tag]` targets game version `1.A.B`, or `1.A` when B is 0.

        "20.4.80-beta" -> "1.20.4"
        "21.0.167"     -> "1.21"
    """
    version = parseVersion(loaderVersion)
    if version.minor == 0:
        return f"1.{version.major}"
    return f"1.{version.major}.{version.minor}"



class NeoForgeHandler:
    kind = LoaderKind.NEOFORGE

    def __init__(self, *, fetchJson: FetchJson | None = None, fetchBytes: FetchBytes | None = None) -> None:
        self._fetchJson: FetchJson = fetchJson or httpClient.getJson
        self._fetchBytes: FetchBytes = fetchBytes or httpClient.getBytes

    async def _allVersions(self) -> list[str]:
        doc = await self._fetchJson(NEOFORGE_VERSIONS_URL)
        versions = doc.get("versions") if isinstance(doc, dict) else None
        return [str(item) for item in versions or []]

    async def availableVersions(self, gameVersion: str) -> list[str]:
        out: list[str] = []
        for candidate in await self._allVersions():
            try:
                if neoforgeGameVersion(candidate) == gameVersion:
                    out.append(candidate)
            except ValueError:
                logger.debug("Skipping unparsable NeoForge version %r", candidate)
        return out

    async def fetchPatch(self, gameVersion: str, loaderVersion: str) -> LoaderPatch:
        try:
            requirement = exactRequirement(neoforgeGameVersion(loaderVersion))
        except ValueError as err:
            raise LoaderInstallError(f"Unrecognised NeoForge version {loaderVersion!r}", loaderVersion=loaderVersion) from err
        try:
            compatible = satisfies(parseVersion(gameVersion), requirement)
        except ValueError:
            # Snapshots and other non-numeric ids are never targeted by NeoForge
            compatible = False
        if not compatible:
            raise LoaderVersionIncompatible(self.kind, loaderVersion, gameVersion, str(requirement))
        if loaderVersion not in await self._allVersions():
            raise LoaderInstallError(f"NeoForge {loaderVersion} is not published", loaderVersion=loaderVersion)

        url = f"{NEOFORGE_MAVEN_URL}/{loaderVersion}/neoforge-{loaderVersion}-installer.jar"
        data = await self._fetchBytes(url)
        descriptor, embedded = readInstaller(data, source=url)
        profile = readInstallProfile(data)
        logger.info("Read NeoForge %s installer (%d bundled artifacts, %d processors)", loaderVersion, len(embedded), len(profile["processors"]) if profile else 0)
        return LoaderPatch(
            kind=self.kind, loaderVersion=loaderVersion, gameVersion=gameVersion, descriptor=descriptor, embedded=embedded,
            profile=profile, installer=data if profile else None,
        )
