# launchkit/manifests/resolver.py
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from launchkit.platform.host import Platform, currentPlatform
from .errors import ManifestCycle, ManifestInvalid, ManifestNotFound
from .models import (
    DEFAULT_JAVA_COMPONENT,
    DEFAULT_JAVA_MAJOR,
    ArgumentEntry,
    ArgumentTemplate,
    Artifact,
    LibraryEntry,
    ResolvedLibrary,
    ResolvedManifest,
    VersionDescriptor,
    parseMavenCoordinate,
)
from .rules import evaluateRules, ruleSpecificity
from .sources import CacheSource, ManifestSource, RegistryEntry, RegistrySource

logger = logging.getLogger(__name__)

__all__ = [
    "ManifestResolver",
    "mergeDescriptor",
    "parseDescriptor",
    "resolveLibraries",
    "DEFAULT_LIBRARY_BASE",
]

DEFAULT_LIBRARY_BASE = "https://libraries.minecraft.net/"



def parseDescriptor(raw: Mapping[str, Any], *, versionId: str | None = None) -> VersionDescriptor:
    try:
        return VersionDescriptor.model_validate(dict(raw))
    except ValidationError as err:
        raise ManifestInvalid(
            f"Descriptor '{versionId or raw.get('id')}' is malformed: {err.error_count()} error(s)",
            versionId=versionId or raw.get("id"),
            errors=str(err),
        ) from err


# ------------------------------------------------------------------ #
# Libraries
# ------------------------------------------------------------------ #

def _fromArtifact(key: str, name: str, artifact: Artifact, fallbackPath: str, *, native: bool, exclude: tuple[str, ...]) -> ResolvedLibrary:
    return ResolvedLibrary(
        key=key,
        name=name,
        path=artifact.path or fallbackPath,
        url=artifact.url,
        sha1=artifact.sha1,
        size=artifact.size,
        native=native,
        extractExclude=exclude,
    )



def _expandLibrary(entry: LibraryEntry, platform: Platform, versionId: str) -> list[ResolvedLibrary]:
    """One `libraries[]` element -> zero, one or two resolved artifacts (main jar, natives)."""
    try:
        coord = parseMavenCoordinate(entry.name)
    except ValueError as err:
        raise ManifestInvalid(str(err), versionId=versionId, library=entry.name) from err

    exclude = tuple(entry.extract.exclude) if entry.extract else ()
    out: list[ResolvedLibrary] = []
    downloads = entry.downloads

    nativeClassifier = None
    if entry.natives:
        nativeClassifier = entry.natives.get(platform.osName)
        if nativeClassifier:
            nativeClassifier = nativeClassifier.replace("${arch}", platform.archBits)

    if downloads is not None and (downloads.artifact is not None or downloads.classifiers):
        if downloads.artifact is not None:
            out.append(_fromArtifact(coord.key, str(coord), downloads.artifact, coord.path(), native=False, exclude=()))
        if nativeClassifier:
            nativeCoord = coord.withClassifier(nativeClassifier)
            artifact = (downloads.classifiers or {}).get(nativeClassifier)
            if artifact is None:
                logger.warning("Library '%s' declares natives '%s' but has no such classifier download", entry.name, nativeClassifier)
            else:
                out.append(_fromArtifact(nativeCoord.key, str(nativeCoord), artifact, nativeCoord.path(), native=True, exclude=exclude))
        return out

    # Plain maven coordinate (loader metadata): url is a repository base
    base = entry.url or DEFAULT_LIBRARY_BASE
    if not base.endswith("/"):
        base += "/"
    if entry.natives and not nativeClassifier:
        return out
    target = coord.withClassifier(nativeClassifier) if nativeClassifier else coord
    out.append(ResolvedLibrary(
        key=target.key,
        name=str(target),
        path=target.path(),
        url=base + target.path(),
        sha1=entry.sha1,
        size=entry.size,
        native=bool(nativeClassifier),
        extractExclude=exclude if nativeClassifier else (),
    ))
    return out



def resolveLibraries(entries: Sequence[LibraryEntry], platform: Platform, *, versionId: str = "") -> list[ResolvedLibrary]:
    """
    Filter one descriptor's libraries by rules and deduplicate by key.

    Two applicable entries with the same key: the one whose deciding rule is
    narrower replaces the other in place; on a tie the first one stays.
    """
    libraries: list[ResolvedLibrary] = []
    scores: dict[str, tuple[int, int]] = {}  # key -> (index, specificity)
    for entry in entries:
        if not evaluateRules(entry.rules, platform):
            logger.debug("Library '%s' excluded on %s", entry.name, platform)
            continue
        specificity = ruleSpecificity(entry.rules, platform)
        for lib in _expandLibrary(entry, platform, versionId):
            known = scores.get(lib.key)
            if known is None:
                scores[lib.key] = (len(libraries), specificity)
                libraries.append(lib)
                continue
            index, knownSpecificity = known
            if specificity > knownSpecificity:
                logger.debug("Library '%s': '%s' replaces '%s' (narrower rule)", lib.key, lib.name, libraries[index].name)
                libraries[index] = lib
                scores[lib.key] = (index, specificity)
    return libraries


# ------------------------------------------------------------------ #
# Arguments
# ------------------------------------------------------------------ #

def _argumentTemplates(values: Sequence[str | ArgumentEntry], platform: Platform) -> list[ArgumentTemplate]:
    out: list[ArgumentTemplate] = []
    for value in values:
        if isinstance(value, str):
            out.append(ArgumentTemplate((value,)))
            continue
        parts = (value.value,) if isinstance(value.value, str) else tuple(value.value)
        if any(rule.features for rule in value.rules):
            # Feature flags are only known at launch time
            out.append(ArgumentTemplate(parts, tuple(value.rules)))
        elif evaluateRules(value.rules, platform):
            out.append(ArgumentTemplate(parts))
    return out


# ------------------------------------------------------------------ #
# Merge
# ------------------------------------------------------------------ #

def mergeDescriptor(base: ResolvedManifest | None, descriptor: VersionDescriptor, platform: Platform) -> ResolvedManifest:
    """
    Lay `descriptor` over `base` (its parent, already merged).

    Scalars: the descriptor wins when it sets them. Libraries: the
    descriptor's entries first, then the base entries whose key it does not
    override. Argument lists: base then descriptor. The legacy
    `minecraftArguments` string is replaced, never concatenated.
    """
    libraries = resolveLibraries(descriptor.libraries, platform, versionId=descriptor.id)
    if base is not None:
        seen = {lib.key for lib in libraries}
        libraries.extend(lib for lib in base.libraries if lib.key not in seen)

    jvm = _argumentTemplates(descriptor.arguments.jvm, platform) if descriptor.arguments else []
    game = _argumentTemplates(descriptor.arguments.game, platform) if descriptor.arguments else []

    client = descriptor.downloads.get("client")
    loggingConfig = descriptor.logging.get("client")
    java = descriptor.javaVersion

    if base is None:
        return ResolvedManifest(
            id=descriptor.id,
            platform=platform,
            chain=(descriptor.id,),
            mainClass=descriptor.mainClass or "",
            libraries=tuple(libraries),
            jvmArguments=tuple(jvm),
            gameArguments=tuple(game),
            legacyArguments=descriptor.minecraftArguments,
            assetIndex=descriptor.assetIndex,
            javaMajorVersion=java.majorVersion if java else DEFAULT_JAVA_MAJOR,
            javaComponent=java.component if java else DEFAULT_JAVA_COMPONENT,
            clientDownload=client,
            jarVersionId=descriptor.id if client is not None else None,
            loggingConfig=loggingConfig,
            type=descriptor.type or "release",
            releaseTime=descriptor.releaseTime,
            hasModernArguments=descriptor.arguments is not None,
        )

    return ResolvedManifest(
        id=descriptor.id,
        platform=platform,
        chain=(descriptor.id,) + base.chain,
        mainClass=descriptor.mainClass or base.mainClass,
        libraries=tuple(libraries),
        jvmArguments=base.jvmArguments + tuple(jvm),
        gameArguments=base.gameArguments + tuple(game),
        legacyArguments=descriptor.minecraftArguments if descriptor.minecraftArguments is not None else base.legacyArguments,
        assetIndex=descriptor.assetIndex or base.assetIndex,
        javaMajorVersion=java.majorVersion if java else base.javaMajorVersion,
        javaComponent=java.component if java else base.javaComponent,
        clientDownload=client or base.clientDownload,
        jarVersionId=descriptor.id if client is not None else base.jarVersionId,
        loggingConfig=loggingConfig or base.loggingConfig,
        type=descriptor.type or base.type,
        releaseTime=descriptor.releaseTime or base.releaseTime,
        hasModernArguments=base.hasModernArguments or descriptor.arguments is not None,
    )


# ------------------------------------------------------------------ #
# Resolver
# ------------------------------------------------------------------ #

class ManifestResolver:
    """
    Turns a version id into a ResolvedManifest for one platform.

    Sources are asked in order; the first one that knows the id wins. When a
    `cache` source is given, descriptors found elsewhere are written to it.
    """

    def __init__(
        self,
        sources: Sequence[ManifestSource],
        *,
        platform: Platform | None = None,
        cache: CacheSource | None = None,
    ) -> None:
        self.sources: list[ManifestSource] = list(sources)
        if cache is not None and cache not in self.sources:
            self.sources.insert(0, cache)
        self.cache = cache
        self.platform = platform or currentPlatform()
        self._resolved: dict[tuple[str, Platform], ResolvedManifest] = {}

    async def fetchDescriptor(self, versionId: str) -> VersionDescriptor:
        for source in self.sources:
            raw = await source.fetch(versionId)
            if raw is None:
                continue
            descriptor = parseDescriptor(raw, versionId=versionId)
            if self.cache is not None and source is not self.cache:
                self.cache.store(versionId, raw)
            logger.debug("Descriptor '%s' from %s", versionId, source.name)
            return descriptor
        raise ManifestNotFound(versionId, sources=tuple(source.name for source in self.sources))

    async def resolve(self, versionId: str, *, platform: Platform | None = None) -> ResolvedManifest:
        platform = platform or self.platform
        key = (versionId, platform)
        cached = self._resolved.get(key)
        if cached is not None:
            return cached

        descriptors: list[VersionDescriptor] = []
        visited: list[str] = []
        current: str | None = versionId
        while current:
            if current in visited:
                raise ManifestCycle(tuple(visited) + (current,))
            visited.append(current)
            descriptor = await self.fetchDescriptor(current)
            descriptors.append(descriptor)
            current = descriptor.inheritsFrom

        manifest: ResolvedManifest | None = None
        for descriptor in reversed(descriptors):
            manifest = mergeDescriptor(manifest, descriptor, platform)
        assert manifest is not None

        if not manifest.mainClass:
            raise ManifestInvalid(f"Version '{versionId}' has no main class", versionId=versionId, chain=manifest.chain)

        self._resolved[key] = manifest
        logger.info("Resolved '%s' for %s: %d libraries (chain %s)", versionId, platform, len(manifest.libraries), " -> ".join(manifest.chain))
        return manifest

    def invalidate(self, versionId: str | None = None) -> None:
        if versionId is None:
            self._resolved.clear()
            return
        for key in [key for key in self._resolved if key[0] == versionId]:
            del self._resolved[key]

    def _registry(self) -> RegistrySource:
        for source in self.sources:
            if isinstance(source, RegistrySource):
                return source
        raise LookupError("No registry source configured")

    async def listVersions(self) -> list[RegistryEntry]:
        return await self._registry().entries()

    async def latest(self) -> dict[str, str]:
        return await self._registry().latest()
