# launchkit/manifests/sources.py
from __future__ import annotations

import json
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from launchkit.core.hashing import sha1Bytes
from launchkit.http import client as httpClient
from .errors import ManifestInvalid

logger = logging.getLogger(__name__)

__all__ = [
    "VERSION_MANIFEST_URL",
    "ManifestSource",
    "StaticSource",
    "CacheSource",
    "RegistrySource",
    "RegistryEntry",
]

VERSION_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest_v2.json"

FetchBytes = Callable[[str], Awaitable[bytes]]



class ManifestSource(Protocol):
    """Somewhere raw version descriptors can come from."""
    name: str

    async def fetch(self, versionId: str) -> dict[str, Any] | None: ...



class StaticSource:
    """In-memory descriptors (tests, or descriptors handed over by a front end)."""

    def __init__(self, descriptors: Mapping[str, Mapping[str, Any]], *, name: str = "static") -> None:
        self.name = name
        self._descriptors = {key: dict(value) for key, value in descriptors.items()}

    async def fetch(self, versionId: str) -> dict[str, Any] | None:
        raw = self._descriptors.get(versionId)
        return dict(raw) if raw is not None else None



class CacheSource:
    """Descriptors saved as `versions/<id>/<id>.json` under the launcher root."""

    def __init__(self, versionsDir: Path | str) -> None:
        self.name = "cache"
        self.versionsDir = Path(versionsDir)

    def pathFor(self, versionId: str) -> Path:
        if not versionId or "/" in versionId or "\\" in versionId or versionId in (".", ".."):
            raise ValueError(f"Unsafe version id {versionId!r}")
        return self.versionsDir / versionId / f"{versionId}.json"

    async def fetch(self, versionId: str) -> dict[str, Any] | None:
        path = self.pathFor(versionId)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as err:
            # Corrupted cache entry; let the next source refetch it
            logger.warning("Ignoring unreadable cached descriptor '%s': %s", path, err)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring cached descriptor '%s': not a JSON object", path)
            return None
        return data

    def store(self, versionId: str, raw: Mapping[str, Any]) -> Path:
        path = self.pathFor(versionId)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmpPath = path.with_suffix(".json.tmp")
        tmpPath.write_text(json.dumps(raw, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmpPath, path)
        return path



@dataclass(frozen=True, slots=True)
class RegistryEntry:
    id: str
    type: str
    url: str
    sha1: str | None
    releaseTime: str | None



class RegistrySource:
    """
    Mojang-style registry: one listing document (`versions[]` with per-id
    URLs and SHA-1s) plus one document per version. Descriptor bytes are
    checked against the listing's SHA-1 before use.
    """

    def __init__(
        self,
        manifestUrl: str = VERSION_MANIFEST_URL,
        *,
        fetchBytes: FetchBytes | None = None,
        name: str = "registry",
    ) -> None:
        self.name = name
        self.manifestUrl = manifestUrl
        self._fetchBytes: FetchBytes = fetchBytes or httpClient.getBytes
        self._listing: dict[str, Any] | None = None

    async def listing(self, *, refresh: bool = False) -> dict[str, Any]:
        if self._listing is None or refresh:
            raw = await self._fetchBytes(self.manifestUrl)
            try:
                doc = json.loads(raw)
            except ValueError as err:
                raise ManifestInvalid(f"Version listing at {self.manifestUrl} is not JSON: {err}") from err
            if not isinstance(doc, dict) or not isinstance(doc.get("versions"), list):
                raise ManifestInvalid(f"Version listing at {self.manifestUrl} has no 'versions' list")
            self._listing = doc
        return self._listing

    async def entries(self) -> list[RegistryEntry]:
        doc = await self.listing()
        out: list[RegistryEntry] = []
        for item in doc["versions"]:
            if not isinstance(item, dict) or not item.get("id") or not item.get("url"):
                continue
            out.append(RegistryEntry(
                id=str(item["id"]),
                type=str(item.get("type", "release")),
                url=str(item["url"]),
                sha1=item.get("sha1"),
                releaseTime=item.get("releaseTime"),
            ))
        return out

    async def latest(self) -> dict[str, str]:
        """{"release": id, "snapshot": id} as advertised by the registry."""
        doc = await self.listing()
        latest = doc.get("latest")
        return dict(latest) if isinstance(latest, dict) else {}

    async def fetch(self, versionId: str) -> dict[str, Any] | None:
        entry = next((item for item in await self.entries() if item.id == versionId), None)
        if entry is None:
            return None
        raw = await self._fetchBytes(entry.url)
        if entry.sha1 and sha1Bytes(raw) != entry.sha1:
            raise ManifestInvalid(
                f"Descriptor for '{versionId}' does not match the registry checksum",
                versionId=versionId,
                url=entry.url,
            )
        try:
            data = json.loads(raw)
        except ValueError as err:
            raise ManifestInvalid(f"Descriptor for '{versionId}' is not JSON: {err}", versionId=versionId) from err
        if not isinstance(data, dict):
            raise ManifestInvalid(f"Descriptor for '{versionId}' is not a JSON object", versionId=versionId)
        return data
