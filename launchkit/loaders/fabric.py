# launchkit/loaders/fabric.py
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from launchkit.http import client as httpClient
from .variants import (
    FetchJson,
    LoaderInstallError,
    LoaderKind,
    LoaderPatch,
    LoaderVersionIncompatible,
)

logger = logging.getLogger(__name__)

__all__ = ["FABRIC_META_URL", "QUILT_META_URL", "FabricHandler", "fabricHandler", "quiltHandler"]

FABRIC_META_URL = "https://meta.fabricmc.net/v2"
QUILT_META_URL = "https://meta.quiltmc.org/v3"



class FabricHandler:
    """
    Fabric-style meta service (Fabric and Quilt share the API shape):

        GET /versions/loader/<game>                        -> [{"loader": {"version": ...}}, ...]
        GET /versions/loader/<game>/<loader>/profile/json  -> version descriptor inheriting <game>
    """

    def __init__(self, kind: LoaderKind, metaUrl: str, *, fetchJson: FetchJson | None = None) -> None:
        self.kind = kind
        self.metaUrl = metaUrl.rstrip("/")
        self._fetchJson: FetchJson = fetchJson or httpClient.getJson

    async def availableVersions(self, gameVersion: str) -> list[str]:
        url = f"{self.metaUrl}/versions/loader/{quote(gameVersion)}"
        try:
            listing = await self._fetchJson(url)
        except httpClient.HTTPError as err:
            # The meta service answers 400/404 for game versions it does not know
            if err.status in (400, 404):
                return []
            raise
        versions: list[str] = []
        for item in listing or []:
            loader = item.get("loader") if isinstance(item, dict) else None
            if isinstance(loader, dict) and loader.get("version"):
                versions.append(str(loader["version"]))
        return versions

    async def fetchPatch(self, gameVersion: str, loaderVersion: str) -> LoaderPatch:
        available = await self.availableVersions(gameVersion)
        if loaderVersion not in available:
            raise LoaderVersionIncompatible(self.kind, loaderVersion, gameVersion, f"listed by {self.metaUrl}")

        url = f"{self.metaUrl}/versions/loader/{quote(gameVersion)}/{quote(loaderVersion)}/profile/json"
        profile: Any = await self._fetchJson(url)
        if not isinstance(profile, dict) or not profile.get("mainClass"):
            raise LoaderInstallError(f"{self.kind.value} profile for {loaderVersion} has no main class", url=url)
        logger.info("Fetched %s %s profile for %s (%d libraries)", self.kind.value, loaderVersion, gameVersion, len(profile.get("libraries", [])))
        return LoaderPatch(kind=self.kind, loaderVersion=loaderVersion, gameVersion=gameVersion, descriptor=profile)



def fabricHandler(fetchJson: FetchJson | None = None) -> FabricHandler:
    return FabricHandler(LoaderKind.FABRIC, FABRIC_META_URL, fetchJson=fetchJson)



def quiltHandler(fetchJson: FetchJson | None = None) -> FabricHandler:
    return FabricHandler(LoaderKind.QUILT, QUILT_META_URL, fetchJson=fetchJson)
