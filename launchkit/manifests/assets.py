# launchkit/manifests/assets.py
from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ManifestInvalid

logger = logging.getLogger(__name__)

__all__ = ["ASSET_OBJECTS_URL", "AssetObject", "AssetIndex", "parseAssetIndex"]

ASSET_OBJECTS_URL = "https://resources.download.minecraft.net/"



@dataclass(frozen=True, slots=True)
class AssetObject:
    name: str
    sha1: str
    size: int

    @property
    def relativePath(self) -> str:
        return f"{self.sha1[:2]}/{self.sha1}"

    @property
    def url(self) -> str:
        return ASSET_OBJECTS_URL + self.relativePath



@dataclass(frozen=True)
class AssetIndex:
    """
    Logical asset name -> object. Objects are shared between every instance
    and stored by hash under `assets/objects/`. Pre-1.7 indexes are either
    `virtual` (copied to `assets/virtual/<id>/<name>`) or `map_to_resources`
    (copied into the instance's `resources/`).
    """
    id: str
    objects: dict[str, AssetObject] = field(default_factory=dict)
    virtual: bool = False
    mapToResources: bool = False

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self) -> Iterator[AssetObject]:
        return iter(self.objects.values())

    def uniqueObjects(self) -> list[AssetObject]:
        """One object per hash, in name order (several names may share content)."""
        seen: set[str] = set()
        out: list[AssetObject] = []
        for name in sorted(self.objects):
            obj = self.objects[name]
            if obj.sha1 in seen:
                continue
            seen.add(obj.sha1)
            out.append(obj)
        return out

    @property
    def totalSize(self) -> int:
        return sum(obj.size for obj in self.uniqueObjects())

    def legacyDirectory(self, assetsDir: Path, gameDir: Path) -> Path | None:
        """Where legacy names must be materialized, or None for modern indexes."""
        if self.mapToResources:
            return gameDir / "resources"
        if self.virtual:
            return assetsDir / "virtual" / self.id
        return None



def parseAssetIndex(indexId: str, raw: bytes | str | dict[str, Any]) -> AssetIndex:
    if isinstance(raw, dict):
        doc = raw
    else:
        try:
            doc = json.loads(raw)
        except ValueError as err:
            raise ManifestInvalid(f"Asset index '{indexId}' is not JSON: {err}", assetIndex=indexId) from err
    objects = doc.get("objects") if isinstance(doc, dict) else None
    if not isinstance(objects, dict):
        raise ManifestInvalid(f"Asset index '{indexId}' has no 'objects' map", assetIndex=indexId)

    parsed: dict[str, AssetObject] = {}
    for name, entry in objects.items():
        try:
            parsed[name] = AssetObject(name=name, sha1=str(entry["hash"]).lower(), size=int(entry.get("size", 0)))
        except (KeyError, TypeError, ValueError):
            logger.warning("Asset index '%s': skipping malformed entry '%s'", indexId, name)
    return AssetIndex(
        id=indexId,
        objects=parsed,
        virtual=bool(doc.get("virtual", False)),
        mapToResources=bool(doc.get("map_to_resources", False)),
    )
