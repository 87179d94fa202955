# tests/launchkit/manifests/test_sources.py
from __future__ import annotations

import json

import pytest

from launchkit.core.hashing import sha1Bytes
from launchkit.manifests.errors import ManifestInvalid
from launchkit.manifests.resolver import ManifestResolver
from launchkit.manifests.sources import CacheSource, RegistrySource, StaticSource
from launchkit.platform.host import Platform

LISTING_URL = "https://meta.example/version_manifest_v2.json"
DESCRIPTOR = json.dumps({"id": "1.20.1", "mainClass": "net.main.Vanilla", "type": "release"}).encode()


def _listing(sha1: str) -> bytes:
    return json.dumps({
        "latest": {"release": "1.20.1", "snapshot": "23w31a"},
        "versions": [
            {"id": "23w31a", "type": "snapshot", "url": "https://meta.example/23w31a.json", "sha1": "0" * 40, "releaseTime": "2023-08-01T00:00:00+00:00"},
            {"id": "1.20.1", "type": "release", "url": "https://meta.example/1.20.1.json", "sha1": sha1, "releaseTime": "2023-06-12T00:00:00+00:00"},
            {"id": "broken"},
        ],
    }).encode()


class FakeFetch:
    def __init__(self, documents: dict[str, bytes]):
        self.documents = documents
        self.calls: list[str] = []

    async def __call__(self, url: str) -> bytes:
        self.calls.append(url)
        return self.documents[url]


def _registry(sha1: str | None = None) -> tuple[RegistrySource, FakeFetch]:
    fetch = FakeFetch({
        LISTING_URL: _listing(sha1 or sha1Bytes(DESCRIPTOR)),
        "https://meta.example/1.20.1.json": DESCRIPTOR,
    })
    return RegistrySource(LISTING_URL, fetchBytes=fetch), fetch


@pytest.mark.asyncio
async def test_registry_entries_andLatest():
    registry, fetch = _registry()

    entries = await registry.entries()
    latest = await registry.latest()

    assert [entry.id for entry in entries] == ["23w31a", "1.20.1"]
    assert entries[0].type == "snapshot"
    assert latest == {"release": "1.20.1", "snapshot": "23w31a"}
    # the listing is fetched once
    assert fetch.calls == [LISTING_URL]


@pytest.mark.asyncio
async def test_registry_fetch_verifiesChecksum():
    registry, _ = _registry()
    doc = await registry.fetch("1.20.1")
    assert doc is not None and doc["mainClass"] == "net.main.Vanilla"
    assert await registry.fetch("1.99") is None


@pytest.mark.asyncio
async def test_registry_fetch_checksumMismatch():
    registry, _ = _registry(sha1="f" * 40)
    with pytest.raises(ManifestInvalid) as excinfo:
        await registry.fetch("1.20.1")
    assert excinfo.value.context()["url"] == "https://meta.example/1.20.1.json"


@pytest.mark.asyncio
async def test_registry_badListing():
    registry = RegistrySource(LISTING_URL, fetchBytes=FakeFetch({LISTING_URL: b'{"latest": {}}'}))
    with pytest.raises(ManifestInvalid):
        await registry.entries()


@pytest.mark.asyncio
async def test_resolver_listsRegistryVersions():
    registry, _ = _registry()
    resolver = ManifestResolver([registry], platform=Platform("linux", "x86_64"))

    assert [entry.id for entry in await resolver.listVersions()] == ["23w31a", "1.20.1"]
    assert (await resolver.latest())["release"] == "1.20.1"
    manifest = await resolver.resolve("1.20.1")
    assert manifest.mainClass == "net.main.Vanilla"


@pytest.mark.asyncio
async def test_resolver_withoutRegistry_cannotList():
    resolver = ManifestResolver([StaticSource({})], platform=Platform("linux", "x86_64"))
    with pytest.raises(LookupError):
        await resolver.listVersions()


@pytest.mark.asyncio
async def test_cacheSource_ignoresCorruptEntry(tmp_path):
    cache = CacheSource(tmp_path)
    path = cache.pathFor("1.20.1")
    path.parent.mkdir(parents=True)
    path.write_text("{ truncated", encoding="utf-8")

    assert await cache.fetch("1.20.1") is None
    assert await cache.fetch("1.19") is None

    cache.store("1.20.1", {"id": "1.20.1"})
    assert await cache.fetch("1.20.1") == {"id": "1.20.1"}


@pytest.mark.parametrize("versionId", ["", "..", "../evil", "a/b", "a\\b"])
def test_cacheSource_rejectsUnsafeIds(tmp_path, versionId):
    with pytest.raises(ValueError):
        CacheSource(tmp_path).pathFor(versionId)
