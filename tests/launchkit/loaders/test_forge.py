# tests/launchkit/loaders/test_forge.py
from __future__ import annotations

import io
import json
import zipfile

import pytest

from launchkit.app.paths import LauncherLayout
from launchkit.instances.manager import InstanceManager
from launchkit.loaders.forge import (
    FORGE_MAVEN_URL,
    FORGE_METADATA_URL,
    NEOFORGE_MAVEN_URL,
    NEOFORGE_VERSIONS_URL,
    ForgeHandler,
    NeoForgeHandler,
    neoforgeGameVersion,
    readInstaller,
    readInstallProfile,
)
from launchkit.loaders.installer import LoaderInstaller, defaultHandlers
from launchkit.loaders.variants import LoaderInstallError, LoaderKind, LoaderSelection, LoaderVersionIncompatible
from launchkit.manifests.resolver import ManifestResolver
from launchkit.manifests.sources import StaticSource
from launchkit.platform.host import Platform

UNIVERSAL = "net/minecraftforge/forge/1.20.1-47.2.0/forge-1.20.1-47.2.0-universal.jar"


def _installer(files: dict[str, bytes | dict]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            if isinstance(content, dict):
                content = json.dumps(content).encode()
            archive.writestr(name, content)
    return buffer.getvalue()


FORGE_DESCRIPTOR = {
    "id": "1.20.1-forge-47.2.0",
    "inheritsFrom": "1.20.1",
    "mainClass": "cpw.mods.bootstraplauncher.BootstrapLauncher",
    "libraries": [
        {"name": "net.minecraftforge:forge:1.20.1-47.2.0:universal", "downloads": {"artifact": {
            "path": UNIVERSAL, "sha1": "9" * 40, "size": 7, "url": "",
        }}},
    ],
}


class FakeRemote:
    def __init__(self, json_docs: dict, blobs: dict[str, bytes]):
        self.json_docs = json_docs
        self.blobs = blobs
        self.calls: list[str] = []

    async def fetchJson(self, url):
        self.calls.append(url)
        return self.json_docs[url]

    async def fetchBytes(self, url):
        self.calls.append(url)
        return self.blobs[url]


# ---------- installer archives ----------

def test_readInstaller_modern():
    data = _installer({
        "version.json": FORGE_DESCRIPTOR,
        "install_profile.json": {"spec": 1, "processors": []},
        f"maven/{UNIVERSAL}": b"classes",
        "maven/": b"",
        "data/client.lzma": b"xx",
    })

    descriptor, embedded = readInstaller(data)

    assert descriptor["mainClass"] == "cpw.mods.bootstraplauncher.BootstrapLauncher"
    assert embedded == {UNIVERSAL: b"classes"}


def test_readInstaller_legacyProfile():
    data = _installer({"install_profile.json": {"install": {}, "versionInfo": {"id": "1.7.10-Forge", "mainClass": "net.minecraft.launchwrapper.Launch"}}})
    descriptor, embedded = readInstaller(data)
    assert descriptor["id"] == "1.7.10-Forge"
    assert embedded == {}


def test_readInstallProfile_onlyWithProcessors():
    processor = {"jar": "net.minecraftforge:installertools:1.3.0", "args": ["--task", "MCP_DATA"]}
    modern = _installer({"version.json": FORGE_DESCRIPTOR, "install_profile.json": {"spec": 1, "processors": [processor]}})
    empty = _installer({"version.json": FORGE_DESCRIPTOR, "install_profile.json": {"spec": 1, "processors": []}})
    legacy = _installer({"install_profile.json": {"install": {}, "versionInfo": {"id": "1.7.10-Forge"}}})

    assert readInstallProfile(modern)["processors"] == [processor]
    assert readInstallProfile(empty) is None
    assert readInstallProfile(legacy) is None
    assert readInstallProfile(b"not a zip") is None


@pytest.mark.parametrize("data", [b"not a zip", _installer({"readme.txt": b"hello"})])
def test_readInstaller_rejectsBadArchives(data):
    with pytest.raises(LoaderInstallError):
        readInstaller(data, source="forge-installer.jar")


# ---------- Forge ----------

FORGE_METADATA = {
    "1.19.2": ["1.19.2-43.3.0"],
    "1.20.1": ["1.20.1-47.1.0", "1.20.1-47.2.0"],
}
FORGE_INSTALLER_URL = f"{FORGE_MAVEN_URL}/1.20.1-47.2.0/forge-1.20.1-47.2.0-installer.jar"


def _forgeRemote() -> FakeRemote:
    return FakeRemote(
        {FORGE_METADATA_URL: FORGE_METADATA},
        {FORGE_INSTALLER_URL: _installer({"version.json": FORGE_DESCRIPTOR, f"maven/{UNIVERSAL}": b"classes"})},
    )


@pytest.mark.asyncio
async def test_forge_availableVersions():
    remote = _forgeRemote()
    handler = ForgeHandler(fetchJson=remote.fetchJson, fetchBytes=remote.fetchBytes)
    assert await handler.availableVersions("1.20.1") == ["47.1.0", "47.2.0"]
    assert await handler.availableVersions("1.12.2") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("loaderVersion", ["47.2.0", "1.20.1-47.2.0"])
async def test_forge_fetchPatch(loaderVersion):
    remote = _forgeRemote()
    handler = ForgeHandler(fetchJson=remote.fetchJson, fetchBytes=remote.fetchBytes)

    patch = await handler.fetchPatch("1.20.1", loaderVersion)

    assert patch.kind is LoaderKind.FORGE
    assert patch.loaderVersion == "47.2.0"
    assert patch.descriptor["id"] == "1.20.1-forge-47.2.0"
    assert patch.embedded == {UNIVERSAL: b"classes"}
    assert FORGE_INSTALLER_URL in remote.calls


@pytest.mark.asyncio
async def test_forge_incompatible_namesSupportedGameVersions():
    remote = _forgeRemote()
    handler = ForgeHandler(fetchJson=remote.fetchJson, fetchBytes=remote.fetchBytes)

    with pytest.raises(LoaderVersionIncompatible) as excinfo:
        await handler.fetchPatch("1.20.1", "43.3.0")

    assert excinfo.value.constraint == "1.19.2"
    assert str(excinfo.value) == "forge 43.3.0 requires game version 1.19.2, instance has 1.20.1"
    assert not any(url.endswith("-installer.jar") for url in remote.calls)


@pytest.mark.asyncio
async def test_forge_install_writesBundledArtifacts(tmp_path):
    remote = _forgeRemote()
    layout = LauncherLayout(tmp_path / "root")
    instances = InstanceManager(layout)
    instances.create("modded", "1.20.1")
    vanilla = {"id": "1.20.1", "mainClass": "net.main.Vanilla", "libraries": []}
    resolver = ManifestResolver([StaticSource({"1.20.1": vanilla})], platform=Platform("linux", "x86_64"))
    installer = LoaderInstaller(resolver, instances, handlers=defaultHandlers(remote.fetchJson, remote.fetchBytes))

    manifest = await installer.install("modded", LoaderSelection(kind=LoaderKind.FORGE, version="47.2.0"))

    assert manifest.mainClass == "cpw.mods.bootstraplauncher.BootstrapLauncher"
    assert (instances.librariesDir("modded") / UNIVERSAL).read_bytes() == b"classes"
    universal = manifest.library("net.minecraftforge:forge:universal")
    assert universal is not None and universal.url == ""


# ---------- NeoForge ----------

@pytest.mark.parametrize(
    "loaderVersion, gameVersion",
    [("20.4.80-beta", "1.20.4"), ("20.2.86", "1.20.2"), ("21.0.167", "1.21"), ("21.1.1", "1.21.1")],
)
def test_neoforgeGameVersion(loaderVersion, gameVersion):
    assert neoforgeGameVersion(loaderVersion) == gameVersion


NEO_VERSIONS = {"versions": ["20.2.86", "20.4.80-beta", "21.0.167", "not-a-version"]}
NEO_INSTALLER_URL = f"{NEOFORGE_MAVEN_URL}/20.4.80-beta/neoforge-20.4.80-beta-installer.jar"
NEO_DESCRIPTOR = {"id": "neoforge-20.4.80-beta", "inheritsFrom": "1.20.4", "mainClass": "cpw.mods.bootstraplauncher.BootstrapLauncher"}


def _neoHandler() -> tuple[NeoForgeHandler, FakeRemote]:
    remote = FakeRemote({NEOFORGE_VERSIONS_URL: NEO_VERSIONS}, {NEO_INSTALLER_URL: _installer({"version.json": NEO_DESCRIPTOR})})
    return NeoForgeHandler(fetchJson=remote.fetchJson, fetchBytes=remote.fetchBytes), remote


@pytest.mark.asyncio
async def test_neoforge_availableVersions():
    handler, _ = _neoHandler()
    assert await handler.availableVersions("1.20.4") == ["20.4.80-beta"]
    assert await handler.availableVersions("1.21") == ["21.0.167"]
    assert await handler.availableVersions("1.16.5") == []


@pytest.mark.asyncio
async def test_neoforge_fetchPatch():
    handler, _ = _neoHandler()
    patch = await handler.fetchPatch("1.20.4", "20.4.80-beta")
    assert patch.kind is LoaderKind.NEOFORGE
    assert patch.descriptor["mainClass"] == "cpw.mods.bootstraplauncher.BootstrapLauncher"


@pytest.mark.asyncio
@pytest.mark.parametrize("gameVersion", ["1.20.1", "23w13a"])
async def test_neoforge_incompatible_beforeAnyDownload(gameVersion):
    handler, remote = _neoHandler()
    with pytest.raises(LoaderVersionIncompatible) as excinfo:
        await handler.fetchPatch(gameVersion, "20.4.80-beta")
    assert excinfo.value.constraint == "[1.20.4]"
    assert remote.calls == []


@pytest.mark.asyncio
async def test_neoforge_unpublishedVersion():
    handler, _ = _neoHandler()
    with pytest.raises(LoaderInstallError):
        await handler.fetchPatch("1.20.4", "20.4.999")


@pytest.mark.asyncio
async def test_neoforge_garbageVersion():
    handler, _ = _neoHandler()
    with pytest.raises(LoaderInstallError):
        await handler.fetchPatch("1.20.4", "latest")
