# tests/launchkit/test_pipeline.py
from __future__ import annotations

import json

import httpx
import pytest

from launchkit.app.paths import LauncherLayout
from launchkit.core.hashing import sha1Bytes
from launchkit.instances.manager import InstanceNotFound
from launchkit.launch.assembler import Account
from launchkit.manifests.sources import VERSION_MANIFEST_URL
from launchkit.pipeline import Launcher
from launchkit.platform.host import Platform
from launchkit.runtimes.models import RuntimeBinary

LINUX = Platform("linux", "x86_64")

CLIENT = b"client jar bytes"
LIBRARY = b"library jar bytes"
SOUND = b"ogg vorbis"
LIB_PATH = "com/example/lib/1.0/lib-1.0.jar"
INDEX = json.dumps({"objects": {
    "minecraft/sounds/step.ogg": {"hash": sha1Bytes(SOUND), "size": len(SOUND)},
    "minecraft/sounds/step2.ogg": {"hash": sha1Bytes(SOUND), "size": len(SOUND)},
}}).encode()

DESCRIPTOR = json.dumps({
    "id": "1.20.1",
    "type": "release",
    "mainClass": "net.minecraft.client.main.Main",
    "javaVersion": {"component": "java-runtime-gamma", "majorVersion": 17},
    "downloads": {"client": {"url": "https://piston.example/client.jar", "sha1": sha1Bytes(CLIENT), "size": len(CLIENT)}},
    "assetIndex": {"id": "5", "url": "https://piston.example/indexes/5.json", "sha1": sha1Bytes(INDEX), "size": len(INDEX)},
    "libraries": [{"name": "com.example:lib:1.0", "downloads": {"artifact": {
        "path": LIB_PATH, "url": f"https://libraries.example/{LIB_PATH}", "sha1": sha1Bytes(LIBRARY), "size": len(LIBRARY),
    }}}],
    "arguments": {
        "jvm": ["-Djava.library.path=${natives_directory}", "-cp", "${classpath}"],
        "game": ["--username", "${auth_player_name}", "--assetIndex", "${assets_index_name}", "--userType", "${user_type}"],
    },
}).encode()

LISTING = json.dumps({
    "latest": {"release": "1.20.1", "snapshot": "1.20.1"},
    "versions": [{"id": "1.20.1", "type": "release", "url": "https://piston.example/1.20.1.json", "sha1": sha1Bytes(DESCRIPTOR)}],
}).encode()


class FakeNetwork:
    def __init__(self):
        self.metadata: list[str] = []
        self.transfers: list[str] = []
        self.documents = {VERSION_MANIFEST_URL: LISTING, "https://piston.example/1.20.1.json": DESCRIPTOR}
        self.blobs = {
            "https://piston.example/client.jar": CLIENT,
            "https://piston.example/indexes/5.json": INDEX,
            f"https://libraries.example/{LIB_PATH}": LIBRARY,
            f"https://resources.download.minecraft.net/{sha1Bytes(SOUND)[:2]}/{sha1Bytes(SOUND)}": SOUND,
        }

    async def fetchBytes(self, url):
        self.metadata.append(url)
        return self.documents[url]

    async def fetchJson(self, url):
        raise AssertionError(f"unexpected metadata request {url}")

    def transport(self) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            self.transfers.append(url)
            if url not in self.blobs:
                return httpx.Response(404)
            return httpx.Response(200, content=self.blobs[url])
        return httpx.MockTransport(handler)


class FakeProvisioner:
    def __init__(self, root):
        self.root = root
        self.calls: list[tuple[int, str | None]] = []

    async def provision(self, minimumMajor, platform, *, component=None):
        self.calls.append((minimumMajor, component))
        java = self.root / component / "bin" / "java"
        java.parent.mkdir(parents=True, exist_ok=True)
        java.write_bytes(b"")
        return RuntimeBinary(majorVersion=17, path=java, platform=str(platform), version="17.0.8", component=component)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def launcher(tmp_path, network) -> Launcher:
    return Launcher(
        LauncherLayout(tmp_path / "root"),
        platform=LINUX,
        transport=network.transport(),
        fetchJson=network.fetchJson,
        fetchBytes=network.fetchBytes,
        provisioner=FakeProvisioner(tmp_path / "runtimes"),
    )


@pytest.mark.asyncio
async def test_prepare_fetchesEverything_thenAssembles(launcher, network):
    layout = launcher.layout
    launcher.instances.create("survival", "1.20.1", ramInMb=3072)

    prepared = await launcher.prepare("survival")

    assert prepared.manifest.id == "1.20.1"
    assert prepared.runtime.majorVersion == 17
    assert launcher.runtimes.provisioner.calls == [(17, "java-runtime-gamma")]
    assert layout.clientJar("1.20.1").read_bytes() == CLIENT
    librariesDir = launcher.instances.librariesDir("survival")
    assert (librariesDir / LIB_PATH).read_bytes() == LIBRARY
    assert (layout.assetsDir / "indexes" / "5.json").read_bytes() == INDEX
    assert (layout.assetsDir / "objects" / sha1Bytes(SOUND)[:2] / sha1Bytes(SOUND)).read_bytes() == SOUND
    assert launcher.instances.nativesDir("survival").is_dir()
    assert len(prepared.assetIndex) == 2
    # descriptor written back to the local cache
    assert (layout.versionDir("1.20.1") / "1.20.1.json").is_file()

    spec = launcher.assemble(prepared, Account.offline("Steve"))

    assert spec.executable == prepared.runtime.path
    assert spec.workingDir == launcher.instances.gameDir("survival")
    assert list(spec.arguments) == [
        "-Xmx3072M",
        f"-Djava.library.path={launcher.instances.nativesDir('survival')}",
        "-cp", f"{librariesDir / LIB_PATH}:{layout.clientJar('1.20.1')}",
        "net.minecraft.client.main.Main",
        "--username", "Steve", "--assetIndex", "5", "--userType", "legacy",
    ]


@pytest.mark.asyncio
async def test_secondPrepare_usesLocalState(launcher, network):
    launcher.instances.create("survival", "1.20.1")
    await launcher.prepare("survival")
    network.metadata.clear()
    network.transfers.clear()

    prepared = await launcher.prepare("survival")

    assert network.metadata == []
    assert network.transfers == []
    assert launcher.runtimes.provisioner.calls == [(17, "java-runtime-gamma")]
    assert prepared.runtime.component == "java-runtime-gamma"


@pytest.mark.asyncio
async def test_secondInstance_sharesTheStore(launcher, network):
    launcher.instances.create("one", "1.20.1")
    launcher.instances.create("two", "1.20.1")
    await launcher.prepare("one")
    network.transfers.clear()

    await launcher.prepare("two")

    assert network.transfers == []
    assert (launcher.instances.librariesDir("two") / LIB_PATH).read_bytes() == LIBRARY


@pytest.mark.asyncio
async def test_javaOverride_skipsRuntimeSelection(launcher, tmp_path):
    custom = tmp_path / "custom-jdk" / "bin" / "java"
    launcher.instances.create("survival", "1.20.1", javaOverride=str(custom))

    prepared = await launcher.prepare("survival")

    assert prepared.runtime.path == custom
    assert launcher.runtimes.provisioner.calls == []


@pytest.mark.asyncio
async def test_prepare_unknownInstance(launcher, network):
    with pytest.raises(InstanceNotFound):
        await launcher.prepare("ghost")
    assert network.metadata == []
