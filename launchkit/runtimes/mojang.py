# launchkit/runtimes/mojang.py
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from launchkit.downloads.orchestrator import DownloadOrchestrator
from launchkit.downloads.tasks import DownloadTask
from launchkit.http import client as httpClient
from launchkit.platform.host import Platform
from launchkit.semver.versions import parseJavaVersion
from .models import RuntimeBinary, RuntimeProvisionError, UnsupportedPlatform

logger = logging.getLogger(__name__)

__all__ = [
    "JAVA_RUNTIME_INDEX_URL",
    "RUNTIME_COMPONENTS",
    "componentFor",
    "javaExecutable",
    "MojangRuntimeProvisioner",
]

JAVA_RUNTIME_INDEX_URL = (
    "https://launchermeta.mojang.com/v1/products/java-runtime/"
    "2ec0cc96c44e5a76b9c8b7c39df7210883d12871/all.json"
)

# Major version -> runtime component published in the index
RUNTIME_COMPONENTS: dict[int, str] = {
    8: "jre-legacy",
    16: "java-runtime-alpha",
    17: "java-runtime-gamma",
    21: "java-runtime-delta",
    25: "java-runtime-epsilon",
}

LOCK_FILE = "install.lock"

FetchJson = Callable[[str], Awaitable[Any]]



def componentFor(minimumMajor: int) -> tuple[int, str] | None:
    """Smallest published component whose major is >= minimumMajor."""
    for major in sorted(RUNTIME_COMPONENTS):
        if major >= minimumMajor:
            return major, RUNTIME_COMPONENTS[major]
    return None



def javaExecutable(installDir: Path, platform: Platform) -> Path:
    if platform.osName == "osx":
        return installDir / "jre.bundle" / "Contents" / "Home" / "bin" / "java"
    if platform.osName == "windows":
        # javaw: no console window pops up next to the game
        return installDir / "bin" / "javaw.exe"
    return installDir / "bin" / "java"



class MojangRuntimeProvisioner:
    """
    Installs Java builds from the Mojang runtime index into
    `java_installs/<component>/`. File contents go through the download
    orchestrator (and so through the shared content store). An
    `install.lock` marker exists while an install is incomplete.
    """

    def __init__(
        self,
        runtimesDir: Path | str,
        orchestrator: DownloadOrchestrator,
        *,
        fetchJson: FetchJson | None = None,
        indexUrl: str = JAVA_RUNTIME_INDEX_URL,
    ) -> None:
        self.runtimesDir = Path(runtimesDir)
        self.orchestrator = orchestrator
        self.indexUrl = indexUrl
        self._fetchJson: FetchJson = fetchJson or httpClient.getJson

    def installDir(self, component: str) -> Path:
        return self.runtimesDir / component

    def isIncomplete(self, component: str) -> bool:
        return (self.installDir(component) / LOCK_FILE).exists()

    async def provision(self, minimumMajor: int, platform: Platform, *, component: str | None = None) -> RuntimeBinary:
        picked = componentFor(minimumMajor)
        if component is None:
            if picked is None:
                raise UnsupportedPlatform(platform, minimumMajor)
            component = picked[1]
        componentMajor = next((major for major, name in RUNTIME_COMPONENTS.items() if name == component), minimumMajor)

        key = platform.javaRuntimeKey()
        if key is None:
            raise UnsupportedPlatform(platform, minimumMajor, component=component)
        index = await self._fetchJson(self.indexUrl)
        builds = (index.get(key) or {}).get(component) or []
        if not builds:
            raise UnsupportedPlatform(platform, minimumMajor, component=component)
        build = builds[0]
        versionName = str((build.get("version") or {}).get("name") or "")

        filesDoc = await self._fetchJson(build["manifest"]["url"])
        files: dict[str, Any] = filesDoc.get("files") or {}

        installDir = self.installDir(component)
        installDir.mkdir(parents=True, exist_ok=True)
        lockPath = installDir / LOCK_FILE
        if lockPath.exists():
            logger.warning("Resuming incomplete Java install in '%s'", installDir)
        lockPath.write_text("", encoding="utf-8")

        tasks: list[DownloadTask] = []
        links: list[tuple[Path, str]] = []
        for relative in sorted(files):
            entry = files[relative]
            target = installDir / relative
            kind = entry.get("type")
            if kind == "directory":
                target.mkdir(parents=True, exist_ok=True)
            elif kind == "file":
                raw = (entry.get("downloads") or {}).get("raw")
                if not raw:
                    logger.warning("Runtime file '%s' has no raw download, skipping", relative)
                    continue
                tasks.append(DownloadTask(
                    url=raw["url"],
                    destination=target,
                    sha1=raw.get("sha1"),
                    size=raw.get("size"),
                    executable=bool(entry.get("executable")),
                    label=f"{component}/{relative}",
                ))
            elif kind == "link":
                links.append((target, str(entry.get("target", ""))))

        logger.info("Provisioning %s %s for %s (%d files)", component, versionName or "?", platform, len(tasks))
        await self.orchestrator.download(tasks)

        if platform.osName != "windows":
            for linkPath, linkTarget in links:
                if not linkTarget:
                    continue
                linkPath.parent.mkdir(parents=True, exist_ok=True)
                if linkPath.is_symlink() or linkPath.exists():
                    linkPath.unlink()
                os.symlink(linkTarget, linkPath)

        executable = javaExecutable(installDir, platform)
        if not executable.is_file():
            raise RuntimeProvisionError(f"{component} installed without '{executable.name}'", component=component, path=executable)
        lockPath.unlink()

        try:
            major = parseJavaVersion(versionName).major if versionName else componentMajor
        except ValueError:
            major = componentMajor
        return RuntimeBinary(majorVersion=major, path=executable, platform=str(platform), version=versionName, component=component)
