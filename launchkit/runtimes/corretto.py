# launchkit/runtimes/corretto.py
from __future__ import annotations

import asyncio
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path

from launchkit.downloads.orchestrator import DownloadOrchestrator
from launchkit.downloads.tasks import DownloadTask
from launchkit.platform.host import Platform
from launchkit.semver.versions import parseJavaVersion
from .models import RuntimeBinary, RuntimeProvisionError, UnsupportedPlatform
from .mojang import LOCK_FILE, RUNTIME_COMPONENTS

logger = logging.getLogger(__name__)

__all__ = ["CORRETTO_MAJORS", "alternateUrl", "CorrettoProvisioner"]

CORRETTO_BASE_URL = "https://corretto.aws/downloads/latest"

CORRETTO_MAJORS = (8, 17, 21, 25)

# Platform string -> Corretto "<arch>-<os>" and archive extension
_CORRETTO_TARGETS: dict[str, tuple[str, str]] = {
    "linux-x86_64": ("x64-linux", "tar.gz"),
    "linux-arm64": ("aarch64-linux", "tar.gz"),
    "osx-x86_64": ("x64-macos", "tar.gz"),
    "osx-arm64": ("aarch64-macos", "tar.gz"),
    "windows-x86_64": ("x64-windows", "zip"),
    "windows-x86": ("x86-windows", "zip"),
}

# Community JDK 8 builds for hosts Corretto does not cover
_JAVA8_ONLY: dict[str, str] = {
    "linux-arm32": "https://github.com/Mrmayman/get-jdk/releases/download/java8-1/jdk-8u231-linux-arm32-vfp-hflt.tar.gz",
    "linux-x86": "https://github.com/hmsjy2017/get-jdk/releases/download/v8u231/jdk-8u231-linux-i586.tar.gz",
}

ARCHIVES_DIR = ".archives"



def alternateUrl(major: int, platform: Platform) -> str | None:
    """Archive URL for a JDK of exactly `major` on this platform, or None."""
    key = str(platform)
    if key in _CORRETTO_TARGETS:
        if major not in CORRETTO_MAJORS:
            return None
        target, ext = _CORRETTO_TARGETS[key]
        return f"{CORRETTO_BASE_URL}/amazon-corretto-{major}-{target}-jdk.{ext}"
    if major == 8:
        return _JAVA8_ONLY.get(key)
    return None



def _extractTar(archive: Path, dest: Path) -> None:
    with tarfile.open(archive, "r:gz") as tar:
        # "data" refuses absolute paths, links leaving dest and device files
        tar.extractall(dest, filter="data")



def _extractZip(archive: Path, dest: Path) -> None:
    root = dest.resolve()
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            target = (root / info.filename).resolve()
            if target != root and root not in target.parents:
                raise RuntimeProvisionError(f"Archive entry escapes install directory: {info.filename}", path=archive)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(zf.read(info))



def _findJava(installDir: Path, platform: Platform) -> Path | None:
    name = "javaw.exe" if platform.osName == "windows" else "java"
    found = [path for path in installDir.rglob(name) if path.parent.name == "bin" and path.is_file()]
    if not found:
        return None
    # A JDK 8 also ships jre/bin/java; the outermost bin wins
    return min(found, key=lambda path: (len(path.parts), str(path)))



def _releaseVersion(javaHome: Path) -> str:
    release = javaHome / "release"
    if not release.is_file():
        return ""
    for line in release.read_text(encoding="utf-8", errors="replace").splitlines():
        key, _, value = line.partition("=")
        if key.strip() == "JAVA_VERSION":
            return value.strip().strip('"')
    return ""



class CorrettoProvisioner:
    """
    Installs Amazon Corretto JDK archives (or a community JDK 8 build) into
    `java_installs/corretto-<major>/`. Meant to back the Mojang provisioner
    on hosts the Mojang index does not cover, such as linux-arm64.

    Archives carry no published checksum; they are kept under
    `java_installs/.archives/` and dropped when they fail to extract.
    """

    def __init__(self, runtimesDir: Path | str, orchestrator: DownloadOrchestrator) -> None:
        self.runtimesDir = Path(runtimesDir)
        self.orchestrator = orchestrator

    def installDir(self, major: int) -> Path:
        return self.runtimesDir / f"corretto-{major}"

    def isIncomplete(self, major: int) -> bool:
        return (self.installDir(major) / LOCK_FILE).exists()

    async def provision(self, minimumMajor: int, platform: Platform, *, component: str | None = None) -> RuntimeBinary:
        wanted = minimumMajor
        for major, name in RUNTIME_COMPONENTS.items():
            if name == component:
                wanted = max(wanted, major)
        candidates = [major for major in CORRETTO_MAJORS if major >= wanted]
        picked = next(((major, url) for major in candidates if (url := alternateUrl(major, platform))), None)
        if picked is None:
            raise UnsupportedPlatform(platform, minimumMajor, component=component)
        major, url = picked

        archive = self.runtimesDir / ARCHIVES_DIR / url.rsplit("/", 1)[1]
        label = f"corretto-{major}" if "corretto" in url else f"jdk-{major}"
        logger.info("Provisioning %s for %s from '%s'", label, platform, url)
        await self.orchestrator.download([DownloadTask(url=url, destination=archive, label=label)])

        installDir = self.installDir(major)
        if installDir.exists():
            if self.isIncomplete(major):
                logger.warning("Discarding incomplete Java install in '%s'", installDir)
            shutil.rmtree(installDir)
        installDir.mkdir(parents=True)
        lockPath = installDir / LOCK_FILE
        lockPath.write_text("", encoding="utf-8")

        extract = _extractZip if url.endswith(".zip") else _extractTar
        try:
            await asyncio.to_thread(extract, archive, installDir)
        except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as err:
            archive.unlink(missing_ok=True)
            raise RuntimeProvisionError(f"Could not extract '{archive.name}': {err}", path=archive, url=url) from err

        executable = _findJava(installDir, platform)
        if executable is None:
            raise RuntimeProvisionError(f"{label} archive holds no Java executable", path=installDir, url=url)
        lockPath.unlink()

        versionName = _releaseVersion(executable.parent.parent)
        try:
            found = parseJavaVersion(versionName).major if versionName else major
        except ValueError:
            found = major
        logger.info("Installed %s %s at '%s'", label, versionName or "?", executable)
        return RuntimeBinary(majorVersion=found, path=executable, platform=str(platform), version=versionName, component=label)
