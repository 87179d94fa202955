# launchkit/loaders/processors.py
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import zipfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from launchkit.core.hashing import sha1File
from launchkit.downloads.orchestrator import DownloadOrchestrator
from launchkit.downloads.tasks import CancellationToken, DownloadTask
from launchkit.manifests.models import parseMavenCoordinate
from .variants import LoaderInstallError, LoaderPatch

logger = logging.getLogger(__name__)

__all__ = ["ProcessorRunner", "ProcessorFailed", "readMainClass", "INSTALLER_FILE", "MARKER_FILE"]

INSTALLER_FILE = "installer.jar"
MARKER_FILE = "processors.json"
SIDE = "client"

_TOKEN_RE = re.compile(r"\{([A-Za-z0-9_]+)\}")
_OUTPUT_TAIL = 20



class ProcessorFailed(LoaderInstallError):
    """A client patching processor exited non-zero or produced the wrong output."""



def readMainClass(jarPath: Path) -> str:
    """`Main-Class` from a jar manifest (continuation lines joined)."""
    try:
        with zipfile.ZipFile(jarPath) as jar:
            text = jar.read("META-INF/MANIFEST.MF").decode("utf-8", errors="replace")
    except (FileNotFoundError, KeyError, zipfile.BadZipFile) as err:
        raise LoaderInstallError(f"Processor jar '{jarPath.name}' has no readable manifest", path=jarPath) from err
    unfolded = re.sub(r"\r?\n ", "", text)
    for line in unfolded.splitlines():
        key, _, value = line.partition(":")
        if key.strip() == "Main-Class" and value.strip():
            return value.strip()
    raise LoaderInstallError(f"Processor jar '{jarPath.name}' declares no Main-Class", path=jarPath)



def _libraryPath(librariesDir: Path, coordinate: str) -> Path:
    try:
        return librariesDir / parseMavenCoordinate(coordinate).path()
    except ValueError as err:
        raise LoaderInstallError(f"Bad library reference {coordinate!r} in install profile", entry=coordinate) from err



class ProcessorRunner:
    """
    Runs the client-side processors of a Forge/NeoForge install profile:
    small Java tools that deobfuscate and binary-patch the vanilla client
    into the jar the loader launches with.

    Work happens in the instance's `loader/` directory, next to the
    persisted installer jar. A `processors.json` marker records the loader
    version the processors last completed for; processors whose outputs
    already match their checksums are not run again.
    """

    def __init__(self, orchestrator: DownloadOrchestrator) -> None:
        self.orchestrator = orchestrator

    async def run(
        self,
        patch: LoaderPatch,
        *,
        java: Path,
        clientJar: Path,
        instanceDir: Path,
        librariesDir: Path,
        workDir: Path,
        token: CancellationToken | None = None,
    ) -> int:
        """Returns how many processors were executed (0 when already done)."""
        profile = patch.profile or {}
        processors = [item for item in profile.get("processors") or [] if SIDE in (item.get("sides") or [SIDE])]
        marker = workDir / MARKER_FILE
        if self._completed(marker, patch):
            logger.debug("Processors for %s %s already ran", patch.kind.value, patch.loaderVersion)
            return 0
        if not processors:
            return 0

        installer = workDir / INSTALLER_FILE
        if not installer.is_file():
            raise LoaderInstallError(f"Installer jar missing at '{installer}', reinstall the loader", path=installer)

        await self.orchestrator.download(self._libraryTasks(profile, librariesDir), token)
        data = self._dataMap(profile, patch, installer, clientJar, instanceDir, librariesDir, workDir)

        executed = 0
        for index, processor in enumerate(processors, start=1):
            if token is not None:
                token.raiseIfCancelled()
            outputs = self._outputs(processor, data, librariesDir)
            if outputs and all(path.is_file() and sha1File(path) == sha1 for path, sha1 in outputs.items()):
                logger.debug("Processor %d/%d (%s): outputs present, skipping", index, len(processors), processor.get("jar"))
                continue
            await self._execute(processor, data, java, librariesDir, workDir, index, len(processors))
            for path, sha1 in outputs.items():
                actual = sha1File(path) if path.is_file() else None
                if actual != sha1:
                    raise ProcessorFailed(
                        f"Processor {processor.get('jar')} produced '{path.name}' with checksum {actual}, expected {sha1}",
                        path=path, expected=sha1, actual=actual,
                    )
            executed += 1

        marker.write_text(json.dumps({"kind": patch.kind.value, "loaderVersion": patch.loaderVersion}), encoding="utf-8")
        logger.info("Ran %d of %d processors for %s %s", executed, len(processors), patch.kind.value, patch.loaderVersion)
        return executed

    @staticmethod
    def _completed(marker: Path, patch: LoaderPatch) -> bool:
        if not marker.is_file():
            return False
        try:
            done = json.loads(marker.read_text(encoding="utf-8"))
        except ValueError:
            return False
        return isinstance(done, dict) and done.get("kind") == patch.kind.value and done.get("loaderVersion") == patch.loaderVersion

    @staticmethod
    def _libraryTasks(profile: Mapping[str, Any], librariesDir: Path) -> list[DownloadTask]:
        tasks: list[DownloadTask] = []
        for lib in profile.get("libraries") or []:
            artifact = (lib.get("downloads") or {}).get("artifact") or {}
            url = artifact.get("url")
            if not url:
                # Shipped inside the installer and already extracted
                continue
            relative = artifact.get("path") or parseMavenCoordinate(lib["name"]).path()
            tasks.append(DownloadTask(
                url=url,
                destination=librariesDir / relative,
                sha1=artifact.get("sha1") or None,
                size=artifact.get("size"),
                label=lib.get("name", relative),
            ))
        return tasks

    def _dataMap(
        self,
        profile: Mapping[str, Any],
        patch: LoaderPatch,
        installer: Path,
        clientJar: Path,
        instanceDir: Path,
        librariesDir: Path,
        workDir: Path,
    ) -> dict[str, str]:
        data = {
            "SIDE": SIDE,
            "MINECRAFT_JAR": str(clientJar),
            "MINECRAFT_VERSION": str(profile.get("minecraft") or patch.gameVersion),
            "ROOT": str(instanceDir),
            "INSTALLER": str(installer),
            "LIBRARY_DIR": str(librariesDir),
        }
        root = workDir.resolve()
        with zipfile.ZipFile(installer) as archive:
            for key, sides in (profile.get("data") or {}).items():
                value = sides.get(SIDE) if isinstance(sides, Mapping) else sides
                if not isinstance(value, str) or not value:
                    continue
                if value.startswith("[") and value.endswith("]"):
                    data[key] = str(_libraryPath(librariesDir, value[1:-1]))
                elif value.startswith("'") and value.endswith("'"):
                    data[key] = value[1:-1]
                elif value.startswith("/"):
                    target = (root / value.lstrip("/")).resolve()
                    if root not in target.parents:
                        raise LoaderInstallError(f"Installer data entry escapes the loader directory: {value}", entry=value)
                    try:
                        content = archive.read(value.lstrip("/"))
                    except KeyError as err:
                        raise LoaderInstallError(f"Installer has no data entry '{value}'", entry=value) from err
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(content)
                    data[key] = str(target)
                else:
                    data[key] = value
        return data

    @staticmethod
    def _substitute(value: str, data: Mapping[str, str], librariesDir: Path) -> str:
        if value.startswith("[") and value.endswith("]"):
            return str(_libraryPath(librariesDir, value[1:-1]))
        if value.startswith("'") and value.endswith("'"):
            return value[1:-1]

        def _replace(match: re.Match[str]) -> str:
            key = match.group(1)
            if key not in data:
                raise LoaderInstallError(f"Install profile refers to unknown data key {{{key}}}", key=key)
            return data[key]

        return _TOKEN_RE.sub(_replace, value)

    def _outputs(self, processor: Mapping[str, Any], data: Mapping[str, str], librariesDir: Path) -> dict[Path, str]:
        out: dict[Path, str] = {}
        for key, sha1 in (processor.get("outputs") or {}).items():
            out[Path(self._substitute(key, data, librariesDir))] = self._substitute(sha1, data, librariesDir).lower()
        return out

    async def _execute(
        self,
        processor: Mapping[str, Any],
        data: Mapping[str, str],
        java: Path,
        librariesDir: Path,
        workDir: Path,
        index: int,
        total: int,
    ) -> None:
        jarName = str(processor.get("jar") or "")
        jarPath = _libraryPath(librariesDir, jarName)
        mainClass = readMainClass(jarPath)
        classpath = [str(jarPath), *(str(_libraryPath(librariesDir, entry)) for entry in processor.get("classpath") or [])]
        args = [self._substitute(str(arg), data, librariesDir) for arg in processor.get("args") or []]

        logger.info("Processor %d/%d: %s", index, total, jarName)
        try:
            proc = await asyncio.create_subprocess_exec(
                str(java), "-cp", os.pathsep.join(classpath), mainClass, *args,
                cwd=str(workDir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as err:
            raise ProcessorFailed(f"Could not start '{java}' for processor {jarName}: {err}", path=java) from err
        output, _ = await proc.communicate()
        lines = output.decode("utf-8", errors="replace").splitlines()
        for line in lines:
            logger.debug("[%s] %s", jarName, line)
        if proc.returncode != 0:
            tail = "\n".join(lines[-_OUTPUT_TAIL:])
            raise ProcessorFailed(
                f"Processor {jarName} exited with code {proc.returncode}:\n{tail}",
                processor=jarName, exitCode=proc.returncode,
            )
