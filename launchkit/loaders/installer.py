# launchkit/loaders/installer.py
from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from launchkit.core.logging import logContext
from launchkit.downloads.orchestrator import DownloadOrchestrator
from launchkit.downloads.tasks import CancellationToken
from launchkit.instances.manager import InstanceManager
from launchkit.manifests.models import ResolvedManifest
from launchkit.manifests.resolver import ManifestResolver, mergeDescriptor, parseDescriptor
from .fabric import fabricHandler, quiltHandler
from .forge import ForgeHandler, NeoForgeHandler
from .processors import INSTALLER_FILE, ProcessorRunner
from .variants import (
    FetchBytes,
    FetchJson,
    LoaderHandler,
    LoaderInstallError,
    LoaderKind,
    LoaderPatch,
    LoaderSelection,
)

logger = logging.getLogger(__name__)

__all__ = ["LoaderInstaller", "defaultHandlers", "applyPatch"]



def defaultHandlers(fetchJson: FetchJson | None = None, fetchBytes: FetchBytes | None = None) -> dict[LoaderKind, LoaderHandler]:
    return {
        LoaderKind.FABRIC: fabricHandler(fetchJson),
        LoaderKind.QUILT: quiltHandler(fetchJson),
        LoaderKind.FORGE: ForgeHandler(fetchJson=fetchJson, fetchBytes=fetchBytes),
        LoaderKind.NEOFORGE: NeoForgeHandler(fetchJson=fetchJson, fetchBytes=fetchBytes),
    }



def applyPatch(base: ResolvedManifest, patch: LoaderPatch) -> ResolvedManifest:
    """Merge a loader patch over the base manifest; loader entries win on key collision."""
    descriptor = parseDescriptor(patch.descriptor, versionId=patch.descriptor.get("id"))
    return mergeDescriptor(base, descriptor, base.platform)



class LoaderInstaller:
    """
    Applies one loader kind to an instance. At most one loader is active:
    installing writes `loader.json` over whatever was there, uninstalling
    removes it. The handler table covers every LoaderKind.

    Loaders that patch the client (Forge 1.13+, NeoForge) keep their
    installer jar in `loader/`; runProcessors() needs a download
    orchestrator for the processor libraries.
    """

    def __init__(
        self,
        resolver: ManifestResolver,
        instances: InstanceManager,
        *,
        handlers: Mapping[LoaderKind, LoaderHandler] | None = None,
        downloads: DownloadOrchestrator | None = None,
    ) -> None:
        self.resolver = resolver
        self.instances = instances
        self.downloads = downloads
        self.handlers = dict(handlers) if handlers is not None else defaultHandlers()
        missing = [kind.value for kind in LoaderKind if kind not in self.handlers]
        if missing:
            raise ValueError(f"No loader handler for: {', '.join(missing)}")

    async def install(self, instanceName: str, selection: LoaderSelection) -> ResolvedManifest:
        config = self.instances.load(instanceName)
        with logContext(instance=instanceName, loader=f"{selection.kind.value}-{selection.version}"):
            base = await self.resolver.resolve(config.versionId)
            handler = self.handlers[selection.kind]
            # Raises LoaderVersionIncompatible before anything is written
            patch = await handler.fetchPatch(base.baseVersionId, selection.version)
            manifest = applyPatch(base, patch)

            self._writeEmbedded(instanceName, patch)
            self._writeInstaller(instanceName, patch)
            self._writePatch(instanceName, patch)
            config.loader = selection
            self.instances.save(instanceName, config)
            logger.info(
                "Installed %s %s on '%s': main class %s, %d libraries",
                selection.kind.value, selection.version, instanceName, manifest.mainClass, len(manifest.libraries),
            )
            return manifest

    async def uninstall(self, instanceName: str) -> bool:
        """Back to the vanilla resolution. False (no error) when nothing was installed."""
        config = self.instances.load(instanceName)
        path = self.instances.loaderPatchPath(instanceName)
        hadPatch = path.is_file()
        if hadPatch:
            path.unlink()
        loaderDir = self.instances.loaderDir(instanceName)
        if loaderDir.is_dir():
            shutil.rmtree(loaderDir)
        if config.loader is not None:
            config.loader = None
            self.instances.save(instanceName, config)
            hadPatch = True
        if hadPatch:
            logger.info("Removed loader from '%s'", instanceName)
        return hadPatch

    def installedPatch(self, instanceName: str) -> LoaderPatch | None:
        path = self.instances.loaderPatchPath(instanceName)
        if not path.is_file():
            return None
        try:
            return LoaderPatch.fromDict(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, KeyError, TypeError) as err:
            raise LoaderInstallError(f"Loader patch of '{instanceName}' is unreadable: {err}", instance=instanceName, path=path) from err

    async def resolveFor(self, instanceName: str) -> ResolvedManifest:
        """The manifest an instance launches with: base resolution plus its loader patch."""
        config = self.instances.load(instanceName)
        base = await self.resolver.resolve(config.versionId)
        patch = self.installedPatch(instanceName)
        if patch is None:
            return base
        return applyPatch(base, patch)

    async def runProcessors(
        self,
        instanceName: str,
        java: Path,
        clientJar: Path,
        token: CancellationToken | None = None,
    ) -> int:
        """
        Run the installed loader's client processors once per loader
        version. Returns how many ran; 0 for loaders without processors.
        """
        patch = self.installedPatch(instanceName)
        if patch is None or not patch.hasProcessors:
            return 0
        if self.downloads is None:
            raise LoaderInstallError("Running installer processors needs a download orchestrator", instance=instanceName)
        with logContext(instance=instanceName, loader=f"{patch.kind.value}-{patch.loaderVersion}"):
            return await ProcessorRunner(self.downloads).run(
                patch,
                java=java,
                clientJar=clientJar,
                instanceDir=self.instances.instanceDir(instanceName),
                librariesDir=self.instances.librariesDir(instanceName),
                workDir=self.instances.loaderDir(instanceName),
                token=token,
            )

    # ----- Persistence -----

    def _writePatch(self, instanceName: str, patch: LoaderPatch) -> None:
        path = self.instances.loaderPatchPath(instanceName)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmpPath = path.with_suffix(".json.tmp")
        tmpPath.write_text(json.dumps(patch.toDict(), indent=2), encoding="utf-8")
        os.replace(tmpPath, path)

    def _writeInstaller(self, instanceName: str, patch: LoaderPatch) -> None:
        # A new loader starts from a clean work directory
        loaderDir = self.instances.loaderDir(instanceName)
        if loaderDir.is_dir():
            shutil.rmtree(loaderDir)
        if patch.installer is None:
            return
        loaderDir.mkdir(parents=True)
        _atomicWrite(loaderDir / INSTALLER_FILE, patch.installer)

    def _writeEmbedded(self, instanceName: str, patch: LoaderPatch) -> None:
        librariesDir = self.instances.librariesDir(instanceName).resolve()
        for relative, data in patch.embedded.items():
            target = (librariesDir / relative).resolve()
            if librariesDir not in target.parents:
                raise LoaderInstallError(f"Installer entry escapes the libraries directory: {relative}", entry=relative)
            target.parent.mkdir(parents=True, exist_ok=True)
            _atomicWrite(target, data)
        if patch.embedded:
            logger.debug("Extracted %d bundled artifacts into '%s'", len(patch.embedded), librariesDir)



def _atomicWrite(target: Path, data: bytes) -> None:
    tmpPath = target.with_name(f".{target.name}.part")
    tmpPath.write_bytes(data)
    os.replace(tmpPath, target)
