# launchkit/pipeline.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from launchkit.app.paths import LauncherLayout, defaultLayout
from launchkit.content.store import ContentStore
from launchkit.core.logging import logContext
from launchkit.downloads.orchestrator import DownloadOrchestrator
from launchkit.downloads.plan import assetIndexPath, assetObjectTasks, buildDownloadPlan, loggingConfigPath
from launchkit.downloads.tasks import CancellationToken
from launchkit.instances.manager import InstanceManager
from launchkit.launch.assembler import Account, LaunchSettings, LaunchSpec, assembleLaunch
from launchkit.launch.natives import extractNatives
from launchkit.loaders.installer import LoaderInstaller, defaultHandlers
from launchkit.loaders.variants import FetchBytes, FetchJson
from launchkit.manifests.assets import AssetIndex, parseAssetIndex
from launchkit.manifests.models import ResolvedManifest
from launchkit.manifests.resolver import ManifestResolver
from launchkit.manifests.sources import CacheSource, RegistrySource
from launchkit.platform.host import Platform, currentPlatform
from launchkit.process.supervisor import ProcessSupervisor
from launchkit.runtimes.models import RuntimeBinary
from launchkit.runtimes.corretto import CorrettoProvisioner
from launchkit.runtimes.mojang import MojangRuntimeProvisioner
from launchkit.runtimes.registry import RuntimeRegistry
from launchkit.runtimes.selector import FallbackProvisioner, RuntimeProvisioner, RuntimeSelector

logger = logging.getLogger(__name__)

__all__ = ["Launcher", "PreparedLaunch"]



@dataclass(frozen=True)
class PreparedLaunch:
    instanceName: str
    manifest: ResolvedManifest
    runtime: RuntimeBinary
    assetIndex: AssetIndex | None = None



class Launcher:
    """
    Wires the components together for front ends: instance config ->
    resolved manifest -> downloads -> runtime -> launch spec -> process.
    Every collaborator is built once here and shared, the content store
    in particular.
    """

    def __init__(
        self,
        layout: LauncherLayout | None = None,
        *,
        platform: Platform | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        fetchJson: FetchJson | None = None,
        fetchBytes: FetchBytes | None = None,
        provisioner: RuntimeProvisioner | None = None,
    ) -> None:
        self.layout = layout or defaultLayout()
        self.platform = platform or currentPlatform()
        self.store = ContentStore(self.layout.storeDir)
        self.cache = CacheSource(self.layout.versionsDir)
        self.registry = RegistrySource(fetchBytes=fetchBytes)
        self.resolver = ManifestResolver([self.registry], platform=self.platform, cache=self.cache)
        self.instances = InstanceManager(self.layout)
        self.downloads = DownloadOrchestrator(self.store, transport=transport)
        self.loaders = LoaderInstaller(
            self.resolver, self.instances, handlers=defaultHandlers(fetchJson, fetchBytes), downloads=self.downloads,
        )
        self.runtimes = RuntimeSelector(
            RuntimeRegistry(self.layout.runtimesDir / "runtimes.json5"),
            provisioner or FallbackProvisioner(
                MojangRuntimeProvisioner(self.layout.runtimesDir, self.downloads, fetchJson=fetchJson),
                CorrettoProvisioner(self.layout.runtimesDir, self.downloads),
            ),
            platform=self.platform,
        )

    async def prepare(self, instanceName: str, *, token: CancellationToken | None = None) -> PreparedLaunch:
        """Resolve and fetch everything the instance needs. Nothing is spawned."""
        with logContext(instance=instanceName):
            config = self.instances.load(instanceName)
            manifest = await self.loaders.resolveFor(instanceName)
            instanceDir = self.instances.instanceDir(instanceName)

            await self.downloads.download(buildDownloadPlan(manifest, self.layout, instanceDir), token)

            index = None
            if manifest.assetIndex is not None:
                indexFile = assetIndexPath(self.layout, manifest.assetIndex.id)
                index = parseAssetIndex(manifest.assetIndex.id, indexFile.read_bytes())
                objects = assetObjectTasks(index, self.layout, self.instances.gameDir(instanceName))
                await self.downloads.download(objects, token)

            await asyncio.to_thread(
                extractNatives, manifest.nativeLibraries(),
                self.instances.librariesDir(instanceName), self.instances.nativesDir(instanceName),
            )

            if config.javaOverride:
                runtime = RuntimeBinary(
                    majorVersion=manifest.javaMajorVersion,
                    path=Path(config.javaOverride),
                    platform=str(self.platform),
                    version="override",
                )
            else:
                runtime = await self.runtimes.select(manifest.javaMajorVersion, component=manifest.javaComponent)

            jarId = manifest.jarVersionId or manifest.baseVersionId
            await self.loaders.runProcessors(instanceName, runtime.path, self.layout.clientJar(jarId), token)
            return PreparedLaunch(instanceName, manifest, runtime, index)

    def assemble(self, prepared: PreparedLaunch, account: Account | None) -> LaunchSpec:
        name = prepared.instanceName
        config = self.instances.load(name)
        effective = self.instances.effectiveSettings(name)
        gameDir = self.instances.gameDir(name)
        manifest = prepared.manifest
        jarId = manifest.jarVersionId or manifest.baseVersionId
        gameAssetsDir = prepared.assetIndex.legacyDirectory(self.layout.assetsDir, gameDir) if prepared.assetIndex else None
        settings = LaunchSettings(
            gameDir=gameDir,
            assetsDir=self.layout.assetsDir,
            librariesDir=self.instances.librariesDir(name),
            nativesDir=self.instances.nativesDir(name),
            clientJar=self.layout.clientJar(jarId),
            account=account,
            ramInMb=int(effective["ramInMb"] or 2048),
            windowWidth=effective["windowWidth"],
            windowHeight=effective["windowHeight"],
            javaArgs=tuple(effective["javaArgs"] or ()),
            gameArgs=tuple(effective["gameArgs"] or ()),
            mainClassOverride=config.mainClassOverride,
            loggingConfigPath=loggingConfigPath(self.layout, manifest),
            gameAssetsDir=gameAssetsDir,
            launchPrefix=self.instances.launchPrefix(name),
        )
        return assembleLaunch(manifest, prepared.runtime, settings)

    async def launch(self, instanceName: str, account: Account | None, *, token: CancellationToken | None = None) -> ProcessSupervisor:
        prepared = await self.prepare(instanceName, token=token)
        spec = self.assemble(prepared, account)
        supervisor = ProcessSupervisor(spec, instanceName=instanceName)
        await supervisor.start()
        return supervisor
