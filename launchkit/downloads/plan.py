# launchkit/downloads/plan.py
from __future__ import annotations

import logging
from pathlib import Path

from launchkit.app.paths import LauncherLayout
from launchkit.manifests.assets import AssetIndex
from launchkit.manifests.models import ResolvedManifest
from .tasks import DownloadTask

logger = logging.getLogger(__name__)

__all__ = [
    "buildDownloadPlan",
    "assetIndexPath",
    "assetObjectTasks",
    "loggingConfigPath",
]



def assetIndexPath(layout: LauncherLayout, indexId: str) -> Path:
    return layout.assetsDir / "indexes" / f"{indexId}.json"



def loggingConfigPath(layout: LauncherLayout, manifest: ResolvedManifest) -> Path | None:
    if manifest.loggingConfig is None:
        return None
    return layout.assetsDir / "log_configs" / manifest.loggingConfig.file.id



def buildDownloadPlan(manifest: ResolvedManifest, layout: LauncherLayout, instanceDir: Path) -> list[DownloadTask]:
    """
    Everything a launch needs except the asset objects (those depend on the
    index document, see assetObjectTasks). Library paths are taken verbatim
    from the manifest, under the instance's `libraries/`.
    """
    tasks: list[DownloadTask] = []

    if manifest.clientDownload is not None:
        jarId = manifest.jarVersionId or manifest.baseVersionId
        tasks.append(DownloadTask(
            url=manifest.clientDownload.url,
            destination=layout.clientJar(jarId),
            sha1=manifest.clientDownload.sha1,
            size=manifest.clientDownload.size,
            label=f"{jarId}.jar",
        ))

    librariesDir = instanceDir / "libraries"
    for lib in manifest.libraries:
        if not lib.url:
            # Shipped inside a loader installer; extracted at install time
            logger.debug("Library '%s' has no URL, expecting it on disk", lib.name)
            continue
        tasks.append(DownloadTask(
            url=lib.url,
            destination=librariesDir / lib.path,
            sha1=lib.sha1,
            size=lib.size,
            label=lib.name,
        ))

    if manifest.assetIndex is not None and manifest.assetIndex.url:
        tasks.append(DownloadTask(
            url=manifest.assetIndex.url,
            destination=assetIndexPath(layout, manifest.assetIndex.id),
            sha1=manifest.assetIndex.sha1,
            size=manifest.assetIndex.size,
            label=f"asset index {manifest.assetIndex.id}",
        ))

    logConfig = loggingConfigPath(layout, manifest)
    if logConfig is not None and manifest.loggingConfig is not None:
        tasks.append(DownloadTask(
            url=manifest.loggingConfig.file.url,
            destination=logConfig,
            sha1=manifest.loggingConfig.file.sha1,
            size=manifest.loggingConfig.file.size,
            label=manifest.loggingConfig.file.id,
        ))
    return tasks



def assetObjectTasks(index: AssetIndex, layout: LauncherLayout, gameDir: Path | None = None) -> list[DownloadTask]:
    """
    One task per distinct object into `assets/objects/`, plus, for legacy
    indexes, one per name into the virtual/resources directory.
    """
    objectsDir = layout.assetsDir / "objects"
    tasks = [
        DownloadTask(url=obj.url, destination=objectsDir / obj.relativePath, sha1=obj.sha1, size=obj.size, label=obj.name)
        for obj in index.uniqueObjects()
    ]
    legacyDir = index.legacyDirectory(layout.assetsDir, gameDir or layout.root)
    if legacyDir is not None:
        # Same sha1 as the object task: served from the store, no second transfer
        for name in sorted(index.objects):
            obj = index.objects[name]
            tasks.append(DownloadTask(url=obj.url, destination=legacyDir / name, sha1=obj.sha1, size=obj.size, label=name))
    return tasks
