# launchkit/app/paths.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

from launchkit.app.settings import settings

__all__ = ["LauncherLayout", "defaultLayout"]

# ------------------------------------------------------------------ #
# Layout under the launcher root
# ------------------------------------------------------------------ #
# store/objects/<ab>/<sha1>           # content-addressed cache (shared)
# assets/indexes/<id>.json            # asset indexes (shared)
# assets/objects/<ab>/<sha1>          # asset objects (shared)
# versions/<id>/<id>.json             # cached version descriptors
# versions/<id>/<id>.jar              # client jars
# java_installs/<component>/          # provisioned runtimes (shared)
# java_installs/runtimes.json5        # installed runtime registry
# instances/<name>/config.json        # per-instance settings
# instances/<name>/loader.json        # installed loader patch, if any
# instances/<name>/libraries/         # libraries, relative paths verbatim
# instances/<name>/libraries/natives/ # extracted natives (instance-scoped)
# instances/<name>/.minecraft/        # game working directory
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class LauncherLayout:
    root: Path

    @property
    def storeDir(self) -> Path:
        return self.root / "store"

    @property
    def assetsDir(self) -> Path:
        return self.root / "assets"

    @property
    def versionsDir(self) -> Path:
        return self.root / "versions"

    @property
    def runtimesDir(self) -> Path:
        return self.root / "java_installs"

    @property
    def instancesDir(self) -> Path:
        return self.root / "instances"

    def versionDir(self, versionId: str) -> Path:
        return self.versionsDir / versionId

    def clientJar(self, versionId: str) -> Path:
        return self.versionDir(versionId) / f"{versionId}.jar"



def defaultLayout() -> LauncherLayout:
    return LauncherLayout(Path(settings("paths.root")))
