# launchkit/launch/natives.py
from __future__ import annotations

import logging
import zipfile
from collections.abc import Iterable
from pathlib import Path

from launchkit.core.errors import LauncherError
from launchkit.manifests.models import ResolvedLibrary

logger = logging.getLogger(__name__)

__all__ = ["extractNatives", "NativesExtractionError"]

_ALWAYS_EXCLUDED = ("META-INF/",)



class NativesExtractionError(LauncherError):
    pass



def extractNatives(libraries: Iterable[ResolvedLibrary], librariesDir: Path, nativesDir: Path) -> list[Path]:
    """
    Unpack native jars (pre-1.19 style `natives` libraries) into the
    instance's natives directory, skipping `extract.exclude` prefixes.
    Non-native libraries are ignored. Returns the written files.
    """
    nativesDir.mkdir(parents=True, exist_ok=True)
    root = nativesDir.resolve()
    written: list[Path] = []
    for lib in libraries:
        if not lib.native:
            continue
        jarPath = librariesDir / lib.path
        excluded = _ALWAYS_EXCLUDED + lib.extractExclude
        try:
            with zipfile.ZipFile(jarPath) as archive:
                for info in archive.infolist():
                    if info.is_dir() or info.filename.startswith(excluded):
                        continue
                    target = (root / info.filename).resolve()
                    if root not in target.parents:
                        raise NativesExtractionError(f"{lib.name}: entry escapes natives directory: {info.filename}", library=lib.name)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(archive.read(info))
                    written.append(target)
        except FileNotFoundError as err:
            raise NativesExtractionError(f"Native library {lib.name} missing at '{jarPath}'", library=lib.name, path=jarPath) from err
        except zipfile.BadZipFile as err:
            raise NativesExtractionError(f"Native library {lib.name} is not a valid jar", library=lib.name, path=jarPath) from err
    if written:
        logger.debug("Extracted %d native files into '%s'", len(written), nativesDir)
    return written
