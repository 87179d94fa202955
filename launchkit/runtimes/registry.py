# launchkit/runtimes/registry.py
from __future__ import annotations

import logging
from pathlib import Path

from launchkit.config.providers import FileProvider
from .models import RuntimeBinary

logger = logging.getLogger(__name__)

__all__ = ["RuntimeRegistry"]



class RuntimeRegistry:
    """
    Installed runtimes shared by every instance, persisted as
    `java_installs/runtimes.json5`: {"runtimes": [RuntimeBinary...]}.
    Entries whose executable disappeared are skipped on read.
    """

    def __init__(self, path: Path | str) -> None:
        self._file = FileProvider(path)

    @property
    def path(self) -> Path:
        return self._file.path

    def _entries(self) -> list[RuntimeBinary]:
        out: list[RuntimeBinary] = []
        for raw in self._file.get("runtimes") or []:
            try:
                out.append(RuntimeBinary.fromDict(raw))
            except (KeyError, TypeError, ValueError) as err:
                logger.warning("Ignoring malformed runtime entry in '%s': %s", self.path, err)
        return out

    def all(self, *, platform: str | None = None) -> list[RuntimeBinary]:
        return [
            runtime for runtime in self._entries()
            if runtime.path.is_file() and (platform is None or runtime.platform == platform)
        ]

    def register(self, runtime: RuntimeBinary) -> None:
        entries = [entry for entry in self._entries() if entry.path != runtime.path]
        entries.append(runtime)
        self._file.set("runtimes", [entry.toDict() for entry in entries])
        self._file.save()
        logger.info("Registered Java %s at '%s'", runtime.version or runtime.majorVersion, runtime.path)

    def forget(self, path: Path | str) -> bool:
        path = Path(path)
        entries = self._entries()
        kept = [entry for entry in entries if entry.path != path]
        if len(kept) == len(entries):
            return False
        self._file.set("runtimes", [entry.toDict() for entry in kept])
        self._file.save()
        return True
