# launchkit/config/providers.py
from __future__ import annotations
import copy
import os
from typing import Any
from collections.abc import Mapping
from pathlib import Path
import logging

import json5

from launchkit.core.dictpath import getByPath, setByPath, deleteByPath
from .types import ConfigProvider

logger = logging.getLogger(__name__)

__all__ = ["OverrideProvider", "DefaultsProvider", "FileProvider", "readDocument"]



def readDocument(path: Path) -> dict[str, Any] | None:
    """
    Parse a settings document (JSON or JSON5). Returns None when the file is
    missing or unparsable; a document that is not an object is a TypeError.
    """
    if not path.exists():
        return None
    if not path.is_file():
        raise IsADirectoryError(f"Settings document '{path}' is a directory")

    text = path.read_text(encoding="utf-8")
    try:
        parsed = json5.loads(text) if text.strip() else {}
    except ValueError as err:
        logger.warning("Settings document '%s': parse failed: %s", path, err)
        return None

    if not isinstance(parsed, Mapping):
        raise TypeError(f"Settings document '{path}' holds a {type(parsed).__name__}, expected an object")
    return dict(parsed)



# ---- In-memory layers ---- #

class OverrideProvider(ConfigProvider):
    """
    Volatile, writable, topmost layer (never saved to disk). Used for
    one-off launch overrides such as a forced window size.
    """
    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(data or {}))

    def get(self, key: str) -> Any | None:
        return getByPath(self._data, key, None)

    def set(self, key: str, value: Any) -> None:
        if value is None:
            deleteByPath(self._data, key, pruneEmptyParents=True)
            return
        setByPath(self._data, key, copy.deepcopy(value), createIfMissing=True)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self) -> None:
        return # Nothing to do



class DefaultsProvider(ConfigProvider):
    """Read-only bottom layer: a snapshot of shipped or inherited defaults."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise TypeError(f"Defaults must be a mapping, got {type(data).__name__}")
        self._data: dict[str, Any] = copy.deepcopy(dict(data))

    def get(self, key: str) -> Any | None:
        return getByPath(self._data, key, None)

    def set(self, key: str, value: Any) -> None:
        raise RuntimeError(f"Cannot write '{key}': defaults are read-only")

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self) -> None:
        pass



# ---- File-backed layer ---- #

class FileProvider(ConfigProvider):
    """
    Writable layer persisted to a .json or .json5 file: the user settings
    file, every instance's `config.json` and the runtime registry.

    A missing or unparsable file starts empty (the next save() rewrites it).
    `.json` files are saved as strict JSON so other tools can read them.
    """
    def __init__(self, path: str | Path, *, readOnly: bool = False) -> None:
        self.path = Path(path)
        self.readOnly = readOnly
        self._data: dict[str, Any] = {}
        self.reload()

    def _checkWritable(self) -> None:
        if self.readOnly:
            raise RuntimeError(f"'{self.path}' was opened read-only")

    def reload(self) -> None:
        document = readDocument(self.path)
        if document is None:
            logger.debug("'%s' not loaded, starting empty", self.path)
        self._data = document or {}

    def get(self, key: str) -> Any | None:
        return getByPath(self._data, key, None)

    def set(self, key: str, value: Any) -> None:
        self._checkWritable()
        if value is None:
            deleteByPath(self._data, key, pruneEmptyParents=True)
            return
        setByPath(self._data, key, copy.deepcopy(value), createIfMissing=True)

    def replace(self, data: Mapping[str, Any]) -> None:
        self._checkWritable()
        self._data = copy.deepcopy(dict(data))

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self) -> None:
        self._checkWritable()
        strict = self.path.suffix != ".json5"
        out = json5.dumps(self._data, indent=2, quote_keys=True, trailing_commas=not strict)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmpPath = self.path.with_suffix(self.path.suffix + ".tmp")
        tmpPath.write_text(out.rstrip("\n") + "\n", encoding="utf-8")
        os.replace(tmpPath, self.path)
        logger.debug("Saved %d top-level keys to '%s'", len(self._data), self.path)
