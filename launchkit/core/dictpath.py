# launchkit/core/dictpath.py
from __future__ import annotations
from typing import Any
from collections.abc import Mapping, MutableMapping

__all__ = ["getByPath", "setByPath", "deleteByPath"]

_MISSING = object()



def _splitPath(path: str) -> list[str]:
    """Split "game.windowWidth" into ["game", "windowWidth"]; empty segments are rejected."""
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    parts = path.split(".")
    if any(part == "" for part in parts):
        raise ValueError(f"Path '{path}' contains empty segment(s)")
    return parts



def getByPath(data: Mapping[str, Any] | None, path: str, default: Any = None) -> Any:
    """Returns value at dotted `path`, or `default` when any segment is missing."""
    node: Any = data
    for part in _splitPath(path):
        if not isinstance(node, Mapping):
            return default
        node = node.get(part, _MISSING)
        if node is _MISSING:
            return default
    return node



def setByPath(data: MutableMapping[str, Any], path: str, value: Any, *, createIfMissing: bool = True) -> None:
    parts = _splitPath(path)
    node: Any = data
    for part in parts[:-1]:
        child = node.get(part)
        if child is None:
            if not createIfMissing:
                raise KeyError(f"Missing segment '{part}' in path '{path}'")
            child = {}
            node[part] = child
        elif not isinstance(child, MutableMapping):
            raise TypeError(f"Segment '{part}' in path '{path}' is not an object")
        node = child
    node[parts[-1]] = value



def deleteByPath(data: MutableMapping[str, Any], path: str, *, pruneEmptyParents: bool = False) -> bool:
    """
    Removes the value at `path`. Returns False when nothing was there.
    With pruneEmptyParents=True, parents left empty by the removal are dropped too.
    """
    parts = _splitPath(path)
    trail: list[tuple[MutableMapping[str, Any], str]] = []
    node: Any = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, MutableMapping):
            return False
        trail.append((node, part))
        node = child

    if parts[-1] not in node:
        return False
    del node[parts[-1]]

    if pruneEmptyParents:
        for parent, key in reversed(trail):
            if parent[key]:
                break
            del parent[key]
    return True
