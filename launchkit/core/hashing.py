# launchkit/core/hashing.py
from __future__ import annotations

import hashlib
from pathlib import Path

__all__ = ["sha1Bytes", "sha1File", "isSha1"]

_HEX = frozenset("0123456789abcdef")



def sha1Bytes(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()



def sha1File(path: str | Path) -> str:
    """SHA-1 hex digest of a file, read in chunks."""
    sha = hashlib.sha1()
    with Path(path).open("rb") as file:
        for chunk in iter(lambda: file.read(65536), b""):
            sha.update(chunk)
    return sha.hexdigest()



def isSha1(value: str | None) -> bool:
    return isinstance(value, str) and len(value) == 40 and set(value) <= _HEX
