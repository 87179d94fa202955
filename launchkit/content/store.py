# launchkit/content/store.py
from __future__ import annotations

import asyncio
import logging
import os
import secrets
import shutil
import tempfile
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

from launchkit.core.errors import LauncherError
from launchkit.core.hashing import isSha1, sha1Bytes, sha1File

logger = logging.getLogger(__name__)

__all__ = ["ContentStore", "ChecksumMismatch"]

_TMP_SUFFIX = ".part"



class ChecksumMismatch(LauncherError):
    """Content did not hash to the checksum it was stored or requested under."""

    def __init__(self, expected: str, actual: str, *, path: Path | None = None) -> None:
        super().__init__(f"Checksum mismatch: expected {expected}, got {actual}", expected=expected, actual=actual, path=path)
        self.expected = expected
        self.actual = actual
        self.path = path



class ContentStore:
    """
    Content-addressed file cache shared by every instance.

    Objects live at `<root>/objects/<sha1[:2]>/<sha1>`. Every write goes to a
    temp file in the same directory, is verified, then renamed into place, so
    readers only ever see complete, valid objects. Writers of the same key
    serialize on `lock(checksum)`; the store instance is the owner of those
    locks, so pass one instance to every collaborator.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.objectsDir = self.root / "objects"
        self._locks: dict[str, asyncio.Lock] = {}
        self._lockUsers: dict[str, int] = {}

    # ----- Paths -----

    def pathFor(self, checksum: str) -> Path:
        checksum = self._normalize(checksum)
        return self.objectsDir / checksum[:2] / checksum

    @staticmethod
    def _normalize(checksum: str) -> str:
        value = str(checksum).strip().lower()
        if not isSha1(value):
            raise ValueError(f"Not a SHA-1 checksum: {checksum!r}")
        return value

    # ----- Reads -----

    def has(self, checksum: str) -> bool:
        """
        True when the object exists and still hashes to `checksum`.
        A corrupted object is deleted so the next put() replaces it.
        """
        path = self.pathFor(checksum)
        if not path.is_file():
            return False
        actual = sha1File(path)
        if actual == self._normalize(checksum):
            return True
        logger.warning("Store object %s is corrupted (hashes to %s); dropping it", checksum, actual)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        return False

    # ----- Writes -----

    def put(self, checksum: str, data: bytes) -> Path:
        checksum = self._normalize(checksum)
        actual = sha1Bytes(data)
        if actual != checksum:
            raise ChecksumMismatch(checksum, actual)

        target = self.pathFor(checksum)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmpName = tempfile.mkstemp(prefix=f".{checksum}.", suffix=_TMP_SUFFIX, dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as fl:
                fl.write(data)
                fl.flush()
                os.fsync(fl.fileno())
            os.replace(tmpName, target)
        except BaseException:
            try:
                os.unlink(tmpName)
            except FileNotFoundError:
                pass
            raise
        return target

    def materialize(self, checksum: str, destination: Path | str, *, executable: bool = False) -> Path:
        """
        Make `destination` hold the object's bytes (hard link, copy as fallback).
        The destination appears atomically.
        """
        source = self.pathFor(checksum)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmpName = destination.with_name(f".{destination.name}.{secrets.token_hex(6)}{_TMP_SUFFIX}")
        try:
            if executable:
                # Own copy, so chmod never touches the shared object
                shutil.copyfile(source, tmpName)
                os.chmod(tmpName, 0o755)
            else:
                try:
                    os.link(source, tmpName)
                except OSError:
                    shutil.copyfile(source, tmpName)
            os.replace(tmpName, destination)
        except BaseException:
            try:
                os.unlink(tmpName)
            except FileNotFoundError:
                pass
            raise
        return destination

    # ----- Locking -----

    @asynccontextmanager
    async def lock(self, checksum: str) -> AsyncIterator[None]:
        """Serialize writers of one key; unused locks are dropped."""
        key = self._normalize(checksum)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._lockUsers[key] = self._lockUsers.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lockUsers[key] -= 1
            if self._lockUsers[key] == 0:
                del self._lockUsers[key]
                self._locks.pop(key, None)

    # ----- Maintenance -----

    def checksums(self) -> list[str]:
        if not self.objectsDir.is_dir():
            return []
        out: list[str] = []
        for bucket in sorted(self.objectsDir.iterdir()):
            if not bucket.is_dir():
                continue
            for entry in sorted(bucket.iterdir()):
                if isSha1(entry.name):
                    out.append(entry.name)
        return out

    def collectGarbage(self, referenced: Iterable[str]) -> list[str]:
        """
        Remove objects not in `referenced` plus leftover temp files.
        Never run automatically; the caller decides what is still referenced.
        """
        keep = {self._normalize(checksum) for checksum in referenced}
        removed: list[str] = []
        if not self.objectsDir.is_dir():
            return removed
        for bucket in self.objectsDir.iterdir():
            if not bucket.is_dir():
                continue
            for entry in bucket.iterdir():
                if entry.name.endswith(_TMP_SUFFIX):
                    entry.unlink(missing_ok=True)
                    continue
                if isSha1(entry.name) and entry.name not in keep:
                    entry.unlink(missing_ok=True)
                    removed.append(entry.name)
            if not any(bucket.iterdir()):
                bucket.rmdir()
        logger.info("Store GC removed %d objects (%d kept)", len(removed), len(keep))
        return sorted(removed)
