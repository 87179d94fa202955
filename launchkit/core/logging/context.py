# launchkit/core/logging/context.py
from __future__ import annotations
import contextvars
from contextlib import contextmanager
from collections.abc import Iterator

# Per-task log context (instance name, version id, loader, download label...)
_logContextVar: contextvars.ContextVar[dict[str, object] | None] = contextvars.ContextVar("launchkit.logctx", default=None)

def setLogContext(**kvs):
    """Set or update per-log context values (instance, versionId, loader, etc.)."""
    current = dict(_logContextVar.get() or {}) # use copy
    for key, value in kvs.items():
        if value is not None:
            current[key] = value
    _logContextVar.set(current)

def clearLogContext():
    _logContextVar.set(None)

def getLogContext():
    """Return current context dict or None."""
    return _logContextVar.get()

@contextmanager
def logContext(**kvs) -> Iterator[None]:
    """Scoped variant of setLogContext; restores the previous context on exit."""
    token = _logContextVar.set(dict(_logContextVar.get() or {}))
    try:
        setLogContext(**kvs)
        yield
    finally:
        _logContextVar.reset(token)
