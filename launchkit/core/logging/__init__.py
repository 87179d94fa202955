# launchkit/core/logging/__init__.py
from __future__ import annotations

from .context import setLogContext, clearLogContext, getLogContext, logContext
from .setup import configureLogging, getLogger, getGameLogger

__all__ = [
    "configureLogging",
    "getLogger",
    "getGameLogger",
    "setLogContext",
    "clearLogContext",
    "getLogContext",
    "logContext",
]
