# launchkit/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers
from pathlib import Path

from launchkit.app.settings import settings, settings_bool
from .formatters import DevFormatter, JsonFormatter, RedactingFormatter

__all__ = [
    "NO_PROPAGATE",
    "configureLogging",
    "getLogger",
    "getGameLogger",
]



# Disable propagation from chatty libraries
NO_PROPAGATE = [
    "asyncio",
    "httpcore.connection", "httpcore.http11", "httpcore.http2",
    "hpack", "httpx",
]



def configureLogging(logDir: Path | str | None = None) -> None:
    """
    Initiate the global logging configuration.

    Debug (logging.debug = true):
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG)

    Default:
      - Console INFO
      - JSON file logs INFO with rotation
    Credential scrubbing is active on every handler.
    """
    debugMode = settings_bool("logging.debug", False)
    rootLevel = logging.DEBUG if debugMode else logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(rootLevel)

    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    devFmt = RedactingFormatter(DevFormatter())
    jsonFmt = RedactingFormatter(JsonFormatter())

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(rootLevel)
    consoleHandler.setFormatter(devFmt)
    root.addHandler(consoleHandler)

    if settings_bool("logging.file.enabled", True):
        directory = Path(logDir) if logDir is not None else Path(settings("paths.root")) / "logs"
        directory.mkdir(parents=True, exist_ok=True)
        fileHandler = logging.handlers.RotatingFileHandler(
            directory / "launchkit.log",
            maxBytes=int(settings("logging.file.maxBytes", 10 * 1024 * 1024)),
            backupCount=int(settings("logging.file.backupCount", 5)),
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(jsonFmt)
        root.addHandler(fileHandler)

    # Per-logger tweaks (reduce noise)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)



def getLogger(name: str, side: str = ""):
    return logging.getLogger(f"{str(side).strip()}.{str(name).strip()}" if str(side).strip() else str(name).strip())



def getGameLogger(instanceName: str):
    """Logger receiving the launched game's output lines."""
    return logging.getLogger(f"game.{str(instanceName).strip()}")
