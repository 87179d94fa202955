# launchkit/app/settings.py
from __future__ import annotations
import os
from pathlib import Path
from typing import Any
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from launchkit.config.providers import DefaultsProvider, FileProvider, OverrideProvider
from launchkit.config.store import ConfigStore

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS", "LauncherSettingsModel", "launcherHome", "settingsStore",
    "resetSettings", "settings", "settings_bool",
]



def launcherHome() -> Path:
    """Root of all launcher state; LAUNCHKIT_HOME wins over ~/.launchkit."""
    env = os.environ.get("LAUNCHKIT_HOME")
    if env:
        return Path(env).expanduser()
    return Path(os.path.expanduser("~/.launchkit"))



SETTINGS: dict[str, Any] = {
    "__source": "LAUNCHKIT_DEFAULTS",
    "paths": {"root": None},
    "http": {"retry": 2, "timeoutMs": 30_000, "backoff": {"baseMs": 250, "maxMs": 1000}},
    "downloads": {
        "workers": 8,
        "retries": 3,
        "timeoutMs": 60_000,
        "backoff": {"baseMs": 250, "maxMs": 4000},
    },
    "game": {
        "ramInMb": 2048,
        "windowWidth": None,
        "windowHeight": None,
        "javaArgs": [],
        "gameArgs": [],
    },
    "launch": {"preLaunchPrefix": []},
    "process": {"graceSeconds": 10.0},
    "logging": {"debug": False, "file": {"enabled": True, "maxBytes": 10 * 1024 * 1024, "backupCount": 5}},
}



class _Backoff(BaseModel):
    model_config = ConfigDict(extra="forbid")
    baseMs: int = Field(ge=0)
    maxMs: int = Field(ge=0)



class _HttpSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    retry: int = Field(ge=0)
    timeoutMs: int = Field(gt=0)
    backoff: _Backoff



class _DownloadSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    workers: int = Field(ge=1, le=64)
    retries: int = Field(ge=1)
    timeoutMs: int = Field(gt=0)
    backoff: _Backoff



class _GameSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    ramInMb: int = Field(ge=256)
    windowWidth: int | None = Field(default=None, gt=0)
    windowHeight: int | None = Field(default=None, gt=0)
    javaArgs: list[str] = Field(default_factory=list)
    gameArgs: list[str] = Field(default_factory=list)



class _LaunchSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    # Wrapper commands put before java for every instance (see InstanceConfig.preLaunchPrefixMode)
    preLaunchPrefix: list[str] = Field(default_factory=list)



class LauncherSettingsModel(BaseModel):
    """Shape of the effective (merged) launcher settings document."""
    model_config = ConfigDict(extra="forbid")

    source: str | None = Field(default=None, alias="__source")
    paths: dict[str, Any]
    http: _HttpSettings
    downloads: _DownloadSettings
    game: _GameSettings
    launch: _LaunchSettings
    process: dict[str, float]
    logging: dict[str, Any]



def _validate(doc: dict[str, Any]) -> None:
    LauncherSettingsModel.model_validate(doc)



@lru_cache(maxsize=1)
def settingsStore() -> ConfigStore:
    """
    Launcher-wide settings: shipped defaults < user file < runtime overrides.
    A user file that fails validation is ignored (and logged), never fatal.
    """
    home = launcherHome()
    defaults = dict(SETTINGS)
    defaults["paths"] = {"root": str(home)}

    defaultsLayer = DefaultsProvider(data=defaults)
    userFile = FileProvider(home / "settings.json5")
    store = ConfigStore(
        namespace="launcher",
        layers=[("defaults", defaultsLayer), ("user", userFile), ("runtime", OverrideProvider())],
        validator=_validate,
    )
    try:
        _validate(store.merged())
    except ValidationError as err:
        logger.error("Ignoring invalid settings file '%s': %s", userFile.path, err)
        store = ConfigStore(
            namespace="launcher",
            layers=[("defaults", defaultsLayer), ("runtime", OverrideProvider())],
            validator=_validate,
        )
    return store



def resetSettings() -> None:
    """Drop the cached store (tests, or after LAUNCHKIT_HOME changes)."""
    settingsStore.cache_clear()

# ---------- Ergonomic accessors over merged settings ----------

def settings(path: str, default: Any = None) -> Any:
    """Returns value at `path` from merged settings, or `default` if missing."""
    return settingsStore().get(path, default)



def settings_bool(path: str, default: bool = False) -> bool:
    """Returns bool value at `path` or `default` if missing."""
    val = settingsStore().get(path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return bool(val)
