# launchkit/instances/manager.py
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from launchkit.app.paths import LauncherLayout
from launchkit.app.settings import settingsStore
from launchkit.config.providers import DefaultsProvider, FileProvider
from launchkit.config.store import ConfigStore
from launchkit.core.errors import LauncherError
from .models import INSTANCE_GAME_KEYS, InstanceConfig

logger = logging.getLogger(__name__)

__all__ = ["InstanceManager", "InstanceNotFound", "InstanceExists", "InstanceInvalid"]

CONFIG_FILE = "config.json"
LOADER_FILE = "loader.json"
GAME_DIR = ".minecraft"
LOADER_DIR = "loader"



class InstanceNotFound(LauncherError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Instance '{name}' does not exist", instance=name)
        self.name = name



class InstanceExists(LauncherError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Instance '{name}' already exists", instance=name)
        self.name = name



class InstanceInvalid(LauncherError):
    pass



def _checkName(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Instance name must be a non-empty string")
    if name in (".", "..") or any(sep in name for sep in ("/", "\\", "\0")):
        raise ValueError(f"Unsafe instance name {name!r}")
    return name



class InstanceManager:
    """
    Owns `instances/<name>/`: one directory per instance, each exclusively
    mutated through this class (or the loader installer working on it).
    """

    def __init__(self, layout: LauncherLayout) -> None:
        self.layout = layout
        self.root = layout.instancesDir

    # ----- Paths -----

    def instanceDir(self, name: str) -> Path:
        return self.root / _checkName(name)

    def configPath(self, name: str) -> Path:
        return self.instanceDir(name) / CONFIG_FILE

    def loaderPatchPath(self, name: str) -> Path:
        return self.instanceDir(name) / LOADER_FILE

    def librariesDir(self, name: str) -> Path:
        return self.instanceDir(name) / "libraries"

    def nativesDir(self, name: str) -> Path:
        return self.librariesDir(name) / "natives"

    def gameDir(self, name: str) -> Path:
        return self.instanceDir(name) / GAME_DIR

    def loaderDir(self, name: str) -> Path:
        return self.instanceDir(name) / LOADER_DIR

    def exists(self, name: str) -> bool:
        return self.configPath(name).is_file()

    # ----- Lifecycle -----

    def create(self, name: str, versionId: str, **fields: Any) -> InstanceConfig:
        if self.exists(name):
            raise InstanceExists(name)
        config = InstanceConfig(versionId=versionId, **fields)
        for directory in (self.librariesDir(name), self.gameDir(name)):
            directory.mkdir(parents=True, exist_ok=True)
        self.save(name, config)
        logger.info("Created instance '%s' (%s)", name, versionId)
        return config

    def load(self, name: str) -> InstanceConfig:
        if not self.exists(name):
            raise InstanceNotFound(name)
        data = FileProvider(self.configPath(name), readOnly=True).to_dict()
        try:
            return InstanceConfig.model_validate(data)
        except ValidationError as err:
            raise InstanceInvalid(f"Instance '{name}' has an invalid config.json: {err}", instance=name) from err

    def save(self, name: str, config: InstanceConfig) -> None:
        provider = FileProvider(self.configPath(name))
        provider.replace(config.model_dump(mode="json", exclude_none=True))
        provider.save()

    def names(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(entry.name for entry in self.root.iterdir() if (entry / CONFIG_FILE).is_file())

    def delete(self, name: str) -> None:
        directory = self.instanceDir(name)
        if not directory.is_dir():
            raise InstanceNotFound(name)
        shutil.rmtree(directory)
        logger.info("Deleted instance '%s'", name)

    # ----- Settings -----

    def settingsStore(self, name: str) -> ConfigStore:
        """
        Instance settings over the launcher's `game.*` defaults. Writes go to
        the "instance" layer and are validated against InstanceConfig.
        """
        if not self.exists(name):
            raise InstanceNotFound(name)
        defaults = dict(settingsStore().merged().get("game") or {})

        def _validate(doc: dict[str, Any]) -> None:
            InstanceConfig.model_validate(doc)

        return ConfigStore(
            namespace=f"instance:{name}",
            layers=[("defaults", DefaultsProvider(data=defaults)), ("instance", FileProvider(self.configPath(name)))],
            validator=_validate,
        )

    def effectiveSettings(self, name: str) -> dict[str, Any]:
        store = self.settingsStore(name)
        return {key: store.get(key) for key in INSTANCE_GAME_KEYS}

    def launchPrefix(self, name: str) -> tuple[str, ...]:
        """The instance's pre-launch commands combined with `launch.preLaunchPrefix`."""
        globalPrefix = settingsStore().get("launch.preLaunchPrefix") or []
        return self.load(name).launchPrefix(globalPrefix)
