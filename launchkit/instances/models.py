# launchkit/instances/models.py
from __future__ import annotations

from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from launchkit.loaders.variants import LoaderSelection

__all__ = ["InstanceConfig", "INSTANCE_GAME_KEYS", "PrefixMode", "combinePrefixes"]

# Keys that fall back to the launcher-wide `game.*` settings when unset
INSTANCE_GAME_KEYS = ("ramInMb", "javaArgs", "gameArgs", "windowWidth", "windowHeight")

PrefixMode = Literal["instanceOnly", "globalThenInstance", "instanceThenGlobal"]



def combinePrefixes(instancePrefix: Iterable[str], globalPrefix: Iterable[str], mode: PrefixMode) -> tuple[str, ...]:
    """
    Commands placed before the Java executable (wrappers such as `gamemoderun`
    or `prime-run`). Entries are trimmed and blanks dropped.

        instanceOnly        -> instance entries only
        globalThenInstance  -> global entries, then instance entries
        instanceThenGlobal  -> instance entries, then global entries
    """
    local = [item.strip() for item in instancePrefix if item and item.strip()]
    shared = [item.strip() for item in globalPrefix if item and item.strip()]
    if mode == "instanceOnly":
        return tuple(local)
    if mode == "instanceThenGlobal":
        return tuple(local + shared)
    return tuple(shared + local)



class InstanceConfig(BaseModel):
    """
    Contents of `instances/<name>/config.json`.
    None means "use the launcher default" for the game keys.
    """
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    versionId: str = Field(min_length=1)
    loader: LoaderSelection | None = None
    javaOverride: str | None = None
    ramInMb: int | None = Field(default=None, ge=256)
    javaArgs: list[str] | None = None
    gameArgs: list[str] | None = None
    windowWidth: int | None = Field(default=None, gt=0)
    windowHeight: int | None = Field(default=None, gt=0)
    mainClassOverride: str | None = None
    preLaunchPrefix: list[str] | None = None
    preLaunchPrefixMode: PrefixMode = "globalThenInstance"

    def launchPrefix(self, globalPrefix: Iterable[str]) -> tuple[str, ...]:
        return combinePrefixes(self.preLaunchPrefix or (), globalPrefix, self.preLaunchPrefixMode)
