# launchkit/launch/assembler.py
from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from launchkit.manifests.models import ArgumentTemplate, OsRule, ResolvedManifest, Rule
from launchkit.manifests.rules import evaluateRules
from launchkit.runtimes.models import RuntimeBinary
from .templates import substitute

logger = logging.getLogger(__name__)

__all__ = [
    "Account",
    "LaunchSettings",
    "LaunchSpec",
    "assembleLaunch",
    "LEGACY_JVM_ARGUMENTS",
    "LAUNCHER_NAME",
    "LAUNCHER_VERSION",
]

LAUNCHER_NAME = "launchkit"
LAUNCHER_VERSION = "0.4.0"

# Defaults for descriptors that predate `arguments.jvm`
LEGACY_JVM_ARGUMENTS: tuple[ArgumentTemplate, ...] = (
    ArgumentTemplate(("-XstartOnFirstThread",), (Rule(action="allow", os=OsRule(name="osx")),)),
    ArgumentTemplate(("-Xss1M",), (Rule(action="allow", os=OsRule(arch="x86")),)),
    ArgumentTemplate(("-Djava.library.path=${natives_directory}",)),
    ArgumentTemplate(("-cp", "${classpath}")),
)



@dataclass(frozen=True, slots=True)
class Account:
    """Credentials handed over by whatever did the authentication. Opaque here."""
    name: str
    uuid: str
    accessToken: str
    userType: str = "msa"
    xuid: str = ""
    clientId: str = ""

    @classmethod
    def offline(cls, name: str) -> Account:
        # Same derivation as the vanilla server's offline mode
        digest = bytearray(hashlib.md5(f"OfflinePlayer:{name}".encode("utf-8")).digest())
        digest[6] = (digest[6] & 0x0F) | 0x30
        digest[8] = (digest[8] & 0x3F) | 0x80
        return cls(name=name, uuid=uuid.UUID(bytes=bytes(digest)).hex, accessToken="0", userType="legacy")



@dataclass(frozen=True)
class LaunchSettings:
    gameDir: Path
    assetsDir: Path
    librariesDir: Path
    nativesDir: Path
    clientJar: Path
    account: Account | None = None
    ramInMb: int = 2048
    windowWidth: int | None = None
    windowHeight: int | None = None
    javaArgs: tuple[str, ...] = ()
    gameArgs: tuple[str, ...] = ()
    mainClassOverride: str | None = None
    loggingConfigPath: Path | None = None
    gameAssetsDir: Path | None = None
    environment: Mapping[str, str] = field(default_factory=dict)
    features: Mapping[str, bool] = field(default_factory=dict)
    launchPrefix: tuple[str, ...] = ()



@dataclass(frozen=True)
class LaunchSpec:
    executable: Path
    arguments: tuple[str, ...]
    environment: dict[str, str]
    workingDir: Path
    prefix: tuple[str, ...] = ()

    def commandLine(self) -> list[str]:
        return [*self.prefix, str(self.executable), *self.arguments]



def _values(manifest: ResolvedManifest, settings: LaunchSettings) -> dict[str, str | None]:
    platform = manifest.platform
    classpath = [str(settings.librariesDir / lib.path) for lib in manifest.classpathLibraries()]
    classpath.append(str(settings.clientJar))
    account = settings.account
    return {
        "auth_player_name": account.name if account else None,
        "auth_uuid": account.uuid if account else None,
        "uuid": account.uuid if account else None,
        "auth_access_token": account.accessToken if account else None,
        "accessToken": account.accessToken if account else None,
        "auth_session": account.accessToken if account else None,
        "clientid": account.clientId if account else None,
        "auth_xuid": account.xuid if account else None,
        "user_type": account.userType if account else None,
        "user_properties": "{}",
        "version_name": manifest.id,
        "version_type": manifest.type,
        "game_directory": str(settings.gameDir),
        "assets_root": str(settings.assetsDir),
        "game_assets": str(settings.gameAssetsDir or settings.assetsDir),
        "assets_index_name": manifest.assetIndex.id if manifest.assetIndex else None,
        "library_directory": str(settings.librariesDir),
        "natives_directory": str(settings.nativesDir),
        "classpath": platform.classpathSeparator.join(classpath),
        "classpath_separator": platform.classpathSeparator,
        "launcher_name": LAUNCHER_NAME,
        "launcher_version": LAUNCHER_VERSION,
        "resolution_width": str(settings.windowWidth) if settings.windowWidth else None,
        "resolution_height": str(settings.windowHeight) if settings.windowHeight else None,
    }



def _expand(
    templates: tuple[ArgumentTemplate, ...],
    manifest: ResolvedManifest,
    values: Mapping[str, str | None],
    features: Mapping[str, bool],
) -> list[str]:
    out: list[str] = []
    for template in templates:
        if template.rules and not evaluateRules(template.rules, manifest.platform, features):
            continue
        out.extend(substitute(value, values, manifestId=manifest.id) for value in template.values)
    return out



def assembleLaunch(manifest: ResolvedManifest, runtime: RuntimeBinary, settings: LaunchSettings) -> LaunchSpec:
    """
    Build the full command for one launch. Pure: the same manifest, runtime
    and settings always give the same LaunchSpec, argument for argument.

    Order: -Xmx, JVM arguments, logging config, extra JVM arguments, main
    class, game arguments, window size, extra game arguments. Launch prefix
    commands (wrappers) go before the executable in commandLine().
    """
    values = _values(manifest, settings)
    hasResolution = bool(settings.windowWidth and settings.windowHeight)
    features = {"is_demo_user": False, "has_custom_resolution": hasResolution}
    features.update(settings.features)

    jvmTemplates = manifest.jvmArguments
    if not any("${classpath}" in value for template in jvmTemplates for value in template.values):
        jvmTemplates = LEGACY_JVM_ARGUMENTS + jvmTemplates

    arguments: list[str] = [f"-Xmx{settings.ramInMb}M"]
    arguments.extend(_expand(jvmTemplates, manifest, values, features))
    if manifest.loggingConfig is not None and settings.loggingConfigPath is not None:
        arguments.append(substitute(manifest.loggingConfig.argument, {"path": str(settings.loggingConfigPath)}, manifestId=manifest.id))
    arguments.extend(settings.javaArgs)
    arguments.append(settings.mainClassOverride or manifest.mainClass)

    if manifest.legacyArguments is not None:
        arguments.extend(substitute(part, values, manifestId=manifest.id) for part in manifest.legacyArguments.split())
    arguments.extend(_expand(manifest.gameArguments, manifest, values, features))

    resolutionTemplated = any(
        rule.features and "has_custom_resolution" in rule.features
        for template in manifest.gameArguments
        for rule in template.rules
    )
    if hasResolution and not resolutionTemplated:
        arguments.extend(["--width", str(settings.windowWidth), "--height", str(settings.windowHeight)])
    arguments.extend(settings.gameArgs)

    return LaunchSpec(
        executable=runtime.path,
        arguments=tuple(arguments),
        environment=dict(sorted(settings.environment.items())),
        workingDir=settings.gameDir,
        prefix=tuple(settings.launchPrefix),
    )
