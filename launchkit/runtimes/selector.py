# launchkit/runtimes/selector.py
from __future__ import annotations

import logging
from typing import Protocol

from launchkit.platform.host import Platform, currentPlatform
from launchkit.semver.versions import Version, parseJavaVersion
from .models import RuntimeBinary, RuntimeProvisionError, UnsupportedPlatform
from .registry import RuntimeRegistry

logger = logging.getLogger(__name__)

__all__ = ["RuntimeSelector", "RuntimeProvisioner", "FallbackProvisioner", "pickInstalled"]



class RuntimeProvisioner(Protocol):
    async def provision(self, minimumMajor: int, platform: Platform, *, component: str | None = None) -> RuntimeBinary: ...



class FallbackProvisioner:
    """
    Tries each provisioner in order; the next one is asked only when the
    previous raised UnsupportedPlatform. Any other failure propagates.
    """

    def __init__(self, primary: RuntimeProvisioner, *alternates: RuntimeProvisioner) -> None:
        self.provisioners = (primary, *alternates)

    async def provision(self, minimumMajor: int, platform: Platform, *, component: str | None = None) -> RuntimeBinary:
        last: UnsupportedPlatform | None = None
        for provisioner in self.provisioners:
            try:
                return await provisioner.provision(minimumMajor, platform, component=component)
            except UnsupportedPlatform as err:
                logger.info("%s has no Java %d for %s, trying next source", type(provisioner).__name__, minimumMajor, platform)
                last = err
        assert last is not None
        raise last



def _fullVersion(runtime: RuntimeBinary) -> Version:
    if runtime.version:
        try:
            return parseJavaVersion(runtime.version)
        except ValueError:
            pass
    return Version((runtime.majorVersion,))



def pickInstalled(candidates: list[RuntimeBinary], minimumMajor: int) -> RuntimeBinary | None:
    """
    Exact major first, else the newest newer major. Within one major the
    highest full version wins; equal versions go to the latest registered.
    """
    indexed = list(enumerate(candidates))
    pool = [(idx, runtime) for idx, runtime in indexed if runtime.majorVersion == minimumMajor]
    if not pool:
        pool = [(idx, runtime) for idx, runtime in indexed if runtime.majorVersion > minimumMajor]
    if not pool:
        return None
    _, best = max(pool, key=lambda item: (item[1].majorVersion, _fullVersion(item[1]), item[0]))
    return best



class RuntimeSelector:
    """Installed runtimes first; provisioning only when none is new enough."""

    def __init__(self, registry: RuntimeRegistry, provisioner: RuntimeProvisioner, *, platform: Platform | None = None) -> None:
        self.registry = registry
        self.provisioner = provisioner
        self.platform = platform or currentPlatform()

    async def select(self, minimumMajor: int, platform: Platform | None = None, *, component: str | None = None) -> RuntimeBinary:
        platform = platform or self.platform
        installed = pickInstalled(self.registry.all(platform=str(platform)), minimumMajor)
        if installed is not None:
            logger.debug("Java %d satisfied by installed %s", minimumMajor, installed.path)
            return installed

        logger.info("No installed Java >= %d for %s, provisioning", minimumMajor, platform)
        runtime = await self.provisioner.provision(minimumMajor, platform, component=component)
        if runtime.majorVersion < minimumMajor:
            raise RuntimeProvisionError(
                f"Provisioned Java {runtime.majorVersion} at '{runtime.path}', need {minimumMajor} or newer",
                path=runtime.path,
                majorVersion=runtime.majorVersion,
                minimumMajor=minimumMajor,
            )
        self.registry.register(runtime)
        return runtime
