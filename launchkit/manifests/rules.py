# launchkit/manifests/rules.py
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from launchkit.platform.host import Platform
from .models import OsRule, Rule

logger = logging.getLogger(__name__)

__all__ = ["ruleApplies", "evaluateRules", "ruleSpecificity"]

# Some community manifests encode the arch in the OS name ("osx-arm64")
_OS_ARCH_SUFFIXES = ("-arm64", "-arm32", "-x86_64", "-x86")
_ARCH_ALIASES = {"x64": "x86_64", "amd64": "x86_64", "aarch64": "arm64", "arm": "arm32", "i386": "x86"}



def _osApplies(osRule: OsRule, platform: Platform) -> bool:
    name = osRule.name
    arch = osRule.arch
    if name:
        for suffix in _OS_ARCH_SUFFIXES:
            if name.endswith(suffix):
                name, arch = name[: -len(suffix)], arch or suffix[1:]
                break
        if name != platform.osName:
            return False
    if arch:
        if _ARCH_ALIASES.get(arch, arch) != platform.arch:
            return False
    if osRule.version:
        try:
            if not re.search(osRule.version, platform.osVersion or ""):
                return False
        except re.error:
            logger.warning("Ignoring unparsable os.version rule %r", osRule.version)
            return False
    return True



def ruleApplies(rule: Rule, platform: Platform, features: Mapping[str, bool] | None = None) -> bool:
    """True when every condition of `rule` holds; an unconditioned rule always applies."""
    if rule.os is not None and not _osApplies(rule.os, platform):
        return False
    if rule.features:
        have = features or {}
        for name, wanted in rule.features.items():
            if bool(have.get(name, False)) != bool(wanted):
                return False
    return True



def evaluateRules(
    rules: Iterable[Rule] | None,
    platform: Platform,
    features: Mapping[str, bool] | None = None,
) -> bool:
    """
    Decide whether an entry guarded by `rules` is allowed.

    No rules -> allowed. Otherwise start disallowed; every applicable rule
    sets the outcome to its action, so the last applicable rule wins.
    """
    if rules is None:
        return True
    ruleList = list(rules)
    if not ruleList:
        return True
    allowed = False
    for rule in ruleList:
        if ruleApplies(rule, platform, features):
            allowed = rule.action == "allow"
    return allowed



def ruleSpecificity(
    rules: Iterable[Rule] | None,
    platform: Platform,
    features: Mapping[str, bool] | None = None,
) -> int:
    """
    How narrowly the deciding rule targets this platform: one point per
    constrained field (os name, arch, os version, each feature). Unruled
    entries score 0. Used to pick between two applicable entries of the
    same library.
    """
    score = 0
    for rule in rules or ():
        if not ruleApplies(rule, platform, features):
            continue
        points = 0
        if rule.os is not None:
            points += sum(1 for value in (rule.os.name, rule.os.arch, rule.os.version) if value)
            if rule.os.name and any(rule.os.name.endswith(suffix) for suffix in _OS_ARCH_SUFFIXES):
                points += 1
        points += len(rule.features or {})
        score = points
    return score
