# tests/launchkit/manifests/test_rules.py
from __future__ import annotations

import pytest

from launchkit.manifests.models import Rule
from launchkit.manifests.rules import evaluateRules, ruleApplies, ruleSpecificity
from launchkit.platform.host import Platform

LINUX = Platform("linux", "x86_64", "6.5.0")
MAC_INTEL = Platform("osx", "x86_64", "10.15.7")
MAC_ARM = Platform("osx", "arm64", "14.1")
WIN32 = Platform("windows", "x86", "10.0")


def _rules(*docs: dict) -> list[Rule]:
    return [Rule.model_validate(doc) for doc in docs]


def test_noRules_isAllowed():
    assert evaluateRules(None, LINUX)
    assert evaluateRules([], LINUX)


def test_plainAllow():
    assert evaluateRules(_rules({"action": "allow"}), LINUX)


def test_allowOnlyOnOsx():
    rules = _rules({"action": "allow", "os": {"name": "osx"}})
    assert evaluateRules(rules, MAC_INTEL)
    assert not evaluateRules(rules, LINUX)


def test_lastApplicableRuleWins():
    rules = _rules({"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}})
    assert evaluateRules(rules, LINUX)
    assert not evaluateRules(rules, MAC_ARM)


def test_archCondition_acceptsAliases():
    rules = _rules({"action": "allow", "os": {"arch": "x86"}})
    assert evaluateRules(rules, WIN32)
    assert not evaluateRules(rules, LINUX)
    assert evaluateRules(_rules({"action": "allow", "os": {"arch": "amd64"}}), LINUX)


def test_osNameWithArchSuffix():
    rules = _rules({"action": "allow", "os": {"name": "osx-arm64"}})
    assert evaluateRules(rules, MAC_ARM)
    assert not evaluateRules(rules, MAC_INTEL)


def test_osVersionIsRegex():
    rules = _rules({"action": "disallow", "os": {"name": "osx", "version": "^10\\.5\\.\\d$"}})
    assert ruleApplies(Rule.model_validate({"os": {"name": "osx", "version": "^10\\.15"}}), MAC_INTEL)
    # disallow does not apply on 10.15 -> no applicable rule -> disallowed by default
    assert not evaluateRules(rules, MAC_INTEL)


def test_badOsVersionRegex_doesNotApply():
    rule = Rule.model_validate({"os": {"version": "(unclosed"}})
    assert not ruleApplies(rule, LINUX)


@pytest.mark.parametrize(
    "features, expected",
    [
        (None, False),
        ({}, False),
        ({"has_custom_resolution": True}, True),
        ({"has_custom_resolution": False}, False),
    ],
)
def test_featureConditions(features, expected):
    rules = _rules({"action": "allow", "features": {"has_custom_resolution": True}})
    assert evaluateRules(rules, LINUX, features) is expected


def test_unknownKeysIgnored():
    rule = Rule.model_validate({"action": "allow", "os": {"name": "linux", "flavor": "arch"}, "extra": 1})
    assert ruleApplies(rule, LINUX)


def test_ruleSpecificity():
    assert ruleSpecificity(None, LINUX) == 0
    assert ruleSpecificity(_rules({"action": "allow"}), LINUX) == 0
    assert ruleSpecificity(_rules({"action": "allow", "os": {"name": "linux"}}), LINUX) == 1
    assert ruleSpecificity(_rules({"action": "allow", "os": {"name": "osx-arm64"}}), MAC_ARM) == 2
    assert ruleSpecificity(_rules({"action": "allow", "os": {"name": "linux", "arch": "x86_64"}}), LINUX) == 2
    # only applicable rules count
    assert ruleSpecificity(_rules({"action": "allow"}, {"action": "disallow", "os": {"name": "osx"}}), LINUX) == 0
