# tests/launchkit/core/test_dictpath.py
from __future__ import annotations

import pytest

from launchkit.core.dictpath import deleteByPath, getByPath, setByPath


def test_getByPath_nestedValue():
    data = {"downloads": {"backoff": {"baseMs": 250}}}
    assert getByPath(data, "downloads.backoff.baseMs") == 250
    assert getByPath(data, "downloads.backoff") == {"baseMs": 250}


def test_getByPath_missingReturnsDefault():
    data = {"game": {"ramInMb": 2048}}
    assert getByPath(data, "game.windowWidth") is None
    assert getByPath(data, "game.windowWidth", 854) == 854
    assert getByPath(data, "game.ramInMb.extra", "x") == "x"
    assert getByPath(None, "game", "fallback") == "fallback"


def test_getByPath_keepsFalsyValues():
    data = {"logging": {"debug": False, "level": 0, "name": ""}}
    assert getByPath(data, "logging.debug", True) is False
    assert getByPath(data, "logging.level", 5) == 0
    assert getByPath(data, "logging.name", "x") == ""


@pytest.mark.parametrize("path", ["", ".", "a..b", "a.", ".a"])
def test_paths_withEmptySegments_areRejected(path):
    with pytest.raises(ValueError):
        getByPath({}, path)


def test_setByPath_createsParents():
    data: dict = {}
    setByPath(data, "game.javaArgs", ["-XX:+UseG1GC"])
    assert data == {"game": {"javaArgs": ["-XX:+UseG1GC"]}}


def test_setByPath_withoutCreate_raisesOnMissingParent():
    with pytest.raises(KeyError):
        setByPath({}, "game.ramInMb", 4096, createIfMissing=False)


def test_setByPath_throughScalar_raisesTypeError():
    data = {"game": 5}
    with pytest.raises(TypeError):
        setByPath(data, "game.ramInMb", 4096)


def test_deleteByPath_reportsWhetherSomethingWasRemoved():
    data = {"game": {"ramInMb": 4096}}
    assert deleteByPath(data, "game.ramInMb") is True
    assert data == {"game": {}}
    assert deleteByPath(data, "game.ramInMb") is False
    assert deleteByPath(data, "missing.key") is False


def test_deleteByPath_prunesEmptyParents():
    data = {"a": {"b": {"c": 1}, "x": 2}}
    assert deleteByPath(data, "a.b.c", pruneEmptyParents=True)
    assert data == {"a": {"x": 2}}

    data = {"a": {"b": {"c": 1}}}
    assert deleteByPath(data, "a.b.c", pruneEmptyParents=True)
    assert data == {}
