# tests/launchkit/config/test_config_providers.py
from __future__ import annotations

from pathlib import Path

import json5
import pytest

from launchkit.config.providers import DefaultsProvider, FileProvider, OverrideProvider, readDocument


# ----------------------------
# OverrideProvider tests
# ----------------------------

def test_overrideProvider_setAndGet_pathCreatesNested() -> None:
    provider = OverrideProvider()

    provider.set("game.windowWidth", 1280)
    provider.set("game.windowHeight", 720)

    assert provider.get("game.windowWidth") == 1280
    assert provider.get("game.ramInMb") is None
    assert provider.to_dict() == {"game": {"windowWidth": 1280, "windowHeight": 720}}


def test_overrideProvider_delete_prunesEmptyParents() -> None:
    provider = OverrideProvider()
    provider.set("a.b.c", 123)
    provider.set("a.x", "keep")

    provider.set("a.b.c", None)

    assert provider.to_dict() == {"a": {"x": "keep"}}


def test_overrideProvider_copiesValues() -> None:
    javaArgs = ["-XX:+UseG1GC"]
    provider = OverrideProvider()
    provider.set("game.javaArgs", javaArgs)
    javaArgs.append("mutated")
    assert provider.get("game.javaArgs") == ["-XX:+UseG1GC"]


# ----------------------------
# DefaultsProvider tests
# ----------------------------

def test_defaultsProvider_snapshotsData() -> None:
    shipped = {"downloads": {"workers": 8}}
    provider = DefaultsProvider(data=shipped)
    shipped["downloads"]["workers"] = 1

    assert provider.get("downloads.workers") == 8
    assert provider.get("downloads.missing") is None


def test_defaultsProvider_isReadOnly() -> None:
    provider = DefaultsProvider(data={"a": 1})
    with pytest.raises(RuntimeError):
        provider.set("a", 2)


def test_defaultsProvider_rejectsNonMapping() -> None:
    with pytest.raises(TypeError):
        DefaultsProvider(data=[("a", 1)])


# ----------------------------
# readDocument tests
# ----------------------------

def test_readDocument_parsesJson5(tmp_path: Path) -> None:
    path = tmp_path / "settings.json5"
    path.write_text("{ downloads: { workers: 4, }, // comment\n }", encoding="utf-8")
    assert readDocument(path) == {"downloads": {"workers": 4}}


def test_readDocument_missingOrEmpty(tmp_path: Path) -> None:
    assert readDocument(tmp_path / "nope.json5") is None
    (tmp_path / "empty.json").write_text("  \n", encoding="utf-8")
    assert readDocument(tmp_path / "empty.json") == {}


def test_readDocument_directory(tmp_path: Path) -> None:
    with pytest.raises(IsADirectoryError):
        readDocument(tmp_path)


# ----------------------------
# FileProvider tests
# ----------------------------

def test_fileProvider_missingFile_startsEmpty(tmp_path: Path) -> None:
    provider = FileProvider(tmp_path / "config.json")
    assert provider.to_dict() == {}


def test_fileProvider_saveJson_isStrictJson(tmp_path: Path) -> None:
    path = tmp_path / "instance" / "config.json"
    provider = FileProvider(path)
    provider.set("versionId", "1.20.1")
    provider.set("loader.kind", "fabric")
    provider.save()

    text = path.read_text(encoding="utf-8")
    assert '"versionId"' in text
    assert ",\n}" not in text
    assert json5.loads(text) == {"versionId": "1.20.1", "loader": {"kind": "fabric"}}
    assert not path.with_suffix(".json.tmp").exists()

    assert FileProvider(path).get("loader.kind") == "fabric"


def test_fileProvider_parseError_startsEmpty(tmp_path: Path, caplog) -> None:
    path = tmp_path / "settings.json5"
    path.write_text("{ not valid", encoding="utf-8")

    provider = FileProvider(path)

    assert provider.to_dict() == {}
    assert "parse failed" in caplog.text


def test_fileProvider_nonObject_raises(tmp_path: Path) -> None:
    path = tmp_path / "settings.json5"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(TypeError):
        FileProvider(path)


def test_fileProvider_readOnly(tmp_path: Path) -> None:
    provider = FileProvider(tmp_path / "config.json", readOnly=True)
    with pytest.raises(RuntimeError):
        provider.set("a", 1)
    with pytest.raises(RuntimeError):
        provider.replace({"a": 1})
    with pytest.raises(RuntimeError):
        provider.save()


def test_fileProvider_replace_andReload(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    provider = FileProvider(path)
    provider.replace({"ramInMb": 4096})
    provider.save()

    path.write_text('{"ramInMb": 1024}', encoding="utf-8")
    provider.reload()
    assert provider.get("ramInMb") == 1024
