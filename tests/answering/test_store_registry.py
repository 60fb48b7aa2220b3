"""Tests for the persisted knowledge store registry."""

import json

from answering.tools.store_registry import StoreRegistry


def test_missing_file_reads_as_empty(tmp_path):
    assert StoreRegistry(tmp_path / "registry.json").load() == {}


def test_record_persists_mapping(tmp_path):
    path = tmp_path / "nested" / "registry.json"
    registry = StoreRegistry(path)

    assert registry.record("Onboarding", "fileSearchStores/abc") is True

    assert json.loads(path.read_text()) == {"Onboarding": "fileSearchStores/abc"}
    assert StoreRegistry(path).get("Onboarding") == "fileSearchStores/abc"


def test_record_keeps_existing_entries(tmp_path):
    registry = StoreRegistry(tmp_path / "registry.json")
    registry.record("A", "stores/a")
    registry.record("B", "stores/b")

    assert registry.load() == {"A": "stores/a", "B": "stores/b"}


def test_corrupt_file_degrades_to_empty(tmp_path):
    path = tmp_path / "registry.json"
    path.write_text("{not json")

    registry = StoreRegistry(path)

    assert registry.load() == {}
    assert registry.record("A", "stores/a") is True
    assert registry.load() == {"A": "stores/a"}


def test_unexpected_shape_degrades_to_empty(tmp_path):
    path = tmp_path / "registry.json"
    path.write_text(json.dumps(["not", "a", "mapping"]))

    assert StoreRegistry(path).load() == {}


def test_no_temp_files_left_behind(tmp_path):
    registry = StoreRegistry(tmp_path / "registry.json")
    registry.record("A", "stores/a")

    assert [p.name for p in tmp_path.iterdir()] == ["registry.json"]


def test_unwritable_path_keeps_mapping_in_memory(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    registry = StoreRegistry(blocker / "registry.json")

    assert registry.record("A", "stores/a") is False

    assert registry.get("A") == "stores/a"
    assert registry.load() == {"A": "stores/a"}


def test_file_is_read_once(tmp_path):
    path = tmp_path / "registry.json"
    path.write_text(json.dumps({"A": "stores/a"}))
    registry = StoreRegistry(path)

    assert registry.get("A") == "stores/a"
    path.write_text(json.dumps({"A": "stores/other"}))

    assert registry.get("A") == "stores/a"
