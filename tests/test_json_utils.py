"""Tests for JSON file helpers."""

from aishortcuts.utils.json_utils import read_json_object, write_json_atomic


def test_missing_file_reads_as_empty(tmp_path):
    assert read_json_object(tmp_path / "missing.json") == {}


def test_broken_or_non_object_file_reads_as_none(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    assert read_json_object(broken) is None

    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]", encoding="utf-8")
    assert read_json_object(listing) is None


def test_atomic_write_creates_parents_and_leaves_no_temp_files(tmp_path):
    target = tmp_path / "nested" / "data.json"
    write_json_atomic(target, {"b": 1, "a": "x"})
    assert read_json_object(target) == {"a": "x", "b": 1}
    assert [path.name for path in target.parent.iterdir()] == ["data.json"]
