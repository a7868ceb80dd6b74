"""Tests for the persisted key-value surface."""

from __future__ import annotations

import json

import pytest

from gait.persistence import JsonFileStore, MemoryStore, Preferences, StorageKey


class TestJsonFileStore:
    def test_round_trip(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "state.json")
        store.set("k", "v")
        assert JsonFileStore(tmp_path / "state.json").get("k") == "v"

    def test_missing_file_is_empty(self, tmp_path) -> None:
        assert JsonFileStore(tmp_path / "nope.json").get("k") is None

    def test_creates_parent_directory(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "a" / "b" / "state.json")
        store.set("k", "v")
        assert (tmp_path / "a" / "b" / "state.json").exists()

    def test_corrupt_file_treated_as_empty(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{oops")
        store = JsonFileStore(path)
        assert store.get("k") is None

        store.set("k", "v")
        assert json.loads(path.read_text()) == {"k": "v"}

    def test_remove(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "state.json")
        store.set("a", "1")
        store.set("b", "2")
        store.remove("a")
        assert store.get("a") is None
        assert store.get("b") == "2"

    def test_no_temp_files_left_behind(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "state.json")
        for i in range(3):
            store.set("k", str(i))
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


class TestPreferences:
    @pytest.fixture
    def prefs(self) -> Preferences:
        return Preferences(MemoryStore())

    def test_selected_commit(self, prefs) -> None:
        assert prefs.selected_commit() is None
        prefs.save_selected_commit("abc")
        assert prefs.selected_commit() == "abc"
        assert prefs.store.get(StorageKey.SELECTED_COMMIT.value) == "abc"
        prefs.save_selected_commit(None)
        assert prefs.selected_commit() is None

    def test_widths(self, prefs) -> None:
        prefs.save_panel_width(42.5)
        prefs.save_sidebar_width(20)
        assert prefs.panel_width() == 42.5
        assert prefs.sidebar_width() == 20.0

    @pytest.mark.parametrize("raw", ["abc", "0", "150", "-5"])
    def test_invalid_width_ignored(self, prefs, raw) -> None:
        prefs.store.set(StorageKey.PANEL_WIDTH.value, raw)
        assert prefs.panel_width() is None

    def test_flags(self, prefs) -> None:
        assert prefs.sidebar_collapsed() is False
        prefs.save_sidebar_collapsed(True)
        prefs.save_commit_info_collapsed(True)
        assert prefs.sidebar_collapsed() is True
        assert prefs.commit_info_collapsed() is True

    def test_collapsed_sections(self, prefs) -> None:
        prefs.set_section_collapsed("tags", True)
        prefs.set_section_collapsed("stashes", True)
        prefs.set_section_collapsed("tags", False)
        assert prefs.collapsed_sections() == {"stashes"}

    def test_corrupt_collapsed_sections(self, prefs) -> None:
        prefs.store.set(StorageKey.COLLAPSED_SECTIONS.value, "[broken")
        assert prefs.collapsed_sections() == set()
