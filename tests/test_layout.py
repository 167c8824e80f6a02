from __future__ import annotations

import json

from parley.settings.layout import DEFAULT_LAYOUT, LAYOUT_KEY, LayoutPreferenceStore


def test_defaults_when_missing_or_corrupt(tmp_path) -> None:
    path = tmp_path / "layout.json"
    store = LayoutPreferenceStore(path)
    assert store.load() == DEFAULT_LAYOUT == (70, 30)

    path.write_text("{not json", encoding="utf-8")
    assert store.load() == DEFAULT_LAYOUT

    path.write_text(json.dumps({LAYOUT_KEY: [1, 2, 3]}), encoding="utf-8")
    assert store.load() == DEFAULT_LAYOUT


def test_save_and_load(tmp_path) -> None:
    store = LayoutPreferenceStore(tmp_path / "nested" / "layout.json")
    store.save((65, 35))
    assert store.load() == (65, 35)
    assert json.loads((tmp_path / "nested" / "layout.json").read_text()) == {LAYOUT_KEY: [65, 35]}


def test_clear_keeps_other_entries(tmp_path) -> None:
    path = tmp_path / "layout.json"
    path.write_text(json.dumps({LAYOUT_KEY: [60, 40], "layout:sidebar": [20, 80]}), encoding="utf-8")
    store = LayoutPreferenceStore(path)

    store.clear()

    assert store.raw() is None
    assert json.loads(path.read_text()) == {"layout:sidebar": [20, 80]}


def test_clear_removes_empty_file(tmp_path) -> None:
    path = tmp_path / "layout.json"
    store = LayoutPreferenceStore(path)
    store.save((50, 50))
    store.clear()
    assert not path.exists()
    store.clear()
