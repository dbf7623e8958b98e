"""Tests for stores, recovery on load, and the debounced saver."""

import json

import pytest

from mindmap_mcp.models import ROOT_ID, DeserializationError, MindMap, MindMapError
from mindmap_mcp.persistence import (
    DebouncedSaver,
    JsonFileStore,
    MapNotFoundError,
    MemoryStore,
    load_or_fresh,
    serialize,
)


class FakeTimer:
    """Stands in for threading.Timer; tests fire it by hand."""

    created: list["FakeTimer"] = []

    def __init__(self, delay, fn) -> None:
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fn()


def setup_function() -> None:
    FakeTimer.created.clear()


class TestJsonFileStore:
    def test_save_then_load(self, tmp_path) -> None:
        store = JsonFileStore(tmp_path / "maps")
        payload = serialize(MindMap.fresh(10, 20))
        store.save("demo", payload)
        assert (tmp_path / "maps" / "demo.json").exists()
        assert store.load("demo") == payload
        assert store.ids() == ["demo"]

    def test_missing_map(self, tmp_path) -> None:
        with pytest.raises(MapNotFoundError):
            JsonFileStore(tmp_path).load("nothing")

    def test_rejects_path_like_ids(self, tmp_path) -> None:
        with pytest.raises(MindMapError):
            JsonFileStore(tmp_path).path_for("../escape")

    def test_ids_of_missing_directory(self, tmp_path) -> None:
        assert JsonFileStore(tmp_path / "absent").ids() == []


def test_serialize_stamps_update_time() -> None:
    payload = serialize(MindMap.fresh())
    assert payload["updatedAt"].endswith("Z")
    assert payload["version"] == 2


class TestLoadOrFresh:
    def test_loads_stored_map(self) -> None:
        store = MemoryStore()
        store.save("m", MindMap.fresh(5, 5).to_dict())
        mind_map, loaded = load_or_fresh(store, "m", lambda: MindMap.fresh(0, 0))
        assert loaded
        assert mind_map.get_node(ROOT_ID).x == 5

    def test_missing_falls_back(self) -> None:
        mind_map, loaded = load_or_fresh(MemoryStore(), "m", lambda: MindMap.fresh(1, 2))
        assert not loaded
        assert mind_map == MindMap.fresh(1, 2)

    @pytest.mark.parametrize("raw", [
        "{not json",
        json.dumps({"nodes": [{"id": "orphan", "text": "", "x": 0, "y": 0}]}),
        json.dumps([1, 2, 3]),
    ])
    def test_corrupt_payload_falls_back(self, raw) -> None:
        store = MemoryStore()
        store.put_raw("m", raw)
        mind_map, loaded = load_or_fresh(store, "m", lambda: MindMap.fresh(0, 0))
        assert not loaded
        assert len(mind_map.nodes) == 1

    def test_corrupt_file_falls_back(self, tmp_path) -> None:
        (tmp_path / "bad.json").write_text("]]", encoding="utf-8")
        _, loaded = load_or_fresh(JsonFileStore(tmp_path), "bad", MindMap.fresh)
        assert not loaded

    def test_non_utf8_file_falls_back(self, tmp_path) -> None:
        (tmp_path / "bad.json").write_bytes(b'{"nodes": "\xff\xfe"}')
        mind_map, loaded = load_or_fresh(JsonFileStore(tmp_path), "bad", MindMap.fresh)
        assert not loaded
        assert mind_map.get_node(ROOT_ID) is not None

    def test_non_utf8_file_raises_deserialization_error(self, tmp_path) -> None:
        (tmp_path / "bad.json").write_bytes(b"\xff\xfe")
        with pytest.raises(DeserializationError):
            JsonFileStore(tmp_path).load("bad")


class TestDebouncedSaver:
    def test_burst_coalesces_into_one_save(self) -> None:
        store = MemoryStore()
        saver = DebouncedSaver(store, timer_factory=FakeTimer)
        for i in range(5):
            saver.schedule("m", lambda i=i: {"n": i})
        assert len(FakeTimer.created) == 5
        assert all(t.cancelled for t in FakeTimer.created[:-1])
        assert FakeTimer.created[-1].delay == 1.0
        FakeTimer.created[-1].fire()
        assert saver.save_count == 1
        assert store.load("m") == {"n": 4}
        assert not saver.pending

    def test_payload_is_built_when_timer_fires(self) -> None:
        store = MemoryStore()
        saver = DebouncedSaver(store, timer_factory=FakeTimer)
        state = {"value": 1}
        saver.schedule("m", lambda: dict(state))
        state["value"] = 2
        FakeTimer.created[-1].fire()
        assert store.load("m") == {"value": 2}

    def test_cancel_drops_pending(self) -> None:
        store = MemoryStore()
        saver = DebouncedSaver(store, timer_factory=FakeTimer)
        saver.schedule("m", lambda: {})
        saver.cancel()
        FakeTimer.created[-1].fire()
        assert store.ids() == []
        assert saver.save_count == 0

    def test_flush_writes_immediately(self) -> None:
        store = MemoryStore()
        saver = DebouncedSaver(store, timer_factory=FakeTimer)
        assert saver.flush() is False
        saver.schedule("m", lambda: {"a": 1})
        assert saver.flush() is True
        assert store.load("m") == {"a": 1}
        assert FakeTimer.created[-1].cancelled

    def test_failed_write_is_logged_not_raised(self, caplog) -> None:
        class Broken:
            def save(self, map_id, payload):
                raise OSError("disk full")

        saver = DebouncedSaver(Broken(), timer_factory=FakeTimer)
        saver.schedule("m", lambda: {})
        FakeTimer.created[-1].fire()
        assert saver.save_count == 0
        assert "Saving mind map 'm' failed" in caplog.text
