"""Tests for the runtime mirror."""

from mirrorcache.cache.mirror import RuntimeMirror


class TestRuntimeMirror:
    """Test in-process entry storage."""

    def test_get_missing(self) -> None:
        """A miss is distinguishable from a stored None."""
        mirror = RuntimeMirror()
        mirror.put("k", None)
        assert mirror.get("k") == (None, True)
        assert mirror.get("other") == (None, False)

    def test_records_are_copied_on_write(self) -> None:
        mirror = RuntimeMirror()
        record = {"n": 1}
        mirror.put("k", record)
        record["n"] = 2
        assert mirror.get("k") == ({"n": 1}, True)

    def test_records_are_copied_on_read(self) -> None:
        mirror = RuntimeMirror()
        mirror.put("k", {"items": []})
        value, _ = mirror.get("k")
        value["items"].append(1)
        assert mirror.peek("k") == {"items": []}

    def test_delete(self) -> None:
        mirror = RuntimeMirror()
        mirror.put("k", 0)
        assert mirror.delete("k") is True
        assert mirror.delete("k") is False
        assert "k" not in mirror

    def test_update_and_clear(self) -> None:
        mirror = RuntimeMirror()
        mirror.update({"a": 1, "b": 2})
        assert len(mirror) == 2
        assert sorted(mirror) == ["a", "b"]
        mirror.clear()
        assert mirror.keys() == []
