"""
Tests for the registry index and its snapshot.
"""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from packstore.exceptions import IndexPersistenceError
from packstore.registry.index import RegistryIndex
from packstore.types import RegistryEntry


@pytest.fixture
def index(temp_dir: Path) -> RegistryIndex:
    return RegistryIndex(temp_dir / "registry.json")


def make_entry(origin: str = "mc-server-1", ip: str = "10.0.0.5", ts: int = 100) -> RegistryEntry:
    return RegistryEntry(origin_id=origin, source_address=ip, last_access=ts)


class TestRegistryIndexMapping:
    """Test in-memory operations."""

    def test_put_get_remove(self, index: RegistryIndex) -> None:
        """Test basic mapping operations."""
        entry = make_entry()
        index.put("abc", entry)

        assert index.get("abc") == entry
        assert "abc" in index
        assert len(index) == 1

        assert index.remove("abc") == entry
        assert index.get("abc") is None
        assert index.remove("abc") is None

    def test_update_mutates_existing_entry(self, index: RegistryIndex) -> None:
        """Test that update applies the mutator in place."""
        index.put("abc", make_entry(ts=100))

        updated = index.update("abc", lambda e: e.touch(250))

        assert updated is not None
        assert index.get("abc").last_access == 250

    def test_update_unknown_hash_returns_none(self, index: RegistryIndex) -> None:
        calls: list[RegistryEntry] = []
        assert index.update("missing", calls.append) is None
        assert calls == []

    def test_put_overwrites(self, index: RegistryIndex) -> None:
        index.put("abc", make_entry(origin="first"))
        index.put("abc", make_entry(origin="second"))

        assert len(index) == 1
        assert index.get("abc").origin_id == "second"

    def test_items_safe_during_removal(self, index: RegistryIndex) -> None:
        """Test that entries can be removed while iterating items()."""
        for i in range(5):
            index.put(f"h{i}", make_entry(ts=i))

        for content_hash, _ in index.items():
            index.remove(content_hash)

        assert len(index) == 0


class TestRegistrySnapshot:
    """Test save/load behavior."""

    def test_round_trip(self, index: RegistryIndex, temp_dir: Path) -> None:
        """Test that save then load reproduces every entry and field."""
        index.put("aa" * 20, make_entry("server-a", "10.0.0.1", 1_700_000_000))
        index.put("bb" * 20, make_entry("server-b", "2001:db8::1", 1_700_000_500))
        assert index.save() is True

        reloaded = RegistryIndex(temp_dir / "registry.json")
        assert reloaded.load() is True

        assert dict(reloaded.items()) == dict(index.items())

    def test_snapshot_format(self, index: RegistryIndex, temp_dir: Path) -> None:
        """Test the on-disk field names."""
        index.put("abc", make_entry("mc-server-1", "10.0.0.5", 42))
        index.save()

        data = orjson.loads((temp_dir / "registry.json").read_bytes())
        assert data == {"abc": {"id": "mc-server-1", "ip": "10.0.0.5", "last_download": 42}}

    def test_save_leaves_no_temp_files(self, index: RegistryIndex, temp_dir: Path) -> None:
        index.put("abc", make_entry())
        index.save()
        index.save()

        assert sorted(p.name for p in temp_dir.iterdir()) == ["registry.json"]

    def test_load_replaces_state(self, index: RegistryIndex, temp_dir: Path) -> None:
        """Test that load discards entries not in the snapshot."""
        index.put("kept", make_entry())
        index.save()
        index.put("unsaved", make_entry())

        assert index.load() is True
        assert [key for key, _ in index.items()] == ["kept"]

    def test_load_corrupt_snapshot_keeps_state(
        self, index: RegistryIndex, temp_dir: Path
    ) -> None:
        """Test that a parse failure leaves memory untouched."""
        index.put("abc", make_entry())
        (temp_dir / "registry.json").write_text("{not json")

        assert index.load() is False
        assert [key for key, _ in index.items()] == ["abc"]

    def test_load_missing_field_fails(self, index: RegistryIndex, temp_dir: Path) -> None:
        (temp_dir / "registry.json").write_text('{"abc": {"id": "x", "ip": "y"}}')
        assert index.load() is False
        assert len(index) == 0

    def test_load_non_object_fails(self, index: RegistryIndex, temp_dir: Path) -> None:
        (temp_dir / "registry.json").write_text("[1, 2, 3]")
        assert index.load() is False

    def test_load_missing_file_fails(self, index: RegistryIndex) -> None:
        assert index.exists() is False
        assert index.load() is False

    def test_strict_load_raises(self, index: RegistryIndex, temp_dir: Path) -> None:
        """Test that strict load raises IndexPersistenceError."""
        (temp_dir / "registry.json").write_text("garbage")

        with pytest.raises(IndexPersistenceError) as exc_info:
            index.load(strict=True)

        assert exc_info.value.context["path"] == str(temp_dir / "registry.json")

    def test_save_failure_keeps_state(self, temp_dir: Path) -> None:
        """Test that an unwritable location reports failure without losing entries."""
        blocker = temp_dir / "blocker"
        blocker.write_text("a file, not a directory")
        index = RegistryIndex(blocker / "registry.json")
        index.put("abc", make_entry())

        assert index.save() is False
        assert [key for key, _ in index.items()] == ["abc"]
