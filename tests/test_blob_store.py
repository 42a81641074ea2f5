"""
Tests for the content-addressed blob store.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from unittest.mock import patch

import pytest

from packstore.exceptions import StorageError
from packstore.storage.blob_store import BlobStore


@pytest.fixture
def blob_store(temp_dir: Path) -> BlobStore:
    store = BlobStore(temp_dir / "packs")
    store.init()
    return store


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class TestBlobStoreInit:
    """Test directory preparation."""

    def test_init_creates_directory(self, temp_dir: Path) -> None:
        store = BlobStore(temp_dir / "nested" / "packs")
        store.init()
        assert (temp_dir / "nested" / "packs").is_dir()

    def test_init_rejects_file(self, temp_dir: Path) -> None:
        """Test that a file in place of the directory is an error."""
        (temp_dir / "packs").write_text("oops")
        with pytest.raises(StorageError):
            BlobStore(temp_dir / "packs").init()


class TestBlobStoreReadWrite:
    """Test write/resolve/delete."""

    def test_write_and_resolve(self, blob_store: BlobStore) -> None:
        data = b"resource pack bytes"
        key = sha1(data)

        path = blob_store.write(key, data)

        assert path == blob_store.packs_dir / key
        assert blob_store.resolve(key) == path
        assert path.read_bytes() == data
        assert blob_store.exists(key)
        assert blob_store.size(key) == len(data)

    def test_resolve_missing(self, blob_store: BlobStore) -> None:
        assert blob_store.resolve(sha1(b"nothing")) is None
        assert blob_store.size(sha1(b"nothing")) is None

    def test_write_existing_is_noop(self, blob_store: BlobStore) -> None:
        """Test that rewriting an existing key leaves one file."""
        data = b"same"
        key = sha1(data)
        blob_store.write(key, data)
        blob_store.write(key, data)

        assert list(blob_store.list_all()) == [key]

    def test_write_failure_raises_and_leaves_nothing(self, blob_store: BlobStore) -> None:
        """Test that a failed write raises StorageError without a visible blob."""
        data = b"doomed"
        key = sha1(data)

        with patch("packstore.storage.blob_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError) as exc_info:
                blob_store.write(key, data)

        assert exc_info.value.context["content_hash"] == key
        assert blob_store.resolve(key) is None
        assert list(blob_store.list_all()) == []

    def test_delete(self, blob_store: BlobStore) -> None:
        key = sha1(b"x")
        blob_store.write(key, b"x")

        assert blob_store.delete(key) is True
        assert blob_store.resolve(key) is None

    def test_delete_missing_is_success(self, blob_store: BlobStore) -> None:
        assert blob_store.delete(sha1(b"never stored")) is True

    def test_delete_failure_returns_false(self, blob_store: BlobStore) -> None:
        key = sha1(b"x")
        blob_store.write(key, b"x")

        with patch.object(Path, "unlink", side_effect=PermissionError("denied")):
            assert blob_store.delete(key) is False

        assert blob_store.exists(key)


class TestBlobStoreKeys:
    """Test key validation and enumeration."""

    @pytest.mark.parametrize("key", ["", ".", "..", "../registry.json", "a/b", "a\\b"])
    def test_invalid_keys_rejected(self, blob_store: BlobStore, key: str) -> None:
        with pytest.raises(ValueError):
            blob_store.write(key, b"data")
        assert blob_store.resolve(key) is None
        assert blob_store.exists(key) is False

    def test_list_all_rereads_directory(self, blob_store: BlobStore) -> None:
        """Test that each enumeration reflects the current directory."""
        assert list(blob_store.list_all()) == []

        a, b = sha1(b"a"), sha1(b"b")
        blob_store.write(a, b"a")
        assert list(blob_store.list_all()) == [a]

        blob_store.write(b, b"b")
        assert sorted(blob_store.list_all()) == sorted([a, b])

    def test_list_all_ignores_subdirectories(self, blob_store: BlobStore) -> None:
        (blob_store.packs_dir / "subdir").mkdir()
        assert list(blob_store.list_all()) == []

    def test_list_all_missing_directory(self, temp_dir: Path) -> None:
        assert list(BlobStore(temp_dir / "absent").list_all()) == []
