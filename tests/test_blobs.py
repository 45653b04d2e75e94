"""Tests for the local blob store."""

import pytest

from sharevault import LocalBlobStore, RecordNotFoundError, StorageError


async def test_write_read_delete(blob_store):
    await blob_store.write("one.enc", b"\x00\x01\x02")

    assert await blob_store.read("one.enc") == b"\x00\x01\x02"
    assert await blob_store.delete("one.enc") is True
    assert await blob_store.delete("one.enc") is False


async def test_read_missing_blob(blob_store):
    with pytest.raises(RecordNotFoundError):
        await blob_store.read("missing.enc")


@pytest.mark.parametrize("name", ["", "../escape.enc", "nested/dir.enc", "/etc/passwd"])
async def test_names_outside_root_rejected(blob_store, name):
    with pytest.raises(StorageError):
        await blob_store.write(name, b"data")


def test_root_is_created(tmp_path):
    store = LocalBlobStore(tmp_path / "a" / "b")
    assert store.root.is_dir()
