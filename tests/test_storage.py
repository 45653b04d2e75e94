"""Tests for the in-memory record storage."""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from sharevault import (
    EnvelopeCipher,
    FileRecord,
    InMemoryStorage,
    RecordNotFoundError,
    SecureKey,
    ShareRecord,
    UniquenessConflictError,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_file(owner_id=None):
    sealed = EnvelopeCipher.seal(b"data", SecureKey.generate())
    return FileRecord(
        id=uuid4(),
        owner_id=owner_id or uuid4(),
        original_name="a.txt",
        stored_name=f"{uuid4()}.enc",
        mime_type="text/plain",
        size=4,
        envelope_columns=sealed.envelope.to_columns(),
        created_at=NOW,
    )


async def test_share_requires_existing_file(memory_storage):
    with pytest.raises(RecordNotFoundError):
        await memory_storage.insert_share(ShareRecord(share_key="k" * 32, file_id=uuid4()))


async def test_duplicate_share_key_rejected(memory_storage):
    file = make_file()
    await memory_storage.insert_file(file)
    await memory_storage.insert_share(ShareRecord(share_key="k" * 32, file_id=file.id))

    with pytest.raises(UniquenessConflictError):
        await memory_storage.insert_share(ShareRecord(share_key="k" * 32, file_id=file.id))


async def test_delete_file_cascades_to_shares(memory_storage):
    kept, dropped = make_file(), make_file()
    await memory_storage.insert_file(kept)
    await memory_storage.insert_file(dropped)
    await memory_storage.insert_share(ShareRecord(share_key="a" * 32, file_id=kept.id))
    await memory_storage.insert_share(ShareRecord(share_key="b" * 32, file_id=dropped.id))

    assert await memory_storage.delete_file(dropped.id) is True
    assert await memory_storage.delete_file(dropped.id) is False
    assert await memory_storage.get_share("b" * 32) is None
    assert await memory_storage.get_share("a" * 32) is not None


async def test_deleting_share_keeps_file(memory_storage):
    file = make_file()
    await memory_storage.insert_file(file)
    await memory_storage.insert_share(ShareRecord(share_key="a" * 32, file_id=file.id))

    assert await memory_storage.delete_share("a" * 32) is True
    assert await memory_storage.get_file(file.id) == file
    assert await memory_storage.list_shares_for_file(file.id) == []


async def test_increment_respects_expiry(memory_storage):
    file = make_file()
    await memory_storage.insert_file(file)
    await memory_storage.insert_share(
        ShareRecord(share_key="a" * 32, file_id=file.id, expires_at=NOW + timedelta(hours=1))
    )

    assert await memory_storage.increment_access_count("a" * 32, NOW) == 1
    assert await memory_storage.increment_access_count("a" * 32, NOW + timedelta(hours=1)) is None
    assert await memory_storage.increment_access_count("missing", NOW) is None
    assert (await memory_storage.get_share("a" * 32)).access_count == 1


async def test_concurrent_increments():
    storage = InMemoryStorage()
    file = make_file()
    await storage.insert_file(file)
    await storage.insert_share(ShareRecord(share_key="a" * 32, file_id=file.id))

    counts = await asyncio.gather(
        *(storage.increment_access_count("a" * 32, NOW) for _ in range(50))
    )

    assert sorted(counts) == list(range(1, 51))
