"""Tests for the upload / download / share flows."""

import re
from uuid import uuid4

import pytest

from sharevault import (
    AccessDeniedError,
    AuditAction,
    ContentDecryptError,
    DecryptionError,
    Denied,
    DenialReason,
    FileVault,
    RecordNotFoundError,
    SecureKey,
    SharedDownload,
)


async def test_upload_then_download(vault, owner_id, audit_sink):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"plain bytes", "198.51.100.7")
    result = await vault.download(record.id, owner_id)

    assert result.data == b"plain bytes"
    assert result.file == record
    assert record.size == len(b"plain bytes")
    assert audit_sink.actions() == [AuditAction.FILE_UPLOAD, AuditAction.FILE_DOWNLOAD]
    assert audit_sink.events[0].source_address == "198.51.100.7"
    assert audit_sink.events[0].actor == owner_id


async def test_blob_holds_only_ciphertext(vault, owner_id, blob_store):
    plaintext = b"top secret quarterly numbers"
    record = await vault.upload(owner_id, "q.csv", "text/csv", plaintext)

    assert re.fullmatch(r"\d+-[0-9a-f-]{36}\.enc", record.stored_name)
    stored = (blob_store.root / record.stored_name).read_bytes()
    assert plaintext not in stored
    assert len(stored) == len(plaintext)


async def test_download_checks_owner(vault, owner_id):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"data")

    with pytest.raises(AccessDeniedError):
        await vault.download(record.id, uuid4())
    with pytest.raises(RecordNotFoundError):
        await vault.download(uuid4(), owner_id)


async def test_tampered_blob_fails_closed(vault, owner_id, blob_store):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"original data")
    path = blob_store.root / record.stored_name
    data = bytearray(path.read_bytes())
    data[0] ^= 0xFF
    path.write_bytes(bytes(data))

    with pytest.raises(ContentDecryptError):
        await vault.download(record.id, owner_id)


async def test_list_files_newest_first(vault, owner_id, clock):
    first = await vault.upload(owner_id, "1.txt", "text/plain", b"1")
    clock.advance(seconds=5)
    second = await vault.upload(owner_id, "2.txt", "text/plain", b"2")
    await vault.upload(uuid4(), "other.txt", "text/plain", b"x")

    files = await vault.list_files(owner_id)
    assert [f.id for f in files] == [second.id, first.id]


async def test_delete_removes_blob_and_shares(vault, owner_id, blob_store, memory_storage):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"data")
    share = await vault.shares.create_share(record.id)

    await vault.delete(record.id, owner_id)

    assert not (blob_store.root / record.stored_name).exists()
    assert await memory_storage.get_file(record.id) is None
    assert await memory_storage.get_share(share.share_key) is None
    assert await vault.download_shared(share.share_key) == Denied(DenialReason.NOT_FOUND)


async def test_delete_tolerates_missing_blob(vault, owner_id, blob_store, audit_sink, caplog):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"data")
    (blob_store.root / record.stored_name).unlink()

    await vault.delete(record.id, owner_id)

    assert "Blob already missing" in caplog.text
    assert audit_sink.actions()[-1] is AuditAction.FILE_DELETE


async def test_delete_checks_owner(vault, owner_id):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"data")
    with pytest.raises(AccessDeniedError):
        await vault.delete(record.id, uuid4())


async def test_download_shared(vault, owner_id, audit_sink):
    record = await vault.upload(owner_id, "a.txt", "text/plain", b"shared data")
    share = await vault.shares.create_share(record.id, password="pw", owner_id=owner_id)

    denied = await vault.download_shared(share.share_key, "bad")
    assert denied == Denied(DenialReason.INVALID_PASSWORD)

    result = await vault.download_shared(share.share_key, "pw", source_address="192.0.2.1")
    assert isinstance(result, SharedDownload)
    assert result.data == b"shared data"
    assert result.access_count == 1

    assert audit_sink.actions() == [
        AuditAction.FILE_UPLOAD,
        AuditAction.SHARE_LINK_CREATED,
        AuditAction.SHARE_LINK_ACCESSED,
        AuditAction.SHARE_LINK_ACCESSED,
        AuditAction.SHARE_LINK_DOWNLOADED,
    ]
    assert audit_sink.events[-1].source_address == "192.0.2.1"


async def test_upload_with_other_master_key_cannot_be_read(
    memory_storage, blob_store, owner_id
):
    writer = FileVault(memory_storage, blob_store, SecureKey.generate())
    reader = FileVault(memory_storage, blob_store, SecureKey.generate())
    record = await writer.upload(owner_id, "a.txt", "text/plain", b"data")

    with pytest.raises(DecryptionError):
        await reader.download(record.id, owner_id)
