"""
File vault service.

Upload, download, delete and shared-download flows built from the envelope
cipher, the record storage, the blob store and the share engine.

Architecture:
- Blob store: ciphertext only, under a random stored name
- Record storage: file metadata plus envelope (iv, auth tag, wrapped key)
- Master key: held in memory, passed in at construction, never persisted
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Union
from uuid import UUID, uuid4

from .audit import AuditAction, AuditEvent, AuditSink, report
from .blobs import BlobStore
from .clock import Clock, utc_now
from .crypto import SecureKey
from .envelope import EnvelopeCipher
from .errors import AccessDeniedError, RecordNotFoundError
from .shares import Denied, ShareAuthorizer
from .storage import FileRecord, Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecryptedFile:
    """A file record together with its plaintext."""

    file: FileRecord
    data: bytes


@dataclass(frozen=True)
class SharedDownload:
    """Plaintext released through a share link."""

    file: FileRecord
    data: bytes
    access_count: int


def stored_name_for_upload() -> str:
    """Random blob name: ``<epoch-ms>-<uuid4>.enc``."""
    return f"{int(time.time() * 1000)}-{uuid4()}.enc"


class FileVault:
    """
    Encrypted file storage with share links.

    Owner checks report a missing file as RecordNotFoundError and a file
    owned by someone else as AccessDeniedError.
    """

    def __init__(
        self,
        storage: Storage,
        blobs: BlobStore,
        master_key: SecureKey,
        audit_sink: Optional[AuditSink] = None,
        authorizer: Optional[ShareAuthorizer] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._storage = storage
        self._blobs = blobs
        self._master_key = master_key
        self._audit = audit_sink
        self._clock = clock
        self._shares = authorizer or ShareAuthorizer(storage, audit_sink, clock=clock)

    @property
    def shares(self) -> ShareAuthorizer:
        """Share engine bound to the same storage."""
        return self._shares

    async def upload(
        self,
        owner_id: UUID,
        original_name: str,
        mime_type: str,
        data: bytes,
        source_address: Optional[str] = None,
    ) -> FileRecord:
        """Encrypt and store a file."""
        sealed = await asyncio.to_thread(EnvelopeCipher.seal, data, self._master_key)
        record = FileRecord(
            id=uuid4(),
            owner_id=owner_id,
            original_name=original_name,
            stored_name=stored_name_for_upload(),
            mime_type=mime_type,
            size=len(data),
            envelope_columns=sealed.envelope.to_columns(),
            created_at=self._clock(),
        )

        await self._blobs.write(record.stored_name, sealed.ciphertext)
        try:
            await self._storage.insert_file(record)
        except Exception:
            await self._blobs.delete(record.stored_name)
            raise

        logger.info("Stored file %s (%d bytes)", record.id, record.size)
        await self._audit_file(
            AuditAction.FILE_UPLOAD,
            f"Uploaded file: {original_name}",
            owner_id,
            record.id,
            source_address,
        )
        return record

    async def list_files(self, owner_id: UUID) -> List[FileRecord]:
        """An owner's files, newest first."""
        return await self._storage.list_files(owner_id)

    async def download(
        self,
        file_id: UUID,
        owner_id: UUID,
        source_address: Optional[str] = None,
    ) -> DecryptedFile:
        """
        Decrypt one of the owner's files.

        Raises:
            RecordNotFoundError: Unknown file
            AccessDeniedError: File owned by someone else
            DecryptionError: Ciphertext or envelope failed authentication
            MalformedEnvelopeError: Stored envelope columns are corrupt
        """
        record = await self._owned_file(file_id, owner_id)
        data = await self._decrypt(record)

        await self._audit_file(
            AuditAction.FILE_DOWNLOAD,
            f"Downloaded file: {record.original_name}",
            owner_id,
            record.id,
            source_address,
        )
        return DecryptedFile(file=record, data=data)

    async def delete(
        self,
        file_id: UUID,
        owner_id: UUID,
        source_address: Optional[str] = None,
    ) -> None:
        """Delete a file, its ciphertext and its shares."""
        record = await self._owned_file(file_id, owner_id)

        if not await self._blobs.delete(record.stored_name):
            logger.warning("Blob already missing: %s", record.stored_name)
        await self._storage.delete_file(record.id)

        await self._audit_file(
            AuditAction.FILE_DELETE,
            f"Deleted file: {record.original_name}",
            owner_id,
            None,
            source_address,
        )

    async def download_shared(
        self,
        share_key: str,
        password: Optional[str] = None,
        source_address: Optional[str] = None,
    ) -> Union[SharedDownload, Denied]:
        """Authorize a share link and decrypt the file behind it."""
        decision = await self._shares.attempt(share_key, password, source_address)
        if isinstance(decision, Denied):
            return decision

        data = await self._decrypt(decision.file)

        await report(
            self._audit,
            AuditEvent(
                action=AuditAction.SHARE_LINK_DOWNLOADED,
                detail=f"Downloaded via link: {share_key}",
                file_id=decision.file.id,
                source_address=source_address,
                timestamp=self._clock(),
            ),
        )
        return SharedDownload(
            file=decision.file, data=data, access_count=decision.access_count
        )

    async def _owned_file(self, file_id: UUID, owner_id: UUID) -> FileRecord:
        record = await self._storage.get_file(file_id)
        if record is None:
            raise RecordNotFoundError(f"File {file_id}")
        if record.owner_id != owner_id:
            raise AccessDeniedError(f"File {file_id} belongs to another user")
        return record

    async def _decrypt(self, record: FileRecord) -> bytes:
        ciphertext = await self._blobs.read(record.stored_name)
        return await asyncio.to_thread(
            EnvelopeCipher.open, ciphertext, record.envelope, self._master_key
        )

    async def _audit_file(
        self,
        action: AuditAction,
        detail: str,
        actor: UUID,
        file_id: Optional[UUID],
        source_address: Optional[str],
    ) -> None:
        await report(
            self._audit,
            AuditEvent(
                action=action,
                detail=detail,
                actor=actor,
                file_id=file_id,
                source_address=source_address,
                timestamp=self._clock(),
            ),
        )
