"""
Storage abstractions for file and share records.

This module provides:
- Storage: Abstract interface for persistent record backends
- InMemoryStorage: asyncio-safe in-memory implementation for testing
- Record types: FileRecord, ShareRecord
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Mapping, Optional
from uuid import UUID

from .clock import utc_now
from .envelope import EncryptionEnvelope
from .errors import RecordNotFoundError, UniquenessConflictError


@dataclass(frozen=True)
class FileRecord:
    """
    Stored file metadata, including its encryption envelope.

    The envelope is kept as its stored column values (``iv``, ``auth_tag``,
    ``encrypted_key``) and parsed on access, so metadata reads never depend
    on the envelope being intact.
    """

    id: UUID
    owner_id: UUID
    original_name: str
    stored_name: str  # Blob name of the ciphertext
    mime_type: str
    size: int  # Plaintext size in bytes
    envelope_columns: Mapping[str, str] = field(hash=False)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def envelope(self) -> EncryptionEnvelope:
        """
        Parsed envelope.

        Raises:
            MalformedEnvelopeError: If the stored columns cannot be parsed
        """
        return EncryptionEnvelope.from_mapping(self.envelope_columns)


@dataclass(frozen=True)
class ShareRecord:
    """
    Public share link for a file.

    ``password_hash`` is an Argon2 encoded hash, never the password.
    ``expires_at`` of None means the link never expires.
    """

    share_key: str
    file_id: UUID
    password_hash: Optional[str] = None
    expires_at: Optional[datetime] = None
    access_count: int = 0
    created_at: datetime = field(default_factory=utc_now)

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def __repr__(self) -> str:
        return (
            f"ShareRecord(share_key={self.share_key!r}, file_id={self.file_id!r}, "
            f"has_password={self.has_password}, expires_at={self.expires_at!r}, "
            f"access_count={self.access_count})"
        )


class Storage(ABC):
    """
    Abstract storage interface for file and share records.

    All methods are async to support both in-memory and database backends.
    """

    @abstractmethod
    async def insert_file(self, record: FileRecord) -> None:
        """Store a new file record."""
        ...

    @abstractmethod
    async def get_file(self, file_id: UUID) -> Optional[FileRecord]:
        """Get a file record by ID."""
        ...

    @abstractmethod
    async def list_files(self, owner_id: UUID) -> List[FileRecord]:
        """List an owner's files, newest first."""
        ...

    @abstractmethod
    async def delete_file(self, file_id: UUID) -> bool:
        """Delete a file record and every share pointing at it."""
        ...

    @abstractmethod
    async def insert_share(self, record: ShareRecord) -> None:
        """
        Store a new share record.

        Raises:
            UniquenessConflictError: If the share key already exists
            RecordNotFoundError: If the file does not exist
        """
        ...

    @abstractmethod
    async def get_share(self, share_key: str) -> Optional[ShareRecord]:
        """Get a share record by its public key."""
        ...

    @abstractmethod
    async def list_shares_for_file(self, file_id: UUID) -> List[ShareRecord]:
        """List the shares of one file."""
        ...

    @abstractmethod
    async def delete_share(self, share_key: str) -> bool:
        """Delete a share record."""
        ...

    @abstractmethod
    async def increment_access_count(
        self, share_key: str, now: datetime
    ) -> Optional[int]:
        """
        Atomically add one to a share's access count.

        The increment only applies while the share exists and is unexpired at
        ``now``.

        Returns:
            The new count, or None if nothing was updated
        """
        ...


class InMemoryStorage(Storage):
    """
    In-memory storage implementation for testing.

    Uses asyncio.Lock for safe concurrent access.
    """

    def __init__(self) -> None:
        self._files: Dict[UUID, FileRecord] = {}
        self._shares: Dict[str, ShareRecord] = {}
        self._lock = asyncio.Lock()

    async def insert_file(self, record: FileRecord) -> None:
        """Store a new file record."""
        async with self._lock:
            if record.id in self._files:
                raise UniquenessConflictError(f"File {record.id} already exists")
            self._files[record.id] = record

    async def get_file(self, file_id: UUID) -> Optional[FileRecord]:
        """Get a file record by ID."""
        async with self._lock:
            return self._files.get(file_id)

    async def list_files(self, owner_id: UUID) -> List[FileRecord]:
        """List an owner's files, newest first."""
        async with self._lock:
            files = [f for f in self._files.values() if f.owner_id == owner_id]
        return sorted(files, key=lambda f: f.created_at, reverse=True)

    async def delete_file(self, file_id: UUID) -> bool:
        """Delete a file record and every share pointing at it."""
        async with self._lock:
            if self._files.pop(file_id, None) is None:
                return False
            for key in [k for k, s in self._shares.items() if s.file_id == file_id]:
                del self._shares[key]
            return True

    async def insert_share(self, record: ShareRecord) -> None:
        """Store a new share record."""
        async with self._lock:
            if record.file_id not in self._files:
                raise RecordNotFoundError(f"File {record.file_id}")
            if record.share_key in self._shares:
                raise UniquenessConflictError("Share key already exists")
            self._shares[record.share_key] = record

    async def get_share(self, share_key: str) -> Optional[ShareRecord]:
        """Get a share record by its public key."""
        async with self._lock:
            return self._shares.get(share_key)

    async def list_shares_for_file(self, file_id: UUID) -> List[ShareRecord]:
        """List the shares of one file."""
        async with self._lock:
            return [s for s in self._shares.values() if s.file_id == file_id]

    async def delete_share(self, share_key: str) -> bool:
        """Delete a share record."""
        async with self._lock:
            return self._shares.pop(share_key, None) is not None

    async def increment_access_count(
        self, share_key: str, now: datetime
    ) -> Optional[int]:
        """Atomically add one to a share's access count."""
        async with self._lock:
            share = self._shares.get(share_key)
            if share is None:
                return None
            if share.expires_at is not None and now >= share.expires_at:
                return None
            updated = replace(share, access_count=share.access_count + 1)
            self._shares[share_key] = updated
            return updated.access_count
