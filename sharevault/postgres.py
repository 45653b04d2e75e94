"""
PostgreSQL storage backend.

This module provides:
- PostgresStorage: asyncpg-backed Storage for file and share records
- PostgresAuditSink: audit events kept in the ``audit_logs`` table

Tables are defined in ``schema.sql``. Envelope fields are stored as the three
text columns ``iv``, ``auth_tag`` and ``encrypted_key``.

Access counts are incremented with a single conditional UPDATE, so
concurrent requests never lose an increment and an expired share is never
counted.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

import asyncpg

from .audit import ACTIVITY_LIMIT, AuditAction, AuditEvent, AuditLog
from .errors import RecordNotFoundError, StorageError, UniquenessConflictError
from .storage import FileRecord, ShareRecord, Storage

_FILE_COLUMNS = """
    id, owner_id, original_name, stored_name, mime_type, size,
    iv, auth_tag, encrypted_key, created_at
"""

_SHARE_COLUMNS = """
    share_key, file_id, password_hash, expires_at, access_count, created_at
"""


class PostgresStorage(Storage):
    """PostgreSQL storage backend for file and share records."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        """
        Initialize PostgreSQL storage.

        Args:
            pool: asyncpg connection pool
        """
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def insert_file(self, record: FileRecord) -> None:
        """Store a new file record."""
        columns = record.envelope_columns
        query = f"""
            INSERT INTO files ({_FILE_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        """
        try:
            await self._pool.execute(
                query,
                record.id,
                record.owner_id,
                record.original_name,
                record.stored_name,
                record.mime_type,
                record.size,
                columns["iv"],
                columns["auth_tag"],
                columns["encrypted_key"],
                record.created_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise UniquenessConflictError(f"File {record.id} already exists") from e
        except Exception as e:
            raise StorageError(f"Failed to store file: {e}") from e

    async def get_file(self, file_id: UUID) -> Optional[FileRecord]:
        """Get a file record by ID."""
        query = f"SELECT {_FILE_COLUMNS} FROM files WHERE id = $1"
        try:
            row = await self._pool.fetchrow(query, file_id)
        except Exception as e:
            raise StorageError(f"Failed to get file: {e}") from e
        if row is None:
            return None
        return self._row_to_file(row)

    async def list_files(self, owner_id: UUID) -> List[FileRecord]:
        """List an owner's files, newest first."""
        query = f"""
            SELECT {_FILE_COLUMNS} FROM files
            WHERE owner_id = $1
            ORDER BY created_at DESC
        """
        try:
            rows = await self._pool.fetch(query, owner_id)
        except Exception as e:
            raise StorageError(f"Failed to list files: {e}") from e
        return [self._row_to_file(row) for row in rows]

    async def delete_file(self, file_id: UUID) -> bool:
        """Delete a file record; shares go with it (ON DELETE CASCADE)."""
        try:
            status = await self._pool.execute("DELETE FROM files WHERE id = $1", file_id)
        except Exception as e:
            raise StorageError(f"Failed to delete file: {e}") from e
        return _affected(status) > 0

    async def insert_share(self, record: ShareRecord) -> None:
        """Store a new share record."""
        query = f"""
            INSERT INTO shared_links ({_SHARE_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6)
        """
        try:
            await self._pool.execute(
                query,
                record.share_key,
                record.file_id,
                record.password_hash,
                record.expires_at,
                record.access_count,
                record.created_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise UniquenessConflictError("Share key already exists") from e
        except asyncpg.ForeignKeyViolationError as e:
            raise RecordNotFoundError(f"File {record.file_id}") from e
        except Exception as e:
            raise StorageError(f"Failed to store share: {e}") from e

    async def get_share(self, share_key: str) -> Optional[ShareRecord]:
        """Get a share record by its public key."""
        query = f"SELECT {_SHARE_COLUMNS} FROM shared_links WHERE share_key = $1"
        try:
            row = await self._pool.fetchrow(query, share_key)
        except Exception as e:
            raise StorageError(f"Failed to get share: {e}") from e
        if row is None:
            return None
        return self._row_to_share(row)

    async def list_shares_for_file(self, file_id: UUID) -> List[ShareRecord]:
        """List the shares of one file."""
        query = f"""
            SELECT {_SHARE_COLUMNS} FROM shared_links
            WHERE file_id = $1
            ORDER BY created_at DESC
        """
        try:
            rows = await self._pool.fetch(query, file_id)
        except Exception as e:
            raise StorageError(f"Failed to list shares: {e}") from e
        return [self._row_to_share(row) for row in rows]

    async def delete_share(self, share_key: str) -> bool:
        """Delete a share record."""
        try:
            status = await self._pool.execute(
                "DELETE FROM shared_links WHERE share_key = $1", share_key
            )
        except Exception as e:
            raise StorageError(f"Failed to delete share: {e}") from e
        return _affected(status) > 0

    async def increment_access_count(
        self, share_key: str, now: datetime
    ) -> Optional[int]:
        """Atomically add one to an unexpired share's access count."""
        query = """
            UPDATE shared_links
            SET access_count = access_count + 1
            WHERE share_key = $1
              AND (expires_at IS NULL OR expires_at > $2)
            RETURNING access_count
        """
        try:
            return await self._pool.fetchval(query, share_key, now)
        except Exception as e:
            raise StorageError(f"Failed to increment access count: {e}") from e

    @staticmethod
    def _row_to_file(row: asyncpg.Record) -> FileRecord:
        """Convert database row to FileRecord."""
        return FileRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            original_name=row["original_name"],
            stored_name=row["stored_name"],
            mime_type=row["mime_type"],
            size=row["size"],
            envelope_columns={
                "iv": row["iv"],
                "auth_tag": row["auth_tag"],
                "encrypted_key": row["encrypted_key"],
            },
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_share(row: asyncpg.Record) -> ShareRecord:
        """Convert database row to ShareRecord."""
        return ShareRecord(
            share_key=row["share_key"],
            file_id=row["file_id"],
            password_hash=row["password_hash"],
            expires_at=row["expires_at"],
            access_count=row["access_count"],
            created_at=row["created_at"],
        )


class PostgresAuditSink(AuditLog):
    """Writes audit events to, and reads them from, the ``audit_logs`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def record(self, event: AuditEvent) -> None:
        query = """
            INSERT INTO audit_logs
                (user_id, file_id, action, details, ip_address, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
        """
        try:
            await self._pool.execute(
                query,
                event.actor,
                event.file_id,
                event.action.value,
                event.detail,
                event.source_address,
                event.timestamp,
            )
        except Exception as e:
            raise StorageError(f"Failed to record audit event: {e}") from e

    async def list_events(
        self, owner_id: UUID, limit: int = ACTIVITY_LIMIT
    ) -> List[AuditEvent]:
        """Recent events by the user or on the user's files, newest first."""
        query = """
            SELECT a.user_id, a.file_id, a.action, a.details, a.ip_address, a.created_at
            FROM audit_logs a
            LEFT JOIN files f ON f.id = a.file_id
            WHERE a.user_id = $1 OR f.owner_id = $1
            ORDER BY a.created_at DESC, a.id DESC
            LIMIT $2
        """
        try:
            rows = await self._pool.fetch(query, owner_id, limit)
        except Exception as e:
            raise StorageError(f"Failed to list audit events: {e}") from e
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: asyncpg.Record) -> AuditEvent:
        """Convert database row to AuditEvent."""
        return AuditEvent(
            action=AuditAction(row["action"]),
            detail=row["details"],
            actor=row["user_id"],
            file_id=row["file_id"],
            source_address=row["ip_address"],
            timestamp=row["created_at"],
        )


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``DELETE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0
