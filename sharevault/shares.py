"""
Share link authorization.

This module provides:
- ShareAuthorizer: creates shares and decides whether a link may be used
- SharePasswordHasher: Argon2id hashing for share passwords
- Result types: ShareInfo, Authorized, Denied, DenialReason, ShareStatus

Decision order for ``attempt``:
1. Unknown share key            -> NOT_FOUND
2. ``now >= expires_at``        -> EXPIRED
3. Password set, none supplied  -> PASSWORD_REQUIRED
4. Password set, mismatch       -> INVALID_PASSWORD
5. Otherwise the access count is incremented and the file is returned.

Denials are ordinary return values. Expired shares are never purged here;
expiry is evaluated against the injected clock on every read.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .audit import AuditAction, AuditEvent, AuditSink, report
from .clock import Clock, utc_now
from .errors import AccessDeniedError, RecordNotFoundError
from .storage import FileRecord, ShareRecord, Storage

logger = logging.getLogger(__name__)

SHARE_KEY_BYTES: int = 16  # 128 bits, 32 hex characters


class ShareStatus(Enum):
    """State of a share at a point in time."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    NOT_FOUND = "NOT_FOUND"


class DenialReason(Enum):
    """Why a share could not be used."""

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    PASSWORD_REQUIRED = "PASSWORD_REQUIRED"
    INVALID_PASSWORD = "INVALID_PASSWORD"

    @property
    def http_status(self) -> int:
        """Status code a web layer should answer with."""
        return _HTTP_STATUS[self]

    @property
    def message(self) -> str:
        """Caller-facing message; both password reasons read the same way."""
        return _MESSAGES[self]

    def __str__(self) -> str:
        return self.value


_HTTP_STATUS = {
    DenialReason.NOT_FOUND: 404,
    DenialReason.EXPIRED: 410,
    DenialReason.PASSWORD_REQUIRED: 401,
    DenialReason.INVALID_PASSWORD: 401,
}

_MESSAGES = {
    DenialReason.NOT_FOUND: "Link not found",
    DenialReason.EXPIRED: "Link expired",
    DenialReason.PASSWORD_REQUIRED: "Password required",
    DenialReason.INVALID_PASSWORD: "Invalid password",
}


@dataclass(frozen=True)
class ShareInfo:
    """Public-safe description of a share; never includes the hash."""

    share_key: str
    original_name: str
    size: int
    mime_type: str
    has_password: bool
    expires_at: Optional[datetime]


@dataclass(frozen=True)
class Authorized:
    """Access granted; ``file`` locates the ciphertext and its envelope."""

    file: FileRecord
    access_count: int

    allowed = True


@dataclass(frozen=True)
class Denied:
    """Access refused."""

    reason: DenialReason

    allowed = False


LookupResult = Union[ShareInfo, Denied]
AttemptResult = Union[Authorized, Denied]


def share_status(record: Optional[ShareRecord], now: datetime) -> ShareStatus:
    """Classify a share record at ``now``."""
    if record is None:
        return ShareStatus.NOT_FOUND
    if record.expires_at is not None and now >= record.expires_at:
        return ShareStatus.EXPIRED
    return ShareStatus.ACTIVE


def generate_share_key() -> str:
    """128 random bits, hex encoded."""
    return secrets.token_hex(SHARE_KEY_BYTES)


def expiry_for(now: datetime, ttl_hours: Optional[float]) -> Optional[datetime]:
    """
    Expiry timestamp for a time-to-live in hours.

    Zero or None means the share never expires.

    Raises:
        ValueError: If ttl_hours is negative
    """
    if ttl_hours is None or ttl_hours == 0:
        return None
    if ttl_hours < 0:
        raise ValueError(f"ttl_hours must not be negative, got {ttl_hours}")
    return now + timedelta(hours=ttl_hours)


class SharePasswordHasher:
    """Argon2id hashing for share passwords (salt embedded in the hash)."""

    def __init__(self, hasher: Optional[PasswordHasher] = None) -> None:
        self._ph = hasher or PasswordHasher()

    def hash(self, password: str) -> str:
        return self._ph.hash(password)

    def verify(self, stored_hash: str, password: str) -> bool:
        """Check a password attempt against the stored hash."""
        try:
            return self._ph.verify(stored_hash, password)
        except (VerificationError, InvalidHashError):
            return False


_DENIED = {
    ShareStatus.NOT_FOUND: Denied(DenialReason.NOT_FOUND),
    ShareStatus.EXPIRED: Denied(DenialReason.EXPIRED),
}


class ShareAuthorizer:
    """
    Share link engine.

    The engine holds no mutable state of its own; access counts and expiry
    live in storage, so several instances may serve the same shares.
    """

    def __init__(
        self,
        storage: Storage,
        audit_sink: Optional[AuditSink] = None,
        clock: Clock = utc_now,
        password_hasher: Optional[SharePasswordHasher] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            storage: Record backend holding files and shares
            audit_sink: Receiver of audit events (optional)
            clock: Returns the current aware datetime
            password_hasher: Share password hasher (Argon2id defaults)
        """
        self._storage = storage
        self._audit = audit_sink
        self._clock = clock
        self._hasher = password_hasher or SharePasswordHasher()

    async def create_share(
        self,
        file_id: UUID,
        password: Optional[str] = None,
        ttl_hours: Optional[float] = None,
        owner_id: Optional[UUID] = None,
        source_address: Optional[str] = None,
    ) -> ShareRecord:
        """
        Create a share link for a file.

        Args:
            file_id: File to share
            password: Optional password; empty means no password
            ttl_hours: Hours until expiry; zero or None never expires
            owner_id: When given, the file must belong to this owner
            source_address: Client address for the audit trail

        Returns:
            The stored ShareRecord

        Raises:
            RecordNotFoundError: Unknown file, or not owned by owner_id
            UniquenessConflictError: Share key collided (retryable)
            ValueError: Negative ttl_hours
        """
        now = self._clock()
        expires_at = expiry_for(now, ttl_hours)

        file = await self._storage.get_file(file_id)
        if file is None or (owner_id is not None and file.owner_id != owner_id):
            raise RecordNotFoundError(f"File {file_id}")

        record = ShareRecord(
            share_key=generate_share_key(),
            file_id=file_id,
            password_hash=await self._hash_password(password),
            expires_at=expires_at,
            access_count=0,
            created_at=now,
        )
        await self._storage.insert_share(record)

        logger.info(
            "Created share for file %s (password=%s, expires_at=%s)",
            file_id,
            record.has_password,
            expires_at,
        )
        await report(
            self._audit,
            AuditEvent(
                action=AuditAction.SHARE_LINK_CREATED,
                detail=f"Created share link: {record.share_key}",
                actor=owner_id,
                file_id=file_id,
                source_address=source_address,
                timestamp=now,
            ),
        )
        return record

    async def lookup(self, share_key: str) -> LookupResult:
        """Public metadata for a share, or the reason it is unavailable."""
        record = await self._storage.get_share(share_key)
        status = share_status(record, self._clock())
        if status is not ShareStatus.ACTIVE:
            return _DENIED[status]

        file = await self._storage.get_file(record.file_id)
        if file is None:
            return _DENIED[ShareStatus.NOT_FOUND]

        return ShareInfo(
            share_key=record.share_key,
            original_name=file.original_name,
            size=file.size,
            mime_type=file.mime_type,
            has_password=record.has_password,
            expires_at=record.expires_at,
        )

    async def attempt(
        self,
        share_key: str,
        password: Optional[str] = None,
        source_address: Optional[str] = None,
    ) -> AttemptResult:
        """
        Decide whether the file behind a share may be downloaded.

        Every decision is reported to the audit sink; a failing sink does not
        change the result. An attempt that raises is reported before the
        error propagates.
        """
        try:
            result, file_id = await self._decide(share_key, password)
        except Exception:
            await report(
                self._audit,
                AuditEvent(
                    action=AuditAction.SHARE_LINK_ACCESSED,
                    detail=f"Access failed via link {share_key}",
                    source_address=source_address,
                    timestamp=self._clock(),
                ),
            )
            raise

        if isinstance(result, Denied):
            logger.info("Share access denied: %s", result.reason)
            detail = f"Access denied via link {share_key}: {result.reason}"
        else:
            detail = f"Accessed via link: {share_key}"

        await report(
            self._audit,
            AuditEvent(
                action=AuditAction.SHARE_LINK_ACCESSED,
                detail=detail,
                file_id=file_id,
                source_address=source_address,
                timestamp=self._clock(),
            ),
        )
        return result

    async def _decide(
        self, share_key: str, password: Optional[str]
    ) -> Tuple[AttemptResult, Optional[UUID]]:
        record = await self._storage.get_share(share_key)
        status = share_status(record, self._clock())
        if status is not ShareStatus.ACTIVE:
            return _DENIED[status], record.file_id if record else None

        if record.password_hash is not None:
            if not password:
                return Denied(DenialReason.PASSWORD_REQUIRED), record.file_id
            verified = await asyncio.to_thread(
                self._hasher.verify, record.password_hash, password
            )
            if not verified:
                return Denied(DenialReason.INVALID_PASSWORD), record.file_id

        # The file is resolved before the count changes.
        file = await self._storage.get_file(record.file_id)
        if file is None:
            return _DENIED[ShareStatus.NOT_FOUND], None

        # Expiry is re-checked inside the atomic update.
        count = await self._storage.increment_access_count(share_key, self._clock())
        if count is None:
            current = await self._storage.get_share(share_key)
            status = share_status(current, self._clock())
            return _DENIED.get(status, _DENIED[ShareStatus.EXPIRED]), record.file_id

        return Authorized(file=file, access_count=count), file.id

    async def list_shares(self, file_id: UUID) -> List[ShareRecord]:
        """Shares pointing at a file."""
        return await self._storage.list_shares_for_file(file_id)

    async def revoke_share(self, share_key: str, owner_id: UUID) -> None:
        """
        Delete a share owned (through its file) by owner_id.

        Raises:
            RecordNotFoundError: Unknown share key
            AccessDeniedError: The file belongs to someone else
        """
        record = await self._storage.get_share(share_key)
        if record is None:
            raise RecordNotFoundError("Share not found")

        file = await self._storage.get_file(record.file_id)
        if file is None or file.owner_id != owner_id:
            raise AccessDeniedError("Share belongs to another user")

        await self._storage.delete_share(share_key)
        logger.info("Revoked share for file %s", record.file_id)

    async def _hash_password(self, password: Optional[str]) -> Optional[str]:
        if not password:
            return None
        # Argon2 is CPU-bound; hash in a worker thread.
        return await asyncio.to_thread(self._hasher.hash, password)
