"""
sharevault

Envelope-encrypted file storage with password-gated, expiring share links.

Quick Start
-----------
```python
import asyncio
from uuid import uuid4
from sharevault import (
    FileVault,
    InMemoryStorage,
    LocalBlobStore,
    LoggingAuditSink,
    Settings,
)

async def main():
    settings = Settings.from_env()
    vault = FileVault(
        InMemoryStorage(),
        LocalBlobStore(settings.upload_dir),
        settings.master_key(),
        LoggingAuditSink(),
    )

    owner = uuid4()
    record = await vault.upload(owner, "report.pdf", "application/pdf", b"...")
    share = await vault.shares.create_share(record.id, password="secret", ttl_hours=24)

    result = await vault.download_shared(share.share_key, password="secret")

asyncio.run(main())
```

Key Features
------------
- **AES-256-GCM**: Authenticated encryption for file bytes and wrapped keys
- **Per-File Keys**: Each file gets its own key, wrapped by one master key
- **Share Links**: 128-bit random keys, optional Argon2id password, optional expiry
- **Atomic Counters**: Access counts incremented in a single storage operation
- **PostgreSQL Storage**: asyncpg backend alongside an in-memory one
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    EncryptedData,
    SecureKey,
    generate_random_bytes,
)
from .envelope import EncryptionEnvelope, EnvelopeCipher, SealedFile, WrappedKey

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    AccessDeniedError,
    ConfigError,
    ContentDecryptError,
    CryptoError,
    DecryptionError,
    KeyUnwrapError,
    MalformedEnvelopeError,
    RecordNotFoundError,
    StorageError,
    UniquenessConflictError,
    VaultError,
)

# =============================================================================
# Share Exports
# =============================================================================

from .shares import (
    Authorized,
    Denied,
    DenialReason,
    ShareAuthorizer,
    ShareInfo,
    SharePasswordHasher,
    ShareStatus,
    share_status,
)

# =============================================================================
# Collaborator Exports
# =============================================================================

from .audit import (
    AuditAction,
    AuditEvent,
    AuditLog,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)
from .blobs import BlobStore, LocalBlobStore
from .config import Settings
from .postgres import PostgresAuditSink, PostgresStorage
from .storage import FileRecord, InMemoryStorage, ShareRecord, Storage
from .vault import DecryptedFile, FileVault, SharedDownload

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "EncryptedData",
    "SecureKey",
    "generate_random_bytes",
    "EncryptionEnvelope",
    "EnvelopeCipher",
    "SealedFile",
    "WrappedKey",
    # Errors
    "VaultError",
    "CryptoError",
    "MalformedEnvelopeError",
    "DecryptionError",
    "KeyUnwrapError",
    "ContentDecryptError",
    "StorageError",
    "RecordNotFoundError",
    "UniquenessConflictError",
    "AccessDeniedError",
    "ConfigError",
    # Shares
    "ShareAuthorizer",
    "SharePasswordHasher",
    "ShareInfo",
    "ShareStatus",
    "Authorized",
    "Denied",
    "DenialReason",
    "share_status",
    # Collaborators
    "AuditAction",
    "AuditEvent",
    "AuditLog",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "BlobStore",
    "LocalBlobStore",
    "Settings",
    "Storage",
    "InMemoryStorage",
    "FileRecord",
    "ShareRecord",
    "PostgresStorage",
    "PostgresAuditSink",
    # Vault
    "FileVault",
    "DecryptedFile",
    "SharedDownload",
]
