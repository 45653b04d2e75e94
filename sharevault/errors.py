"""
Exception classes for sharevault operations.

Share-link denials (not found, expired, password problems) are not exceptions;
they are returned as ``Denied`` values by the authorization engine.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for all sharevault operations."""

    pass


class CryptoError(VaultError):
    """Cryptographic operation failed (bad key size, encryption error)."""

    pass


class MalformedEnvelopeError(CryptoError):
    """Stored key-wrap or envelope metadata could not be parsed."""

    pass


class DecryptionError(CryptoError):
    """
    Authentication failed while decrypting.

    Subclasses exist for internal logging only; both carry the same message
    so callers cannot learn which layer failed.
    """

    def __init__(self, message: str = "Decryption failed") -> None:
        super().__init__(message)


class KeyUnwrapError(DecryptionError):
    """The wrapped file key did not authenticate under the master key."""

    pass


class ContentDecryptError(DecryptionError):
    """The file ciphertext did not authenticate under the file key."""

    pass


class StorageError(VaultError):
    """Storage backend error (database, in-memory, blob store)."""

    pass


class RecordNotFoundError(StorageError):
    """File or share record not found."""

    pass


class UniquenessConflictError(StorageError):
    """A unique identifier collided in storage; regenerate and try again."""

    retryable = True


class AccessDeniedError(VaultError):
    """Caller does not own the requested file."""

    pass


class ConfigError(VaultError):
    """Configuration error."""

    pass
