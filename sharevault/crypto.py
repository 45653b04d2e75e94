"""
Cryptographic primitives for AES-256-GCM envelope encryption.

This module provides:
- SecureKey: Secure key wrapper with best-effort zeroization
- EncryptedData: Nonce, ciphertext and detached authentication tag
- AesGcmCipher: AES-256-GCM encryption/decryption operations
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, DecryptionError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)


class SecureKey:
    """
    Secure key wrapper with automatic memory cleanup on deletion.

    Uses bytearray internally for mutable zeroing in __del__.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        """
        Create a SecureKey from raw bytes.

        Args:
            key_bytes: Raw key material (should be 32 bytes for AES-256)
        """
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(generate_random_bytes(AES_256_KEY_SIZE))

    @classmethod
    def from_hex(cls, encoded: str) -> SecureKey:
        """
        Build a 32-byte key from its hex encoding.

        Raises:
            CryptoError: If the value is not hex or has the wrong length
        """
        try:
            raw = bytes.fromhex(encoded.strip())
        except (ValueError, AttributeError):
            raise CryptoError("Key is not valid hex") from None
        if len(raw) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(raw)}"
            )
        return cls(raw)

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def __len__(self) -> int:
        """Return key length in bytes."""
        return len(self._bytes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecureKey):
            return NotImplemented
        return secrets.compare_digest(bytes(self._bytes), bytes(other._bytes))

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        """Zero memory on deletion (best-effort)."""
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


@dataclass(frozen=True)
class EncryptedData:
    """
    AES-GCM output with the authentication tag kept apart from the ciphertext.

    AESGCM appends the 16-byte tag to its output; stored file records keep
    the tag in its own column, so it is split off here.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Without tag
    tag: bytes  # 16 bytes

    @classmethod
    def from_combined(cls, nonce: bytes, combined: bytes) -> EncryptedData:
        """Split AESGCM output (ciphertext || tag)."""
        if len(combined) < TAG_SIZE:
            raise CryptoError("AES-GCM output shorter than the authentication tag")
        return cls(nonce=nonce, ciphertext=combined[:-TAG_SIZE], tag=combined[-TAG_SIZE:])


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    Static methods only; nothing is shared between calls, so concurrent use
    from several threads or tasks needs no locking.
    """

    @staticmethod
    def encrypt(key: SecureKey, plaintext: bytes) -> EncryptedData:
        """
        Encrypt plaintext with AES-256-GCM under a fresh random nonce.

        Args:
            key: 32-byte encryption key
            plaintext: Data to encrypt

        Returns:
            EncryptedData with nonce, ciphertext and detached tag

        Raises:
            CryptoError: If key size is invalid or encryption fails
        """
        _check_key(key)

        nonce = generate_random_bytes(NONCE_SIZE)
        aesgcm = AESGCM(key.as_bytes())

        try:
            combined = aesgcm.encrypt(nonce, plaintext, None)
        except Exception as e:
            raise CryptoError(f"Encryption error: {e}") from e

        return EncryptedData.from_combined(nonce, combined)

    @staticmethod
    def decrypt(key: SecureKey, encrypted: EncryptedData) -> bytes:
        """
        Decrypt and authenticate ciphertext with AES-256-GCM.

        Args:
            key: 32-byte decryption key
            encrypted: EncryptedData with nonce, ciphertext and tag

        Returns:
            Decrypted plaintext bytes

        Raises:
            CryptoError: If key/nonce/tag size is invalid
            DecryptionError: If authentication fails
        """
        _check_key(key)

        if len(encrypted.nonce) != NONCE_SIZE:
            raise CryptoError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(encrypted.nonce)}"
            )
        if len(encrypted.tag) != TAG_SIZE:
            raise CryptoError(
                f"Invalid tag size: expected {TAG_SIZE}, got {len(encrypted.tag)}"
            )

        aesgcm = AESGCM(key.as_bytes())

        try:
            return aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext + encrypted.tag, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise DecryptionError() from None


def _check_key(key: SecureKey) -> None:
    if len(key) != AES_256_KEY_SIZE:
        raise CryptoError(
            f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
        )


def generate_random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes.

    Args:
        length: Number of bytes to generate

    Returns:
        Random bytes of specified length
    """
    return secrets.token_bytes(length)
