"""
Per-file envelope encryption.

This module provides:
- WrappedKey: The master-key-encrypted file key and its serialized form
- EncryptionEnvelope: Everything (besides the master key) needed to decrypt a file
- SealedFile: Result of sealing a file
- EnvelopeCipher: seal / open operations

Key hierarchy:
- Master key -> wraps the per-file key (32-byte payloads only)
- File key (DEK) -> encrypts the file bytes, fresh for every file

Persisted format:
- ``iv``: hex(content_iv)
- ``auth_tag``: hex(content_auth_tag)
- ``encrypted_key``: hex(key_iv) ":" hex(key_auth_tag) ":" hex(wrapped_key_bytes)

The format must stay byte-for-byte stable; records written earlier are only
readable while it does.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Mapping, Union

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    EncryptedData,
    SecureKey,
)
from .errors import (
    ContentDecryptError,
    DecryptionError,
    KeyUnwrapError,
    MalformedEnvelopeError,
)

WRAPPED_KEY_DELIMITER = ":"

_HEX = re.compile(r"[0-9a-fA-F]*")


def _decode_hex(value: str, expected_size: int, label: str) -> bytes:
    # bytes.fromhex tolerates whitespace; stored values must be bare hex.
    if not isinstance(value, str) or not _HEX.fullmatch(value):
        raise MalformedEnvelopeError(f"{label} is not valid hex")
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise MalformedEnvelopeError(f"{label} is not valid hex") from None
    if len(raw) != expected_size:
        raise MalformedEnvelopeError(
            f"{label} has wrong size: expected {expected_size}, got {len(raw)}"
        )
    return raw


@dataclass(frozen=True)
class WrappedKey:
    """File key encrypted by the master key."""

    key_iv: bytes  # 12 bytes
    key_auth_tag: bytes  # 16 bytes
    wrapped_key_bytes: bytes  # 32 bytes

    def serialize(self) -> str:
        """Pack the three fields into one opaque column value."""
        return WRAPPED_KEY_DELIMITER.join(
            (self.key_iv.hex(), self.key_auth_tag.hex(), self.wrapped_key_bytes.hex())
        )

    @classmethod
    def parse(cls, packed: str) -> WrappedKey:
        """
        Parse the packed column value produced by ``serialize``.

        Raises:
            MalformedEnvelopeError: If the delimiter structure is wrong or a
                segment is not hex of the expected size
        """
        if not isinstance(packed, str):
            raise MalformedEnvelopeError("Wrapped key must be a string")
        parts = packed.split(WRAPPED_KEY_DELIMITER)
        if len(parts) != 3:
            raise MalformedEnvelopeError(
                f"Wrapped key must have 3 segments, got {len(parts)}"
            )
        key_iv_hex, key_tag_hex, wrapped_hex = parts
        return cls(
            key_iv=_decode_hex(key_iv_hex, NONCE_SIZE, "Key IV"),
            key_auth_tag=_decode_hex(key_tag_hex, TAG_SIZE, "Key auth tag"),
            wrapped_key_bytes=_decode_hex(wrapped_hex, AES_256_KEY_SIZE, "Wrapped key"),
        )

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class EncryptionEnvelope:
    """Durable decryption metadata for one file."""

    content_iv: bytes  # 12 bytes
    content_auth_tag: bytes  # 16 bytes
    wrapped_key: WrappedKey

    def to_columns(self) -> Dict[str, str]:
        """Column values as stored with the file record."""
        return {
            "iv": self.content_iv.hex(),
            "auth_tag": self.content_auth_tag.hex(),
            "encrypted_key": self.wrapped_key.serialize(),
        }

    @classmethod
    def from_columns(
        cls,
        iv: str,
        auth_tag: str,
        encrypted_key: Union[str, WrappedKey],
    ) -> EncryptionEnvelope:
        """
        Rebuild an envelope from its stored column values.

        Raises:
            MalformedEnvelopeError: If any column fails to parse
        """
        wrapped = (
            encrypted_key
            if isinstance(encrypted_key, WrappedKey)
            else WrappedKey.parse(encrypted_key)
        )
        return cls(
            content_iv=_decode_hex(iv, NONCE_SIZE, "Content IV"),
            content_auth_tag=_decode_hex(auth_tag, TAG_SIZE, "Content auth tag"),
            wrapped_key=wrapped,
        )

    @classmethod
    def from_mapping(cls, columns: Mapping[str, str]) -> EncryptionEnvelope:
        """Rebuild from a mapping with ``iv``, ``auth_tag`` and ``encrypted_key``."""
        try:
            return cls.from_columns(
                columns["iv"], columns["auth_tag"], columns["encrypted_key"]
            )
        except KeyError as e:
            raise MalformedEnvelopeError(f"Missing envelope column: {e}") from None


@dataclass(frozen=True)
class SealedFile:
    """Result of EnvelopeCipher.seal."""

    envelope: EncryptionEnvelope
    ciphertext: bytes


class EnvelopeCipher:
    """
    Two-tier AES-256-GCM file encryption.

    Every call draws fresh randomness; sealing the same bytes twice never
    yields the same ciphertext or wrapped key.
    """

    @staticmethod
    def seal(plaintext: bytes, master_key: SecureKey) -> SealedFile:
        """
        Encrypt file bytes under a fresh file key, then wrap that key.

        Args:
            plaintext: File contents
            master_key: 32-byte master key

        Returns:
            SealedFile with the ciphertext and its envelope

        Raises:
            CryptoError: If the master key has the wrong size
        """
        file_key = SecureKey.generate()
        content = AesGcmCipher.encrypt(file_key, plaintext)
        wrapped = AesGcmCipher.encrypt(master_key, file_key.as_bytes())

        envelope = EncryptionEnvelope(
            content_iv=content.nonce,
            content_auth_tag=content.tag,
            wrapped_key=WrappedKey(
                key_iv=wrapped.nonce,
                key_auth_tag=wrapped.tag,
                wrapped_key_bytes=wrapped.ciphertext,
            ),
        )
        return SealedFile(envelope=envelope, ciphertext=content.ciphertext)

    @staticmethod
    def unwrap_key(wrapped: Union[WrappedKey, str], master_key: SecureKey) -> SecureKey:
        """
        Recover the file key.

        Raises:
            MalformedEnvelopeError: If a packed wrapped key fails to parse
            KeyUnwrapError: If authentication under the master key fails
        """
        if not isinstance(wrapped, WrappedKey):
            wrapped = WrappedKey.parse(wrapped)

        try:
            raw = AesGcmCipher.decrypt(
                master_key,
                EncryptedData(
                    nonce=wrapped.key_iv,
                    ciphertext=wrapped.wrapped_key_bytes,
                    tag=wrapped.key_auth_tag,
                ),
            )
        except DecryptionError:
            raise KeyUnwrapError() from None

        if len(raw) != AES_256_KEY_SIZE:
            raise KeyUnwrapError()
        return SecureKey(raw)

    @staticmethod
    def open(
        ciphertext: bytes,
        envelope: EncryptionEnvelope,
        master_key: SecureKey,
    ) -> bytes:
        """
        Decrypt a sealed file. All-or-nothing: no bytes are returned on failure.

        Args:
            ciphertext: Encrypted file contents (without tag)
            envelope: Envelope stored with the file
            master_key: Master key used when the file was sealed

        Returns:
            Plaintext bytes

        Raises:
            KeyUnwrapError: Wrong master key or tampered wrapped key
            ContentDecryptError: Tampered ciphertext or content tag
        """
        file_key = EnvelopeCipher.unwrap_key(envelope.wrapped_key, master_key)

        try:
            return AesGcmCipher.decrypt(
                file_key,
                EncryptedData(
                    nonce=envelope.content_iv,
                    ciphertext=ciphertext,
                    tag=envelope.content_auth_tag,
                ),
            )
        except DecryptionError:
            raise ContentDecryptError() from None
