"""
Process configuration.

Settings come from the environment, optionally seeded from a ``.env`` file:

- ``MASTER_KEY``: 64 hex characters (256-bit master key), required
- ``DATABASE_URL``: PostgreSQL DSN; in-memory storage is used when unset
- ``UPLOAD_DIR``: directory for ciphertext blobs (default ``uploads``)
- ``LOG_LEVEL``: logging level name (default ``INFO``)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .crypto import SecureKey
from .errors import ConfigError, CryptoError

DEFAULT_UPLOAD_DIR = "uploads"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    """Validated process settings. The master key never appears in repr."""

    master_key_hex: str = field(repr=False)
    database_url: Optional[str] = field(default=None, repr=False)
    upload_dir: Path = Path(DEFAULT_UPLOAD_DIR)
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        # Validate eagerly so a bad key fails at start-up, not on first upload.
        self.master_key()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigError(f"Unknown LOG_LEVEL: {self.log_level}")

    def master_key(self) -> SecureKey:
        """
        The 256-bit master key.

        Raises:
            ConfigError: If MASTER_KEY is not 64 hex characters
        """
        try:
            return SecureKey.from_hex(self.master_key_hex)
        except CryptoError:
            raise ConfigError("MASTER_KEY must be 64 hex characters (256 bits)") from None

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Settings:
        """
        Load settings from the environment.

        Args:
            env_file: ``.env`` file to load first (searched for when None)
            environ: Mapping to read instead of ``os.environ``

        Raises:
            ConfigError: If a value is missing or invalid
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        master_key_hex = environ.get("MASTER_KEY")
        if not master_key_hex:
            raise ConfigError("MASTER_KEY must be set in environment or .env file")

        return cls(
            master_key_hex=master_key_hex,
            database_url=environ.get("DATABASE_URL") or None,
            upload_dir=Path(environ.get("UPLOAD_DIR") or DEFAULT_UPLOAD_DIR),
            log_level=(environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
