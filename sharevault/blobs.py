"""
Ciphertext blob storage.

Blob names are chosen by the caller; the store only maps names to bytes.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from .errors import RecordNotFoundError, StorageError


class BlobStore(ABC):
    """Abstract byte store addressed by name."""

    @abstractmethod
    async def write(self, name: str, data: bytes) -> None:
        """Store bytes under a name, replacing any previous content."""
        ...

    @abstractmethod
    async def read(self, name: str) -> bytes:
        """
        Read bytes stored under a name.

        Raises:
            RecordNotFoundError: If nothing is stored under the name
        """
        ...

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete a blob; returns False if it did not exist."""
        ...


class LocalBlobStore(BlobStore):
    """
    Blobs as files in one directory.

    File I/O runs in worker threads so the event loop is not blocked.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, name: str) -> Path:
        path = self._root / name
        if not name or path.resolve().parent != self._root.resolve():
            raise StorageError(f"Invalid blob name: {name!r}")
        return path

    async def write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            raise StorageError(f"Failed to write blob {name}: {e}") from e

    async def read(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise RecordNotFoundError(f"Blob {name}") from None
        except OSError as e:
            raise StorageError(f"Failed to read blob {name}: {e}") from e

    async def delete(self, name: str) -> bool:
        path = self._path(name)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete blob {name}: {e}") from e
        return True
