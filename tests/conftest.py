"""
Pytest configuration and fixtures for sharevault tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator
from uuid import UUID, uuid4

import asyncpg
import pytest
from argon2 import PasswordHasher
from dotenv import load_dotenv

from sharevault import (
    FileVault,
    InMemoryAuditSink,
    InMemoryStorage,
    LocalBlobStore,
    PostgresStorage,
    SecureKey,
    ShareAuthorizer,
    SharePasswordHasher,
)

SCHEMA_PATH = Path(__file__).parent.parent / "schema.sql"


class FakeClock:
    """Settable clock; call it to read the current time."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def master_key() -> SecureKey:
    return SecureKey.generate()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def password_hasher() -> SharePasswordHasher:
    """Argon2id with minimal cost so tests stay fast."""
    return SharePasswordHasher(
        PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)
    )


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    """Create an in-memory storage instance for testing."""
    return InMemoryStorage()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def authorizer(memory_storage, audit_sink, clock, password_hasher) -> ShareAuthorizer:
    return ShareAuthorizer(
        memory_storage,
        audit_sink,
        clock=clock,
        password_hasher=password_hasher,
    )


@pytest.fixture
def vault(
    memory_storage, blob_store, master_key, audit_sink, authorizer, clock
) -> FileVault:
    return FileVault(
        memory_storage,
        blob_store,
        master_key,
        audit_sink,
        authorizer=authorizer,
        clock=clock,
    )


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    load_dotenv(Path(__file__).parent.parent / ".env")

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await pool.execute(SCHEMA_PATH.read_text())
    await pool.execute("TRUNCATE TABLE shared_links, files, audit_logs CASCADE")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_storage(pg_pool: asyncpg.Pool) -> PostgresStorage:
    """Create a PostgreSQL storage instance for testing."""
    return PostgresStorage(pg_pool)
