"""
sharevault benchmark CLI.

Usage:
    sharevault-benchmark

Or run directly:
    python -m sharevault.benchmark

Configuration:
    MASTER_KEY (64 hex chars) must be set in the environment or .env file.
    With DATABASE_URL set, records go to PostgreSQL (run schema.sql first);
    otherwise in-memory storage is used.
"""

from __future__ import annotations

import asyncio
import sys
import tempfile
import time
from typing import Optional
from uuid import uuid4

import asyncpg

from sharevault.audit import InMemoryAuditSink
from sharevault.blobs import LocalBlobStore
from sharevault.config import Settings
from sharevault.crypto import SecureKey
from sharevault.envelope import EnvelopeCipher
from sharevault.errors import ConfigError
from sharevault.logging_config import configure_logging
from sharevault.postgres import PostgresStorage
from sharevault.shares import Authorized, Denied
from sharevault.storage import InMemoryStorage, Storage
from sharevault.vault import FileVault


def _banner(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}".ljust(69) + "|")
    print("+" + "-" * 68 + "+")


async def run_benchmark(quantity: Optional[int] = None) -> None:
    """Run the sharevault benchmark."""
    print("=== sharevault Benchmark ===\n")

    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    configure_logging(settings.log_level)
    master_key = settings.master_key()

    if quantity is None:
        try:
            user_input = input("Enter number of files to test (default: 100): ").strip()
            quantity = int(user_input) if user_input else 100
        except ValueError:
            quantity = 100
    print(f"Testing with {quantity} files\n")

    pool = None
    storage: Storage
    if settings.database_url:
        pool = await asyncpg.create_pool(settings.database_url)
        if pool is None:
            print("ERROR: Failed to create connection pool")
            sys.exit(1)
        storage = PostgresStorage(pool)
        print("[STARTUP] Using PostgreSQL storage")
    else:
        storage = InMemoryStorage()
        print("[STARTUP] DATABASE_URL not set, using in-memory storage")

    try:
        await _run_demos(storage, master_key, quantity)
    finally:
        if pool is not None:
            await pool.close()


async def _run_demos(storage: Storage, master_key: SecureKey, quantity: int) -> None:
    audit = InMemoryAuditSink()

    with tempfile.TemporaryDirectory() as blob_dir:
        vault = FileVault(storage, LocalBlobStore(blob_dir), master_key, audit)
        owner_id = uuid4()
        payload = b"Sensitive data protected by envelope encryption" * 64

        print("=" * 70)
        print("                    BENCHMARK START")
        print("=" * 70 + "\n")

        # ====================================================================
        # Demo 1: Seal/Open (pure crypto)
        # ====================================================================
        _banner(f"Demo 1: Seal/Open {quantity} payloads ({len(payload)} bytes)")

        seal_start = time.perf_counter()
        sealed = [EnvelopeCipher.seal(payload, master_key) for _ in range(quantity)]
        seal_duration = time.perf_counter() - seal_start

        open_start = time.perf_counter()
        for item in sealed:
            EnvelopeCipher.open(item.ciphertext, item.envelope, master_key)
        open_duration = time.perf_counter() - open_start

        print(f"[OK] Sealed and opened {quantity} payloads")
        print(f"[PERF] Seal: {seal_duration * 1000:.3f}ms | Rate: {quantity / seal_duration:.2f} ops/sec")
        print(f"[PERF] Open: {open_duration * 1000:.3f}ms | Rate: {quantity / open_duration:.2f} ops/sec\n")

        # ====================================================================
        # Demo 2: Upload through the vault
        # ====================================================================
        _banner(f"Demo 2: Upload {quantity} files")

        upload_start = time.perf_counter()
        files = []
        for i in range(quantity):
            files.append(
                await vault.upload(owner_id, f"file-{i}.txt", "text/plain", payload)
            )
        upload_duration = time.perf_counter() - upload_start

        print(f"[OK] Uploaded {quantity} files")
        print(f"[PERF] Time: {upload_duration * 1000:.3f}ms | Rate: {quantity / upload_duration:.2f} ops/sec\n")

        # ====================================================================
        # Demo 3: Share lifecycle
        # ====================================================================
        _banner("Demo 3: Password-protected share lifecycle")

        create_start = time.perf_counter()
        share = await vault.shares.create_share(
            files[0].id, password="secret", ttl_hours=1, owner_id=owner_id
        )
        create_time = time.perf_counter() - create_start

        missing = await vault.shares.attempt(share.share_key)
        wrong = await vault.shares.attempt(share.share_key, "wrong")

        attempt_start = time.perf_counter()
        granted = await vault.shares.attempt(share.share_key, "secret")
        attempt_time = time.perf_counter() - attempt_start

        for label, result in (("no password", missing), ("wrong password", wrong)):
            reason = result.reason if isinstance(result, Denied) else "ALLOWED"
            print(f"  Attempt with {label}: {reason}")
        if isinstance(granted, Authorized):
            print(f"[OK] Correct password authorized (access count {granted.access_count})")
        else:
            print(f"[ERROR] Correct password denied: {granted.reason}")
        print(f"[PERF] Create share: {create_time * 1000:.3f}ms")
        print(f"[PERF] Authorize:    {attempt_time * 1000:.3f}ms\n")

        # ====================================================================
        # Demo 4: Concurrent access counting
        # ====================================================================
        _banner(f"Demo 4: {quantity} concurrent share downloads")

        open_share = await vault.shares.create_share(files[-1].id, owner_id=owner_id)

        concurrent_start = time.perf_counter()
        results = await asyncio.gather(
            *(vault.download_shared(open_share.share_key) for _ in range(quantity))
        )
        concurrent_duration = time.perf_counter() - concurrent_start

        stored = await storage.get_share(open_share.share_key)
        allowed = sum(1 for r in results if not isinstance(r, Denied))
        print(f"[OK] {allowed}/{quantity} downloads allowed")
        print(f"[DEBUG] Stored access count: {stored.access_count if stored else 'missing'}")
        print(f"[PERF] Time: {concurrent_duration * 1000:.3f}ms | Rate: {quantity / concurrent_duration:.2f} ops/sec\n")

        # ====================================================================
        # Cleanup
        # ====================================================================
        for record in files:
            await vault.delete(record.id, owner_id)

    print("=" * 70)
    print("                    BENCHMARK SUMMARY")
    print("=" * 70 + "\n")

    print("Audit events:")
    counts = {}
    for action in audit.actions():
        counts[action] = counts.get(action, 0) + 1
    for action, count in counts.items():
        print(f"  - {action}: {count}")

    print("\nTest Configuration:")
    print(f"  - Total files tested: {quantity}")
    print("  - Crypto: AES-256-GCM, per-file key wrapped by master key")
    print("  - Share passwords: Argon2id")

    print("\n" + "=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")


def main() -> None:
    """CLI entry point for the sharevault-benchmark command."""
    asyncio.run(run_benchmark())


if __name__ == "__main__":
    main()
