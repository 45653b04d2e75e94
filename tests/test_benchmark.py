"""Tests for the benchmark CLI plumbing."""

import pytest

from sharevault import Settings
from sharevault import benchmark


class FakePool:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


async def test_pool_closed_when_a_demo_fails(monkeypatch):
    pool = FakePool()
    settings = Settings(master_key_hex="00" * 32, database_url="postgresql://db.example/vault")

    async def create_pool(url):
        return pool

    async def failing_demos(storage, master_key, quantity):
        raise RuntimeError("demo failed")

    monkeypatch.setattr(benchmark.Settings, "from_env", lambda: settings)
    monkeypatch.setattr(benchmark, "configure_logging", lambda level: None)
    monkeypatch.setattr(benchmark.asyncpg, "create_pool", create_pool)
    monkeypatch.setattr(benchmark, "_run_demos", failing_demos)

    with pytest.raises(RuntimeError, match="demo failed"):
        await benchmark.run_benchmark(quantity=1)

    assert pool.closed
