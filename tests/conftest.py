"""
Pytest configuration and fixtures for envelope cipher tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator

import pytest
import asyncpg
from dotenv import load_dotenv

from envelope_cipher import (
    EnvelopeCipher,
    InMemoryRecordStore,
    PostgresRecordStore,
    TransactionService,
)

ZERO_KEY_HEX = "00" * 32
OTHER_KEY_HEX = "ab" * 32


@pytest.fixture
def cipher() -> EnvelopeCipher:
    """Engine keyed with the all-zero master key."""
    return EnvelopeCipher.from_hex(ZERO_KEY_HEX)


@pytest.fixture
def other_cipher() -> EnvelopeCipher:
    """Engine keyed with a different master key."""
    return EnvelopeCipher.from_hex(OTHER_KEY_HEX)


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    """Create an in-memory storage instance for testing."""
    return InMemoryRecordStore()


@pytest.fixture
def service(cipher: EnvelopeCipher, memory_store: InMemoryRecordStore) -> TransactionService:
    """Transaction service over in-memory storage."""
    return TransactionService(cipher, memory_store)


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_store(pg_pool: asyncpg.Pool) -> PostgresRecordStore:
    """Create a PostgreSQL storage instance with an empty records table."""
    store = PostgresRecordStore(pg_pool)
    await store.init_schema()
    await store.truncate()
    return store
