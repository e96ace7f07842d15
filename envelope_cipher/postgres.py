"""
PostgreSQL storage backend for encrypted records.

Table layout (tx_secure_records):
- id, party_id, created_at: caller-side metadata
- payload_nonce, payload_ct, payload_tag: payload encrypted under the DEK
- dek_wrap_nonce, dek_wrapped, dek_wrap_tag: DEK wrapped under the master key
- alg, mk_version: algorithm identifier and master key version

Only hex ciphertext is stored. CHECK constraints repeat the fixed field
lengths so a malformed row cannot be written even by another client.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import asyncpg

from .errors import StorageError
from .record import EncryptedRecord
from .storage import RecordStore, StoredRecord

logger = logging.getLogger(__name__)

TABLE_NAME = "tx_secure_records"

SCHEMA_SQL = f"""
    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
        id VARCHAR(255) PRIMARY KEY,
        party_id VARCHAR(255) NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        payload_nonce VARCHAR(24) NOT NULL,
        payload_ct TEXT NOT NULL,
        payload_tag VARCHAR(32) NOT NULL,
        dek_wrap_nonce VARCHAR(24) NOT NULL,
        dek_wrapped VARCHAR(128) NOT NULL,
        dek_wrap_tag VARCHAR(32) NOT NULL,
        alg VARCHAR(50) NOT NULL,
        mk_version INTEGER NOT NULL,
        CONSTRAINT chk_nonce_length CHECK (LENGTH(payload_nonce) = 24),
        CONSTRAINT chk_tag_length CHECK (LENGTH(payload_tag) = 32),
        CONSTRAINT chk_dek_nonce_length CHECK (LENGTH(dek_wrap_nonce) = 24),
        CONSTRAINT chk_dek_tag_length CHECK (LENGTH(dek_wrap_tag) = 32)
    );

    CREATE INDEX IF NOT EXISTS idx_tx_party_id ON {TABLE_NAME}(party_id);
    CREATE INDEX IF NOT EXISTS idx_tx_created_at ON {TABLE_NAME}(created_at DESC);
"""

_COLUMNS = """
    id, party_id, created_at, payload_nonce, payload_ct, payload_tag,
    dek_wrap_nonce, dek_wrapped, dek_wrap_tag, alg, mk_version
"""


class PostgresRecordStore(RecordStore):
    """
    PostgreSQL storage backend for encrypted records.

    Every database failure is re-raised as StorageError.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        """
        Initialize PostgreSQL storage.

        Args:
            pool: asyncpg connection pool
        """
        self._pool = pool

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def init_schema(self) -> None:
        """Create the records table and its indexes if they do not exist."""
        try:
            await self._pool.execute(SCHEMA_SQL)
        except Exception as e:
            raise StorageError(f"Failed to initialize schema: {e}") from e
        logger.info("Database schema initialized")

    async def insert_record(self, stored: StoredRecord) -> None:
        """
        Insert a new encrypted record.

        Args:
            stored: StoredRecord to insert

        Raises:
            StorageError: If the id already exists or the insert fails
        """
        query = f"""
            INSERT INTO {TABLE_NAME} ({_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
        """
        record = stored.record
        try:
            await self._pool.execute(
                query,
                stored.id,
                stored.party_id,
                stored.created_at,
                record.payload_nonce,
                record.payload_ciphertext,
                record.payload_tag,
                record.dek_wrap_nonce,
                record.dek_wrapped,
                record.dek_wrap_tag,
                record.algorithm,
                record.master_key_version,
            )
        except asyncpg.UniqueViolationError as e:
            raise StorageError(f"Record {stored.id} already exists") from e
        except Exception as e:
            raise StorageError(f"Failed to store record: {e}") from e

    async def get_record(self, record_id: str) -> Optional[StoredRecord]:
        """
        Fetch an encrypted record by id.

        Returns:
            StoredRecord if found, None otherwise
        """
        query = f"SELECT {_COLUMNS} FROM {TABLE_NAME} WHERE id = $1"
        try:
            row = await self._pool.fetchrow(query, record_id)
        except Exception as e:
            raise StorageError(f"Failed to get record: {e}") from e
        if row is None:
            return None
        return self._row_to_stored_record(row)

    async def get_records_by_party(self, party_id: str) -> List[StoredRecord]:
        """Fetch all records for a party, newest first."""
        query = f"""
            SELECT {_COLUMNS} FROM {TABLE_NAME}
            WHERE party_id = $1
            ORDER BY created_at DESC
        """
        try:
            rows = await self._pool.fetch(query, party_id)
        except Exception as e:
            raise StorageError(f"Failed to get records for party: {e}") from e
        return [self._row_to_stored_record(row) for row in rows]

    async def truncate(self) -> None:
        """Remove every record (benchmarks and tests only)."""
        try:
            await self._pool.execute(f"TRUNCATE TABLE {TABLE_NAME}")
        except Exception as e:
            raise StorageError(f"Failed to truncate records: {e}") from e

    @staticmethod
    def _row_to_stored_record(row: asyncpg.Record) -> StoredRecord:
        """Convert database row to StoredRecord."""
        return StoredRecord(
            id=row["id"],
            party_id=row["party_id"],
            created_at=row["created_at"],
            record=EncryptedRecord(
                payload_nonce=row["payload_nonce"],
                payload_ciphertext=row["payload_ct"],
                payload_tag=row["payload_tag"],
                dek_wrap_nonce=row["dek_wrap_nonce"],
                dek_wrapped=row["dek_wrapped"],
                dek_wrap_tag=row["dek_wrap_tag"],
                algorithm=row["alg"],
                master_key_version=row["mk_version"],
            ),
        )
