"""
Storage abstractions for encrypted records.

This module provides:
- StoredRecord: EncryptedRecord plus the caller-assigned id, party and timestamp
- RecordStore: Abstract interface for record storage backends
- InMemoryRecordStore: asyncio-safe in-memory implementation for tests and benchmarks

Stores only ever see ciphertext; the engine never touches storage.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import StorageError
from .record import EncryptedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredRecord:
    """Encrypted record as persisted, with its caller-side metadata."""

    id: str
    party_id: str
    record: EncryptedRecord
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Flattened form: metadata followed by the record's interchange fields."""
        return {
            "id": self.id,
            "partyId": self.party_id,
            "createdAt": self.created_at.isoformat(),
            **self.record.to_dict(),
        }


class RecordStore(ABC):
    """
    Abstract storage interface for encrypted records.

    All methods are async to support both in-memory and database backends.
    """

    @abstractmethod
    async def init_schema(self) -> None:
        """Create backing tables if needed."""
        ...

    @abstractmethod
    async def insert_record(self, stored: StoredRecord) -> None:
        """Store a new record. Raises StorageError if the id already exists."""
        ...

    @abstractmethod
    async def get_record(self, record_id: str) -> Optional[StoredRecord]:
        """Get a record by id."""
        ...

    @abstractmethod
    async def get_records_by_party(self, party_id: str) -> List[StoredRecord]:
        """Get all records for a party, newest first."""
        ...


class InMemoryRecordStore(RecordStore):
    """
    In-memory storage implementation for testing.

    Uses asyncio.Lock for safe concurrent access.
    """

    def __init__(self) -> None:
        self._records: Dict[str, StoredRecord] = {}
        self._lock = asyncio.Lock()

    async def init_schema(self) -> None:
        """Nothing to create."""

    async def insert_record(self, stored: StoredRecord) -> None:
        async with self._lock:
            if stored.id in self._records:
                raise StorageError(f"Record {stored.id} already exists")
            self._records[stored.id] = stored
        logger.debug("Stored record %s in memory", stored.id)

    async def get_record(self, record_id: str) -> Optional[StoredRecord]:
        async with self._lock:
            return self._records.get(record_id)

    async def get_records_by_party(self, party_id: str) -> List[StoredRecord]:
        async with self._lock:
            records = [r for r in self._records.values() if r.party_id == party_id]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def clear(self) -> int:
        """Drop all records, returning how many were removed."""
        async with self._lock:
            count = len(self._records)
            self._records.clear()
            return count

    def __len__(self) -> int:
        return len(self._records)
