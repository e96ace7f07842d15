"""
Transaction service: the seam between a transport layer and the engine.

This module provides:
- TransactionService: encrypt-and-store, fetch, and fetch-and-decrypt
- DecryptedRecord: Result of decrypt_record
- error_status: Map an envelope error to an HTTP-style status code

The service validates caller input, assigns record ids and timestamps, and
logs record lifecycle events. Payloads and key material are never logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Union
from uuid import uuid4

from .envelope import EnvelopeCipher
from .errors import (
    AuthenticationError,
    EnvelopeError,
    ErrorKind,
    RecordNotFoundError,
    StorageError,
    ValidationError,
)
from .storage import RecordStore, StoredRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecryptedRecord:
    """Result of decrypt_record."""

    id: str
    party_id: str
    created_at: datetime
    payload: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "partyId": self.party_id,
            "createdAt": self.created_at.isoformat(),
            "payload": self.payload,
        }


class TransactionService:
    """
    Encrypted transaction records backed by a RecordStore.

    The cipher is constructed by the caller at process start and passed in;
    the service never builds one lazily.
    """

    def __init__(self, cipher: EnvelopeCipher, store: RecordStore) -> None:
        self._cipher = cipher
        self._store = store

    @property
    def cipher(self) -> EnvelopeCipher:
        return self._cipher

    @property
    def store(self) -> RecordStore:
        return self._store

    async def encrypt_and_store(self, party_id: str, payload: Union[Dict[str, Any], List[Any]]) -> StoredRecord:
        """
        Encrypt a payload and persist it under a new id.

        Raises:
            ValidationError: If party_id is not a non-empty string or payload is not an object or array
            SerializationError: If payload cannot be encoded as JSON
            StorageError: If the record cannot be stored
        """
        if not party_id or not isinstance(party_id, str):
            raise ValidationError("partyId is required and must be a string", field="partyId")
        if not isinstance(payload, (dict, list)):
            raise ValidationError("payload is required and must be an object", field="payload")

        stored = StoredRecord(
            id=uuid4().hex,
            party_id=party_id,
            record=self._cipher.encrypt(party_id, payload),
            created_at=datetime.now(timezone.utc),
        )

        try:
            await self._store.insert_record(stored)
        except StorageError:
            logger.exception("Failed to store record for party %s", party_id)
            raise

        logger.info("Stored encrypted record %s for party %s", stored.id, party_id)
        return stored

    async def get_record(self, record_id: str) -> StoredRecord:
        """
        Fetch a record without decrypting it.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        stored = await self._store.get_record(record_id)
        if stored is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return stored

    async def decrypt_record(self, record_id: str) -> DecryptedRecord:
        """
        Fetch a record and decrypt its payload.

        Raises:
            RecordNotFoundError: If no record has this id
            ValidationError: If the stored record is malformed
            AuthenticationError: If the record was tampered with or the key is wrong
            DeserializationError: If the plaintext is not JSON
        """
        stored = await self.get_record(record_id)
        try:
            payload = self._cipher.decrypt(stored.record)
        except AuthenticationError:
            logger.warning("Authentication failed for record %s", record_id)
            raise

        return DecryptedRecord(
            id=stored.id,
            party_id=stored.party_id,
            created_at=stored.created_at,
            payload=payload,
        )

    async def list_party_records(self, party_id: str) -> List[StoredRecord]:
        """All encrypted records for a party, newest first."""
        return await self._store.get_records_by_party(party_id)


def error_status(exc: BaseException) -> int:
    """HTTP-style status code for an exception raised by the service."""
    if not isinstance(exc, EnvelopeError):
        return 500
    if exc.kind is ErrorKind.NOT_FOUND:
        return 404
    return 400 if exc.kind.caller_fault else 500
