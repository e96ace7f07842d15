"""
Exception classes for envelope encryption operations.

Every error carries an explicit ErrorKind discriminant so callers can
classify failures (e.g. into a 400 vs 500 response) without isinstance chains.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Discriminant for envelope errors."""

    CONFIGURATION = "configuration"
    SERIALIZATION = "serialization"
    DESERIALIZATION = "deserialization"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    CRYPTO_INTERNAL = "crypto_internal"
    STORAGE = "storage"
    NOT_FOUND = "not_found"

    def __str__(self) -> str:
        return self.value

    @property
    def caller_fault(self) -> bool:
        """True when the failure is caused by the caller's input."""
        return self in (
            ErrorKind.SERIALIZATION,
            ErrorKind.DESERIALIZATION,
            ErrorKind.VALIDATION,
            ErrorKind.AUTHENTICATION,
        )

    @property
    def retryable(self) -> bool:
        """Only storage failures may succeed on retry."""
        return self is ErrorKind.STORAGE


class EnvelopeError(Exception):
    """Base exception for all envelope encryption operations."""

    kind: ErrorKind = ErrorKind.CRYPTO_INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(EnvelopeError):
    """Master key or settings are missing or malformed."""

    kind = ErrorKind.CONFIGURATION


class SerializationError(EnvelopeError):
    """Payload could not be serialized to JSON."""

    kind = ErrorKind.SERIALIZATION


class DeserializationError(EnvelopeError):
    """Decrypted bytes or record text are not valid JSON."""

    kind = ErrorKind.DESERIALIZATION


class ValidationError(EnvelopeError):
    """A record field is malformed."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class AuthenticationError(EnvelopeError):
    """AEAD tag verification failed (tampered, corrupted or wrong key)."""

    kind = ErrorKind.AUTHENTICATION


class CryptoInternalError(EnvelopeError):
    """Unexpected failure inside the cipher primitive."""

    kind = ErrorKind.CRYPTO_INTERNAL


class StorageError(EnvelopeError):
    """Storage backend error (database, in-memory, etc.)."""

    kind = ErrorKind.STORAGE


class RecordNotFoundError(EnvelopeError):
    """Record not found in storage."""

    kind = ErrorKind.NOT_FOUND
