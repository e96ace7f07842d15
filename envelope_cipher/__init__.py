"""
Envelope Cipher

Envelope encryption for JSON payloads: every payload is encrypted under a fresh
per-record data-encryption key (DEK), and the DEK is wrapped by a long-lived
master key.

Quick Start
-----------
```python
from envelope_cipher import EnvelopeCipher

cipher = EnvelopeCipher.from_hex("00" * 32)

record = cipher.encrypt("party_123", {"amount": 100, "currency": "AED"})
stored = record.to_dict()  # payload_nonce, payload_ct, ..., alg, mk_version

payload = cipher.decrypt(stored)
assert payload == {"amount": 100, "currency": "AED"}
```

Key Features
------------
- **AES-256-GCM**: Authenticated encryption for both payload and DEK
- **Fresh DEK per record**: Never cached, never stored in plaintext
- **Fail-fast configuration**: Bad master keys rejected at construction
- **Validated records**: Field lengths checked before any cipher call
- **PostgreSQL Storage**: Optional asyncpg-backed record store
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    ALGORITHM,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    SealedBox,
    SecureKey,
    generate_random_bytes,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    AuthenticationError,
    ConfigurationError,
    CryptoInternalError,
    DeserializationError,
    EnvelopeError,
    ErrorKind,
    RecordNotFoundError,
    SerializationError,
    StorageError,
    ValidationError,
)

# =============================================================================
# Engine Exports (Primary API)
# =============================================================================

from .envelope import EnvelopeCipher, MasterKey
from .record import EncryptedRecord, validate_hex

# =============================================================================
# Service and Storage Exports
# =============================================================================

from .config import Settings
from .postgres import PostgresRecordStore
from .service import DecryptedRecord, TransactionService, error_status
from .storage import InMemoryRecordStore, RecordStore, StoredRecord

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "ALGORITHM",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "SealedBox",
    "SecureKey",
    "generate_random_bytes",
    # Errors
    "ErrorKind",
    "EnvelopeError",
    "ConfigurationError",
    "SerializationError",
    "DeserializationError",
    "ValidationError",
    "AuthenticationError",
    "CryptoInternalError",
    "StorageError",
    "RecordNotFoundError",
    # Engine (Primary API)
    "EnvelopeCipher",
    "MasterKey",
    "EncryptedRecord",
    "validate_hex",
    # Service and storage
    "Settings",
    "TransactionService",
    "DecryptedRecord",
    "error_status",
    "RecordStore",
    "StoredRecord",
    "InMemoryRecordStore",
    "PostgresRecordStore",
]
