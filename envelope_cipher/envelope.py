"""
Envelope encryption engine.

This module provides:
- MasterKey: Validated holder for the long-lived key-wrapping key
- EnvelopeCipher: Encrypts JSON payloads under a fresh DEK and wraps the DEK

Key hierarchy:
- MasterKey -> DEK (wrapped, stored inside the record)
- DEK -> JSON payload

The engine is synchronous and holds no mutable state, so one instance can be
shared across threads and tasks. It does no logging and no persistence.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Union

from .crypto import (
    AES_256_KEY_SIZE,
    ALGORITHM,
    DECRYPTION_FAILED,
    AesGcmCipher,
    SealedBox,
    SecureKey,
)
from .errors import (
    AuthenticationError,
    ConfigurationError,
    CryptoInternalError,
    DeserializationError,
    SerializationError,
    ValidationError,
)
from .record import EncryptedRecord, is_hex

DEFAULT_MASTER_KEY_VERSION: int = 1


class MasterKey:
    """
    Holder for a 32-byte master key and the version tag it is published under.

    The key is checked once, at construction, so a bad configuration fails at
    process start rather than on the first request.
    """

    __slots__ = ("_key", "_version")

    def __init__(self, key: SecureKey, version: int = DEFAULT_MASTER_KEY_VERSION) -> None:
        if len(key) != AES_256_KEY_SIZE:
            raise ConfigurationError(
                f"Master key must be {AES_256_KEY_SIZE} bytes, got {len(key)}"
            )
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise ConfigurationError(
                f"Master key version must be a positive integer, got {version!r}"
            )
        self._key = key
        self._version = version

    @classmethod
    def from_hex(
        cls, key_hex: str | None, version: int = DEFAULT_MASTER_KEY_VERSION
    ) -> MasterKey:
        """
        Decode a master key from 64 hex characters (case-insensitive).

        Raises:
            ConfigurationError: If the key is absent, the wrong length, or not hex
        """
        if not key_hex:
            raise ConfigurationError("Master key is required")
        if not isinstance(key_hex, str):
            raise ConfigurationError("Master key must be a hex string")
        if len(key_hex) != AES_256_KEY_SIZE * 2:
            raise ConfigurationError(
                f"Master key must be {AES_256_KEY_SIZE} bytes "
                f"({AES_256_KEY_SIZE * 2} hex chars), got {len(key_hex)} chars"
            )
        if not is_hex(key_hex):
            raise ConfigurationError("Master key is not valid hex")
        return cls(SecureKey(bytes.fromhex(key_hex)), version)

    @property
    def key(self) -> SecureKey:
        return self._key

    @property
    def version(self) -> int:
        return self._version

    def __repr__(self) -> str:
        return f"MasterKey([REDACTED], version={self._version})"


class EnvelopeCipher:
    """
    Envelope encryption for JSON payloads.

    Crypto flow (encrypt):
    1. Generate fresh DEK (random 32 bytes, never stored in plaintext)
    2. Encrypt canonical JSON payload with DEK (AES-256-GCM, fresh nonce)
    3. Wrap DEK with master key (AES-256-GCM, second fresh nonce)
    4. Return all parts hex-encoded as an EncryptedRecord
    """

    def __init__(self, master_key: MasterKey) -> None:
        if not isinstance(master_key, MasterKey):
            raise ConfigurationError("EnvelopeCipher requires a MasterKey")
        self._master_key = master_key

    @classmethod
    def from_hex(
        cls, key_hex: str | None, version: int = DEFAULT_MASTER_KEY_VERSION
    ) -> EnvelopeCipher:
        """Build a cipher directly from a 64-char hex master key."""
        return cls(MasterKey.from_hex(key_hex, version))

    @property
    def master_key_version(self) -> int:
        return self._master_key.version

    def encrypt(self, party_id: str, payload: Any) -> EncryptedRecord:
        """
        Encrypt a JSON-serializable payload for a party.

        The party id is carried by the caller alongside the record; it is not
        bound into the ciphertext.

        Args:
            party_id: Owner of the payload
            payload: Any value json.dumps accepts

        Returns:
            A new, immutable EncryptedRecord

        Raises:
            SerializationError: If the payload cannot be encoded as JSON
            CryptoInternalError: If the cipher primitive fails
        """
        plaintext = serialize_payload(payload)

        dek = SecureKey.generate()
        try:
            payload_box = AesGcmCipher.seal(dek, plaintext)
            dek_box = AesGcmCipher.seal(self._master_key.key, dek.as_bytes())
        finally:
            dek.wipe()

        record = EncryptedRecord(
            payload_nonce=payload_box.nonce.hex(),
            payload_ciphertext=payload_box.ciphertext.hex(),
            payload_tag=payload_box.tag.hex(),
            dek_wrap_nonce=dek_box.nonce.hex(),
            dek_wrapped=dek_box.ciphertext.hex(),
            dek_wrap_tag=dek_box.tag.hex(),
            algorithm=ALGORITHM,
            master_key_version=self._master_key.version,
        )

        try:
            record.validate()
        except ValidationError as e:
            raise CryptoInternalError(f"Produced malformed record: {e}") from e
        return record

    def decrypt(self, record: Union[EncryptedRecord, Dict[str, Any]]) -> Any:
        """
        Decrypt a record produced by encrypt().

        Args:
            record: EncryptedRecord, or its interchange dict

        Returns:
            The original JSON value

        Raises:
            ValidationError: If any field is malformed (checked before any cipher call)
            AuthenticationError: If either tag fails to verify
            DeserializationError: If the plaintext is not UTF-8 JSON
        """
        if not isinstance(record, EncryptedRecord):
            record = EncryptedRecord.from_dict(record)
        record.validate()

        # No lookup by version yet: only the holder's own version can unwrap
        if record.master_key_version != self._master_key.version:
            raise AuthenticationError(DECRYPTION_FAILED)

        dek_box = SealedBox(
            nonce=bytes.fromhex(record.dek_wrap_nonce),
            ciphertext=bytes.fromhex(record.dek_wrapped),
            tag=bytes.fromhex(record.dek_wrap_tag),
        )
        payload_box = SealedBox(
            nonce=bytes.fromhex(record.payload_nonce),
            ciphertext=bytes.fromhex(record.payload_ciphertext),
            tag=bytes.fromhex(record.payload_tag),
        )

        dek = SecureKey(AesGcmCipher.open(self._master_key.key, dek_box))
        try:
            plaintext = AesGcmCipher.open(dek, payload_box)
        finally:
            dek.wipe()

        return deserialize_payload(plaintext)

    def __repr__(self) -> str:
        return f"EnvelopeCipher(master_key_version={self._master_key.version})"


def serialize_payload(payload: Any) -> bytes:
    """
    Canonical UTF-8 JSON: sorted keys, no whitespace, no NaN/Infinity.

    Raises:
        SerializationError: For circular structures or unsupported types
    """
    try:
        return json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")
    except (TypeError, ValueError, RecursionError) as e:
        # ValueError covers circular references, NaN and lone surrogates
        raise SerializationError(f"Failed to serialize payload: {e}") from e


def deserialize_payload(data: bytes) -> Any:
    """
    Parse UTF-8 JSON bytes.

    Raises:
        DeserializationError: If data is not valid UTF-8 JSON
    """
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DeserializationError(f"Failed to parse decrypted payload: {e}") from e
