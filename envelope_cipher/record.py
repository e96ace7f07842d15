"""
Encrypted record model and its interchange encoding.

An EncryptedRecord is what gets persisted and sent over the wire. All binary
fields are lowercase hex without prefix or separators, under the interchange
keys listed in FIELD_NAMES.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict

from .crypto import AES_256_KEY_SIZE, ALGORITHM, NONCE_SIZE, TAG_SIZE
from .errors import DeserializationError, ValidationError

_HEX_RE = re.compile(r"[0-9a-fA-F]+")


def is_hex(value: Any) -> bool:
    """True for a non-empty string of hex digits (either case)."""
    return isinstance(value, str) and _HEX_RE.fullmatch(value) is not None


# attribute name -> interchange key
FIELD_NAMES: Dict[str, str] = {
    "payload_nonce": "payload_nonce",
    "payload_ciphertext": "payload_ct",
    "payload_tag": "payload_tag",
    "dek_wrap_nonce": "dek_wrap_nonce",
    "dek_wrapped": "dek_wrapped",
    "dek_wrap_tag": "dek_wrap_tag",
    "algorithm": "alg",
    "master_key_version": "mk_version",
}

# interchange key -> exact decoded byte length
FIXED_LENGTHS: Dict[str, int] = {
    "payload_nonce": NONCE_SIZE,
    "payload_tag": TAG_SIZE,
    "dek_wrap_nonce": NONCE_SIZE,
    "dek_wrapped": AES_256_KEY_SIZE,
    "dek_wrap_tag": TAG_SIZE,
}

HEX_FIELDS = frozenset(FIXED_LENGTHS) | {"payload_ct"}


def validate_hex(value: Any, expected_bytes: int, field_name: str) -> None:
    """
    Check that value is a hex string encoding exactly expected_bytes bytes.

    Raises:
        ValidationError: naming the field and the expected vs actual byte count
    """
    if not is_hex(value):
        raise ValidationError(f"{field_name} is not valid hex", field=field_name)
    if len(value) != expected_bytes * 2:
        raise ValidationError(
            f"{field_name} must be {expected_bytes} bytes, got {len(value) / 2:g} bytes",
            field=field_name,
        )


def _validate_variable_hex(value: Any, field_name: str) -> None:
    if not is_hex(value):
        raise ValidationError(f"{field_name} is not valid hex", field=field_name)
    if len(value) % 2:
        raise ValidationError(
            f"{field_name} has an odd number of hex characters", field=field_name
        )


@dataclass(frozen=True)
class EncryptedRecord:
    """Envelope-encrypted payload plus its wrapped DEK."""

    payload_nonce: str
    payload_ciphertext: str
    payload_tag: str
    dek_wrap_nonce: str
    dek_wrapped: str
    dek_wrap_tag: str
    algorithm: str = ALGORITHM
    master_key_version: int = 1

    def validate(self) -> None:
        """
        Validate every field before any cryptographic use.

        Raises:
            ValidationError: On the first malformed field
        """
        encoded = self.to_dict()
        for key, size in FIXED_LENGTHS.items():
            validate_hex(encoded[key], size, key)
        _validate_variable_hex(encoded["payload_ct"], "payload_ct")

        if self.algorithm != ALGORITHM:
            raise ValidationError(
                f"alg must be {ALGORITHM!r}, got {self.algorithm!r}", field="alg"
            )
        version = self.master_key_version
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise ValidationError(
                f"mk_version must be a positive integer, got {version!r}",
                field="mk_version",
            )

    def to_dict(self) -> Dict[str, Any]:
        """Interchange form, keyed by the wire field names."""
        return {key: getattr(self, attr) for attr, key in FIELD_NAMES.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> EncryptedRecord:
        """
        Build a record from its interchange form.

        Presence and hex field types are checked here; lengths are checked
        by validate().

        Raises:
            ValidationError: If data is not a mapping, a field is missing,
                or a hex field is not a string
        """
        if not isinstance(data, dict):
            raise ValidationError("Encrypted record must be a JSON object")

        values = {}
        for attr, key in FIELD_NAMES.items():
            if key not in data:
                raise ValidationError(f"{key} is required", field=key)
            if key in HEX_FIELDS and not isinstance(data[key], str):
                raise ValidationError(f"{key} must be a string", field=key)
            values[attr] = data[key]
        return cls(**values)

    def to_json(self) -> str:
        """Compact JSON of the interchange form."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str | bytes) -> EncryptedRecord:
        """
        Parse a record from JSON text.

        Raises:
            DeserializationError: If text is not valid JSON
            ValidationError: If a field is missing
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise DeserializationError(f"Failed to parse encrypted record: {e}") from e
        return cls.from_dict(data)
