"""
Cryptographic primitives for AES-256-GCM envelope encryption.

This module provides:
- SecureKey: Secure key wrapper with best-effort zeroization
- SealedBox: AEAD output split into nonce, ciphertext and tag
- AesGcmCipher: AES-256-GCM seal/open operations
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationError, CryptoInternalError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)

ALGORITHM: str = "AES-256-GCM"

# Same message for every tag failure so callers cannot tell wrong key from tampering
DECRYPTION_FAILED: str = "Decryption failed: data may be tampered or corrupted"


class SecureKey:
    """
    Secure key wrapper with memory cleanup on wipe or deletion.

    Uses bytearray internally for mutable zeroing.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    and AESGCM keeps its own copy, so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoInternalError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def wipe(self) -> None:
        """Overwrite the key material with zeros."""
        for i in range(len(self._bytes)):
            self._bytes[i] = 0

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        if hasattr(self, "_bytes"):
            self.wipe()


@dataclass(frozen=True)
class SealedBox:
    """
    Output of one AES-256-GCM encryption.

    AESGCM appends the tag to the ciphertext; here it is kept separate
    because records store the two in distinct fields.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes
    tag: bytes  # 16 bytes

    @classmethod
    def from_aead_output(cls, nonce: bytes, output: bytes) -> SealedBox:
        return cls(nonce=nonce, ciphertext=output[:-TAG_SIZE], tag=output[-TAG_SIZE:])

    def aead_input(self) -> bytes:
        """Ciphertext || tag, the layout AESGCM.decrypt expects."""
        return self.ciphertext + self.tag


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    Each seal draws a fresh random nonce, so two calls never share one.
    """

    @staticmethod
    def seal(
        key: SecureKey,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> SealedBox:
        """
        Encrypt plaintext with AES-256-GCM.

        EnvelopeCipher passes no AAD: records bind nothing beyond their own
        ciphertext, so the party id and record id stay outside the tag.

        Args:
            key: 32-byte encryption key
            plaintext: Data to encrypt
            aad: Optional Additional Authenticated Data for binding

        Returns:
            SealedBox with nonce, ciphertext and tag

        Raises:
            CryptoInternalError: If key size is invalid or encryption fails
        """
        _check_key(key)
        nonce = generate_random_bytes(NONCE_SIZE)

        try:
            output = AESGCM(key.as_bytes()).encrypt(nonce, plaintext, aad)
        except Exception as e:
            raise CryptoInternalError(f"Encryption error: {e}") from e

        return SealedBox.from_aead_output(nonce, output)

    @staticmethod
    def open(
        key: SecureKey,
        sealed: SealedBox,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt and verify a SealedBox with AES-256-GCM.

        Args:
            key: 32-byte decryption key
            sealed: SealedBox produced by seal()
            aad: Optional Additional Authenticated Data (must match encryption)

        Returns:
            Decrypted plaintext bytes

        Raises:
            AuthenticationError: If the tag does not verify
            CryptoInternalError: If key/nonce size is invalid or the primitive fails
        """
        _check_key(key)

        if len(sealed.nonce) != NONCE_SIZE:
            raise CryptoInternalError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(sealed.nonce)}"
            )
        if len(sealed.tag) != TAG_SIZE:
            raise CryptoInternalError(
                f"Invalid tag size: expected {TAG_SIZE}, got {len(sealed.tag)}"
            )

        try:
            return AESGCM(key.as_bytes()).decrypt(sealed.nonce, sealed.aead_input(), aad)
        except InvalidTag:
            raise AuthenticationError(DECRYPTION_FAILED) from None
        except Exception as e:
            raise CryptoInternalError(f"Decryption error: {e}") from e


def _check_key(key: SecureKey) -> None:
    if len(key) != AES_256_KEY_SIZE:
        raise CryptoInternalError(
            f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}"
        )


def generate_random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes.

    Args:
        length: Number of bytes to generate

    Returns:
        Random bytes of specified length
    """
    return secrets.token_bytes(length)
