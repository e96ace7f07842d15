"""
Tests for the envelope encryption engine.
"""

from __future__ import annotations

import dataclasses
import json
from concurrent.futures import ThreadPoolExecutor
from unittest import mock

import pytest

from envelope_cipher import (
    AesGcmCipher,
    AuthenticationError,
    ConfigurationError,
    DeserializationError,
    EncryptedRecord,
    EnvelopeCipher,
    MasterKey,
    SecureKey,
    SerializationError,
    ValidationError,
)
from envelope_cipher.envelope import serialize_payload

ZERO_KEY_HEX = "00" * 32


def _flip_bit(hex_str: str, bit: int) -> str:
    data = bytearray.fromhex(hex_str)
    data[bit // 8] ^= 1 << (bit % 8)
    return data.hex()


# =============================================================================
# Master key
# =============================================================================


def test_master_key_accepts_upper_and_lower_case():
    assert MasterKey.from_hex("AB" * 32).key.as_bytes() == bytes([0xAB]) * 32
    assert MasterKey.from_hex("ab" * 32).version == 1


@pytest.mark.parametrize(
    "key_hex",
    [None, "", "0" * 63, "0" * 65, "zz" * 32, "0x" + "00" * 31, "00" * 31 + " 0"],
)
def test_master_key_rejects_malformed(key_hex):
    with pytest.raises(ConfigurationError):
        EnvelopeCipher.from_hex(key_hex)


def test_master_key_rejects_bad_version():
    with pytest.raises(ConfigurationError):
        MasterKey.from_hex(ZERO_KEY_HEX, version=0)


def test_master_key_repr_is_redacted():
    key = MasterKey.from_hex("ab" * 32)
    assert "ab" * 4 not in repr(key)
    assert "REDACTED" in repr(key)


def test_cipher_requires_master_key():
    with pytest.raises(ConfigurationError):
        EnvelopeCipher(SecureKey.generate())


# =============================================================================
# Encrypt / decrypt
# =============================================================================


def test_concrete_scenario(cipher):
    payload = {"amount": 100, "currency": "AED"}
    record = cipher.encrypt("party_123", payload)
    encoded = record.to_dict()

    assert encoded["alg"] == "AES-256-GCM"
    assert encoded["mk_version"] == 1
    assert len(encoded["payload_nonce"]) == 24
    assert len(encoded["payload_tag"]) == 32
    assert len(encoded["dek_wrap_nonce"]) == 24
    assert len(encoded["dek_wrapped"]) == 64
    assert len(encoded["dek_wrap_tag"]) == 32
    for key in ("payload_nonce", "payload_ct", "payload_tag", "dek_wrap_nonce", "dek_wrapped", "dek_wrap_tag"):
        assert encoded[key] == encoded[key].lower()

    assert EnvelopeCipher.from_hex(ZERO_KEY_HEX).decrypt(record) == payload


@pytest.mark.parametrize(
    "payload",
    [
        {"amount": 100, "currency": "AED"},
        {"nested": {"list": [1, 2.5, None, True, "x"]}, "empty": {}},
        [1, "two", {"three": 3}],
        "just a string",
        42,
        None,
        {"unicode": "درهم €"},
        {},
    ],
)
def test_round_trip(cipher, payload):
    assert cipher.decrypt(cipher.encrypt("party_1", payload)) == payload


def test_decrypt_accepts_interchange_dict(cipher):
    record = cipher.encrypt("party_1", {"a": 1})
    assert cipher.decrypt(json.loads(record.to_json())) == {"a": 1}


def test_decrypt_is_repeatable(cipher):
    record = cipher.encrypt("party_1", {"a": [1, 2, 3]})
    assert cipher.decrypt(record) == cipher.decrypt(record)


def test_record_is_immutable(cipher):
    record = cipher.encrypt("party_1", {"a": 1})
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.payload_nonce = "00" * 12


def test_same_payload_encrypts_differently(cipher):
    first = cipher.encrypt("party_1", {"a": 1})
    second = cipher.encrypt("party_1", {"a": 1})
    assert first.payload_ciphertext != second.payload_ciphertext
    assert first.dek_wrapped != second.dek_wrapped


def test_nonces_are_unique(cipher):
    count = 10_000
    payload_nonces = set()
    wrap_nonces = set()
    for i in range(count):
        record = cipher.encrypt("party_1", {"i": i})
        payload_nonces.add(record.payload_nonce)
        wrap_nonces.add(record.dek_wrap_nonce)
    assert len(payload_nonces) == count
    assert len(wrap_nonces) == count
    assert not payload_nonces & wrap_nonces


def test_serialization_is_canonical():
    assert serialize_payload({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'


@pytest.mark.parametrize(
    "payload",
    [
        {"when": object()},
        {"x": float("nan")},
        {"s": "\ud800"},
        {1: "a", "b": 2},
    ],
)
def test_unserializable_payload(cipher, payload):
    with pytest.raises(SerializationError):
        cipher.encrypt("party_1", payload)


def test_circular_payload(cipher):
    payload = {}
    payload["self"] = payload
    with pytest.raises(SerializationError):
        cipher.encrypt("party_1", payload)


# =============================================================================
# Tampering and wrong keys
# =============================================================================


@pytest.mark.parametrize("field_name", ["payload_ct", "payload_tag", "dek_wrapped", "dek_wrap_tag"])
def test_single_bit_tamper_detected(cipher, field_name):
    encoded = cipher.encrypt("party_1", {"amount": 100, "currency": "AED"}).to_dict()
    bits = len(encoded[field_name]) * 4

    for bit in range(bits):
        tampered = dict(encoded)
        tampered[field_name] = _flip_bit(encoded[field_name], bit)
        with pytest.raises(AuthenticationError):
            cipher.decrypt(tampered)


@pytest.mark.parametrize("field_name", ["payload_nonce", "dek_wrap_nonce"])
def test_nonce_tamper_detected(cipher, field_name):
    encoded = cipher.encrypt("party_1", {"a": 1}).to_dict()
    encoded[field_name] = _flip_bit(encoded[field_name], 0)
    with pytest.raises(AuthenticationError):
        cipher.decrypt(encoded)


def test_wrong_master_key(cipher, other_cipher):
    record = cipher.encrypt("party_1", {"a": 1})
    with pytest.raises(AuthenticationError) as wrong_key:
        other_cipher.decrypt(record)

    tampered = dataclasses.replace(record, dek_wrap_tag=_flip_bit(record.dek_wrap_tag, 3))
    with pytest.raises(AuthenticationError) as tampered_tag:
        cipher.decrypt(tampered)

    assert str(wrong_key.value) == str(tampered_tag.value)


def test_master_key_version_mismatch(cipher):
    v2 = EnvelopeCipher.from_hex(ZERO_KEY_HEX, version=2)
    record = v2.encrypt("party_1", {"a": 1})
    assert record.master_key_version == 2
    assert v2.decrypt(record) == {"a": 1}
    with pytest.raises(AuthenticationError):
        cipher.decrypt(record)


def test_swapped_dek_rejected(cipher):
    first = cipher.encrypt("party_1", {"a": 1})
    second = cipher.encrypt("party_1", {"b": 2})
    mixed = dataclasses.replace(
        first,
        dek_wrap_nonce=second.dek_wrap_nonce,
        dek_wrapped=second.dek_wrapped,
        dek_wrap_tag=second.dek_wrap_tag,
    )
    with pytest.raises(AuthenticationError):
        cipher.decrypt(mixed)


# =============================================================================
# Validation before crypto
# =============================================================================


@pytest.mark.parametrize("nonce_bytes", [10, 14])
def test_bad_nonce_length_rejected_before_cipher(cipher, nonce_bytes):
    record = cipher.encrypt("party_1", {"a": 1})
    bad = dataclasses.replace(record, payload_nonce="00" * nonce_bytes)

    with mock.patch("envelope_cipher.crypto.AESGCM") as aesgcm:
        with pytest.raises(ValidationError) as exc_info:
            cipher.decrypt(bad)
        aesgcm.assert_not_called()

    assert exc_info.value.field == "payload_nonce"
    assert "12 bytes" in str(exc_info.value)
    assert f"got {nonce_bytes} bytes" in str(exc_info.value)


@pytest.mark.parametrize(
    "field_name, value",
    [
        ("payload_tag", "00" * 15),
        ("dek_wrap_tag", "gg" * 16),
        ("dek_wrap_nonce", ""),
        ("dek_wrapped", "00" * 48),
        ("payload_ct", "abc"),
        ("payload_ct", "not hex"),
        ("alg", "AES-128-GCM"),
        ("mk_version", "1"),
    ],
)
def test_malformed_fields_rejected_before_cipher(cipher, field_name, value):
    encoded = cipher.encrypt("party_1", {"a": 1}).to_dict()
    encoded[field_name] = value

    with mock.patch("envelope_cipher.crypto.AESGCM") as aesgcm:
        with pytest.raises(ValidationError) as exc_info:
            cipher.decrypt(encoded)
        aesgcm.assert_not_called()

    assert exc_info.value.field == field_name


def test_missing_field_rejected(cipher):
    encoded = cipher.encrypt("party_1", {"a": 1}).to_dict()
    del encoded["dek_wrap_tag"]
    with pytest.raises(ValidationError):
        cipher.decrypt(encoded)


def test_non_json_plaintext(cipher):
    master = MasterKey.from_hex(ZERO_KEY_HEX)
    dek = SecureKey.generate()
    payload_box = AesGcmCipher.seal(dek, b"\xff\xfe not json")
    dek_box = AesGcmCipher.seal(master.key, dek.as_bytes())
    record = EncryptedRecord(
        payload_nonce=payload_box.nonce.hex(),
        payload_ciphertext=payload_box.ciphertext.hex(),
        payload_tag=payload_box.tag.hex(),
        dek_wrap_nonce=dek_box.nonce.hex(),
        dek_wrapped=dek_box.ciphertext.hex(),
        dek_wrap_tag=dek_box.tag.hex(),
    )

    with pytest.raises(DeserializationError):
        cipher.decrypt(record)


# =============================================================================
# Concurrency
# =============================================================================


def test_shared_cipher_across_threads(cipher):
    def work(worker: int) -> bool:
        for i in range(200):
            payload = {"worker": worker, "i": i}
            if cipher.decrypt(cipher.encrypt(f"party_{worker}", payload)) != payload:
                return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        assert all(pool.map(work, range(8)))
