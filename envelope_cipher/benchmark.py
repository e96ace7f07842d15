"""
Envelope Cipher Benchmark CLI.

Usage:
    envelope-benchmark

Or run directly:
    python -m envelope_cipher.benchmark

Setup:
    1. Set MASTER_KEY_HEX (64 hex chars) in the environment or .env file
    2. Optionally set DATABASE_URL to benchmark against PostgreSQL;
       without it records are kept in memory
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import Optional

import asyncpg

from envelope_cipher.config import Settings
from envelope_cipher.errors import AuthenticationError, ConfigurationError
from envelope_cipher.postgres import PostgresRecordStore
from envelope_cipher.record import EncryptedRecord
from envelope_cipher.service import TransactionService
from envelope_cipher.storage import InMemoryRecordStore, RecordStore


def _flip_first_bit(hex_str: str) -> str:
    data = bytearray.fromhex(hex_str)
    data[0] ^= 0x01
    return data.hex()


async def run_benchmark() -> None:
    """Run the envelope cipher benchmark."""
    print("=== Envelope Cipher Benchmark ===\n")

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    pool: Optional[asyncpg.Pool] = None
    store: RecordStore
    if settings.database_url:
        pool = await asyncpg.create_pool(settings.database_url)
        if pool is None:
            print("ERROR: Failed to create connection pool")
            sys.exit(1)
        pg_store = PostgresRecordStore(pool)
        await pg_store.init_schema()
        truncate_start = time.perf_counter()
        await pg_store.truncate()
        truncate_duration = (time.perf_counter() - truncate_start) * 1000
        print(f"[STARTUP] Table truncated in {truncate_duration:.3f}ms")
        store = pg_store
    else:
        print("[STARTUP] DATABASE_URL not set, using in-memory storage")
        store = InMemoryRecordStore()

    try:
        user_input = input("Enter number of records to test (default: 1000): ").strip()
        test_quantity = int(user_input) if user_input else 1000
    except ValueError:
        test_quantity = 1000
    test_quantity = max(test_quantity, 1)
    print(f"Testing with {test_quantity} records\n")

    service = TransactionService(settings.build_cipher(), store)

    print("=" * 70)
    print("                    BENCHMARK START")
    print("=" * 70 + "\n")

    # ========================================================================
    # Demo 1: Encrypt and store
    # ========================================================================
    print("+" + "-" * 68 + "+")
    print("|  Demo 1: Encrypt + Store                                          |")
    print("+" + "-" * 68 + "+")

    record_ids = []
    demo1_start = time.perf_counter()
    for i in range(test_quantity):
        stored = await service.encrypt_and_store(
            f"party_{i % 10}", {"amount": i, "currency": "AED"}
        )
        record_ids.append(stored.id)

        if (i + 1) % 250 == 0 or (i + 1) == test_quantity:
            print(f"  Progress: {i + 1}/{test_quantity}")
    demo1_duration = time.perf_counter() - demo1_start

    print(f"[OK] Stored {test_quantity} encrypted records")
    print(f"[PERF] Time: {demo1_duration * 1000:.3f}ms | Rate: {test_quantity / demo1_duration:.2f} ops/sec\n")

    # ========================================================================
    # Demo 2: Fetch and decrypt
    # ========================================================================
    print("+" + "-" * 68 + "+")
    print("|  Demo 2: Fetch + Decrypt                                          |")
    print("+" + "-" * 68 + "+")

    demo2_start = time.perf_counter()
    for i, record_id in enumerate(record_ids):
        decrypted = await service.decrypt_record(record_id)
        if decrypted.payload != {"amount": i, "currency": "AED"}:
            print(f"[ERROR] Round-trip mismatch for record {record_id}")
            sys.exit(1)
    demo2_duration = time.perf_counter() - demo2_start

    print(f"[OK] Decrypted {test_quantity} records, all payloads match")
    print(f"[PERF] Time: {demo2_duration * 1000:.3f}ms | Rate: {test_quantity / demo2_duration:.2f} ops/sec\n")

    # ========================================================================
    # Demo 3: Nonce uniqueness
    # ========================================================================
    print("+" + "-" * 68 + "+")
    print("|  Demo 3: Nonce Uniqueness                                         |")
    print("+" + "-" * 68 + "+")

    payload_nonces = set()
    wrap_nonces = set()
    for record_id in record_ids:
        stored = await service.get_record(record_id)
        payload_nonces.add(stored.record.payload_nonce)
        wrap_nonces.add(stored.record.dek_wrap_nonce)

    if len(payload_nonces) == len(wrap_nonces) == test_quantity:
        print(f"[OK] {test_quantity} distinct payload nonces, {test_quantity} distinct wrap nonces\n")
    else:
        print("[ERROR] Nonce reuse detected\n")

    # ========================================================================
    # Demo 4: Tamper detection
    # ========================================================================
    print("+" + "-" * 68 + "+")
    print("|  Demo 4: Tamper Detection                                         |")
    print("+" + "-" * 68 + "+")

    baseline = (await service.get_record(record_ids[0])).record.to_dict()
    for field_name in ("payload_ct", "payload_tag", "dek_wrapped", "dek_wrap_tag"):
        tampered = dict(baseline)
        tampered[field_name] = _flip_first_bit(tampered[field_name])
        try:
            service.cipher.decrypt(EncryptedRecord.from_dict(tampered))
            print(f"[ERROR] Tampered {field_name} was accepted")
        except AuthenticationError:
            print(f"[OK] Tampered {field_name} rejected")
    print()

    # ========================================================================
    # Summary
    # ========================================================================
    print("=" * 70)
    print("                    BENCHMARK SUMMARY")
    print("=" * 70 + "\n")

    enc_rate = f"{test_quantity / demo1_duration:.2f}"
    dec_rate = f"{test_quantity / demo2_duration:.2f}"
    print(f"  Encrypt + Store:  {enc_rate} ops/sec")
    print(f"  Fetch + Decrypt:  {dec_rate} ops/sec")

    print("\nTest Configuration:")
    print(f"  - Total records tested: {test_quantity}")
    print(f"  - Storage: {'PostgreSQL' if pool is not None else 'in-memory'}")
    print(f"  - Crypto: AES-256-GCM envelope, master key v{service.cipher.master_key_version}")

    print("\n" + "=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")

    if pool is not None:
        await pool.close()


def main() -> None:
    """CLI entry point for envelope-benchmark command."""
    asyncio.run(run_benchmark())


if __name__ == "__main__":
    main()
