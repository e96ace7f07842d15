"""
Process configuration.

Settings are read once at startup from the environment (and a .env file, if
present). The master key is decoded eagerly so misconfiguration fails fast.

Environment variables:
- MASTER_KEY_HEX: 64 hex characters (required)
- MASTER_KEY_VERSION: positive integer (default: 1)
- DATABASE_URL: PostgreSQL DSN (optional; in-memory storage without it)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .envelope import DEFAULT_MASTER_KEY_VERSION, EnvelopeCipher, MasterKey
from .errors import ConfigurationError


@dataclass(frozen=True)
class Settings:
    """Validated process settings."""

    master_key: MasterKey
    database_url: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv_path: Optional[Union[str, Path]] = None,
    ) -> Settings:
        """
        Load settings from the environment.

        Args:
            environ: Mapping to read instead of os.environ (skips .env loading)
            dotenv_path: Explicit .env file; default is dotenv's own search

        Raises:
            ConfigurationError: If MASTER_KEY_HEX is missing or malformed
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        version_text = environ.get("MASTER_KEY_VERSION")
        if version_text:
            try:
                version = int(version_text)
            except ValueError:
                raise ConfigurationError(
                    f"MASTER_KEY_VERSION must be an integer, got {version_text!r}"
                ) from None
        else:
            version = DEFAULT_MASTER_KEY_VERSION

        key_hex = environ.get("MASTER_KEY_HEX")
        if not key_hex:
            raise ConfigurationError("MASTER_KEY_HEX environment variable is required")

        return cls(
            master_key=MasterKey.from_hex(key_hex.strip(), version),
            database_url=environ.get("DATABASE_URL") or None,
        )

    def build_cipher(self) -> EnvelopeCipher:
        """Construct the engine for this process."""
        return EnvelopeCipher(self.master_key)
