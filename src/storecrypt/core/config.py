"""Resolved encryption settings handed to :class:`EncryptionManager`.

Callers (CLI flags, transfer workflows) fill these dataclasses; the manager
itself never reads configuration. ``EncryptionConfig.from_env`` mirrors the
environment-driven opt-in used by the command line front end:

- ``STORECRYPT_ENCRYPT``: enable encryption (``1``, ``true``, ``yes``, ``on``)
- ``STORECRYPT_ENCRYPT_MODE``: ``PGP`` (default), ``GPG``, ``OPENPGP``, ``WINSCP``
- ``STORECRYPT_ENCRYPT_KEY``: encryption password
- ``STORECRYPT_ENCRYPT_FILENAME``: also obfuscate file names
- ``STORECRYPT_FILENAME_KDF``: ``padded`` (default) or ``argon2id``

When no key is present in the environment the OS keyring is consulted.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from storecrypt.core.exceptions import ConfigurationError
from storecrypt.security.crypto import CHUNK_SIZE, require_chunk_size
from storecrypt.security.kdf import FilenameKeyScheme, as_key_bytes
from storecrypt.security.keystore import load_key
from storecrypt.security.manager import EncryptionManager
from storecrypt.security.modes import EncryptionMode, detect_mode_from_name, resolve_mode


logger = logging.getLogger(__name__)

ENV_PREFIX = "STORECRYPT_"
_TRUTHY = ("1", "true", "yes", "on")


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def parse_filename_key_scheme(raw: Optional[str]) -> FilenameKeyScheme:
    if not raw:
        return FilenameKeyScheme.PADDED
    try:
        return FilenameKeyScheme(raw.strip().lower())
    except ValueError:
        raise ConfigurationError(f"unknown filename key scheme {raw!r}") from None


def key_from_keyring() -> Optional[bytes]:
    """Return the key stored in the OS keyring, or None when unavailable."""
    try:
        return load_key()
    except ConfigurationError as e:
        logger.debug("keyring lookup skipped: %s", e)
        return None


@dataclass
class EncryptionConfig:
    enabled: bool = False
    mode: EncryptionMode = EncryptionMode.PGP
    key: bytes = field(default=b"", repr=False)
    encrypt_filename: bool = False
    filename_key_scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED
    chunk_size: int = CHUNK_SIZE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, use_keyring: bool = True) -> "EncryptionConfig":
        env = os.environ if environ is None else environ
        raw_mode = env.get(ENV_PREFIX + "ENCRYPT_MODE")
        # an unset mode means the default scheme, not "unknown"
        mode = resolve_mode(raw_mode) if raw_mode else EncryptionMode.PGP

        key = as_key_bytes(env.get(ENV_PREFIX + "ENCRYPT_KEY"))
        if not key and use_keyring:
            key = key_from_keyring() or b""

        return cls(
            enabled=_flag(env.get(ENV_PREFIX + "ENCRYPT")),
            mode=mode,
            key=key,
            encrypt_filename=_flag(env.get(ENV_PREFIX + "ENCRYPT_FILENAME")),
            filename_key_scheme=parse_filename_key_scheme(env.get(ENV_PREFIX + "FILENAME_KDF")),
        )

    def validate(self) -> None:
        require_chunk_size(self.chunk_size, "configure")
        if not self.enabled:
            return
        if self.mode is EncryptionMode.UNKNOWN:
            raise ConfigurationError("encryption is enabled but the mode is unknown")
        if not self.key:
            raise ConfigurationError("encryption is enabled but no encryption key is set")


@dataclass
class DecryptionConfig:
    decryption: bool = True
    no_decryption: bool = False
    key: bytes = field(default=b"", repr=False)
    filename_key_scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED

    def requires_decryption(self, path: str) -> bool:
        """True when decryption is requested, not vetoed, and ``path`` carries a known suffix."""
        if self.no_decryption or not self.decryption:
            return False
        return detect_mode_from_name(path) is not EncryptionMode.UNKNOWN


def build_manager(config: EncryptionConfig, mode: Optional[EncryptionMode] = None) -> EncryptionManager:
    """Create a manager from ``config``; ``mode`` overrides the configured one (e.g. a detected suffix)."""
    return EncryptionManager(
        mode=mode if mode is not None else config.mode,
        encrypt_filename=config.encrypt_filename,
        key=config.key,
        filename_key_scheme=config.filename_key_scheme,
        chunk_size=config.chunk_size,
    )


def build_decryption_manager(config: DecryptionConfig, path: str, encrypt_filename: bool = True) -> EncryptionManager:
    """Create a manager for the mode detected from ``path``."""
    return EncryptionManager(
        mode=detect_mode_from_name(path),
        encrypt_filename=encrypt_filename,
        key=config.key,
        filename_key_scheme=config.filename_key_scheme,
    )
