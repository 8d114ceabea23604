"""
Encryption manager: the façade callers use around uploads and downloads.

A manager is built once per logical operation (e.g. one CLI invocation) from
fully resolved values; it never reads configuration itself. Key material is
copied into a private buffer that :meth:`EncryptionManager.wipe` zeroes, and
every operation also accepts a per-call ``key`` override so long-lived
managers are not required.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from storecrypt.core.exceptions import ConfigurationError
from .crypto import CHUNK_SIZE, require_chunk_size
from .kdf import FilenameKeyScheme, as_key_bytes
from .modes import EncryptionMode, resolve_mode
from .strategies import EncryptionStrategy, get_strategy_class


logger = logging.getLogger(__name__)

# components that are never encrypted when mapping whole paths
_PATH_SPECIALS = ("", ".", "..")


class EncryptionManager:
    def __init__(
        self,
        mode: Union[EncryptionMode, str] = EncryptionMode.PGP,
        encrypt_filename: bool = False,
        key: Union[bytes, bytearray, str, None] = None,
        filename_key_scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED,
        chunk_size: int = CHUNK_SIZE,
    ):
        if isinstance(mode, str):
            mode = resolve_mode(mode)
        self._mode = mode
        self._encrypt_filename = bool(encrypt_filename)
        self._key = bytearray(as_key_bytes(key))
        self._filename_key_scheme = filename_key_scheme
        self._chunk_size = require_chunk_size(chunk_size, "create_manager")

    @property
    def mode(self) -> EncryptionMode:
        return self._mode

    @property
    def filename_encryption_enabled(self) -> bool:
        return self._encrypt_filename

    # ------------------------------------------------------------------
    # Strategy selection
    # ------------------------------------------------------------------

    def _strategy(self, mode: EncryptionMode) -> EncryptionStrategy:
        strategy_cls = get_strategy_class(mode)
        return strategy_cls(
            obfuscate_filenames=self._encrypt_filename,
            filename_key_scheme=self._filename_key_scheme,
            chunk_size=self._chunk_size,
        )

    def _encrypting_strategy(self) -> EncryptionStrategy:
        # PGP is the default when no mode was given
        if self._mode is EncryptionMode.UNKNOWN:
            return self._strategy(EncryptionMode.PGP)
        return self._strategy(self._mode)

    def _decrypting_strategy(self, operation: str, path: str) -> EncryptionStrategy:
        if self._mode is EncryptionMode.UNKNOWN:
            raise ConfigurationError(
                "encryption mode is unknown; refusing to decrypt", operation=operation, path=path
            )
        return self._strategy(self._mode)

    def _key_for(self, key) -> bytes:
        if key is not None:
            return as_key_bytes(key)
        return bytes(self._key)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def encrypt_filename(self, name: str, key=None) -> str:
        strategy = self._encrypting_strategy()
        return strategy.encrypt_filename(name, self._key_for(key))

    def decrypt_filename(self, name: str, key=None) -> str:
        strategy = self._decrypting_strategy("decrypt_filename", name)
        return strategy.decrypt_filename(name, self._key_for(key))

    def encrypt_file(self, source, target, key=None, cancel_event=None) -> None:
        """Encrypt local ``source`` into ``target``."""
        strategy = self._encrypting_strategy()
        logger.debug("encrypting %s with mode %s", source, strategy.mode.name)
        strategy.encrypt_file(source, target, self._key_for(key), cancel_event=cancel_event)

    def decrypt_file(self, source, target, key=None, cancel_event=None) -> None:
        """Decrypt local ``source`` into ``target``."""
        strategy = self._decrypting_strategy("decrypt_file", str(source))
        logger.debug("decrypting %s with mode %s", source, strategy.mode.name)
        strategy.decrypt_file(source, target, self._key_for(key), cancel_event=cancel_event)

    def encrypt_path(self, path: str, key=None) -> str:
        """Encrypt every component of a ``/``-separated remote path."""
        return "/".join(
            part if part in _PATH_SPECIALS else self.encrypt_filename(part, key=key)
            for part in path.split("/")
        )

    def decrypt_path(self, path: str, key=None) -> str:
        return "/".join(
            part if part in _PATH_SPECIALS else self.decrypt_filename(part, key=key)
            for part in path.split("/")
        )

    # ------------------------------------------------------------------
    # Key lifetime
    # ------------------------------------------------------------------

    def wipe(self) -> None:
        """Overwrite the held key material with zeros and drop it."""
        for i in range(len(self._key)):
            self._key[i] = 0
        self._key = bytearray()

    def __enter__(self) -> "EncryptionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return (
            f"EncryptionManager(mode={self._mode.name}, encrypt_filename={self._encrypt_filename}, "
            f"key_set={bool(self._key)})"
        )
