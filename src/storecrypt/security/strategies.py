"""One strategy per encryption mode.

New modes are added by subclassing :class:`EncryptionStrategy` and calling
:func:`register_strategy`; the manager looks strategies up by mode.
"""

from __future__ import annotations

from typing import Dict, Type

from storecrypt.core.exceptions import NotSupportedError
from .crypto import CHUNK_SIZE, decrypt_file_stream, encrypt_file_stream
from .filename import decrypt_filename, encrypt_filename
from .kdf import FilenameKeyScheme
from .modes import EncryptionMode


class EncryptionStrategy:
    mode: EncryptionMode = EncryptionMode.UNKNOWN

    def __init__(
        self,
        obfuscate_filenames: bool = False,
        filename_key_scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.obfuscate_filenames = obfuscate_filenames
        self.filename_key_scheme = filename_key_scheme
        self.chunk_size = chunk_size

    def encrypt_filename(self, name: str, key: bytes) -> str:
        raise NotImplementedError

    def decrypt_filename(self, name: str, key: bytes) -> str:
        raise NotImplementedError

    def encrypt_file(self, source: str, target: str, key: bytes, cancel_event=None) -> None:
        raise NotImplementedError

    def decrypt_file(self, source: str, target: str, key: bytes, cancel_event=None) -> None:
        raise NotImplementedError


class PGPStrategy(EncryptionStrategy):
    """Salted AES-CBC filename tokens and OpenPGP file bodies."""

    mode = EncryptionMode.PGP

    def encrypt_filename(self, name: str, key: bytes) -> str:
        if not self.obfuscate_filenames:
            return name
        return encrypt_filename(name, key, self.filename_key_scheme)

    def decrypt_filename(self, name: str, key: bytes) -> str:
        if not self.obfuscate_filenames:
            return name
        return decrypt_filename(name, key, self.filename_key_scheme)

    def encrypt_file(self, source: str, target: str, key: bytes, cancel_event=None) -> None:
        encrypt_file_stream(source, target, key, chunk_size=self.chunk_size, cancel_event=cancel_event)

    def decrypt_file(self, source: str, target: str, key: bytes, cancel_event=None) -> None:
        decrypt_file_stream(source, target, key, chunk_size=self.chunk_size, cancel_event=cancel_event)


class WinSCPStrategy(EncryptionStrategy):
    """
    WinSCP's AES-CTR file encryption. Selectable so callers can name it and
    suffix detection can recognise it, but every operation refuses.
    """

    mode = EncryptionMode.WINSCP

    def _refuse(self, operation: str, path: str):
        raise NotSupportedError("WinSCP encryption is not supported", operation=operation, path=path)

    def encrypt_filename(self, name: str, key: bytes) -> str:
        self._refuse("encrypt_filename", name)

    def decrypt_filename(self, name: str, key: bytes) -> str:
        self._refuse("decrypt_filename", name)

    def encrypt_file(self, source: str, target: str, key: bytes, cancel_event=None) -> None:
        self._refuse("encrypt_file", source)

    def decrypt_file(self, source: str, target: str, key: bytes, cancel_event=None) -> None:
        self._refuse("decrypt_file", source)


_REGISTRY: Dict[EncryptionMode, Type[EncryptionStrategy]] = {}


def register_strategy(mode: EncryptionMode, strategy_cls: Type[EncryptionStrategy]) -> None:
    _REGISTRY[mode] = strategy_cls


def get_strategy_class(mode: EncryptionMode) -> Type[EncryptionStrategy]:
    try:
        return _REGISTRY[mode]
    except KeyError:
        raise NotSupportedError(f"no strategy registered for mode {mode.name}") from None


register_strategy(EncryptionMode.PGP, PGPStrategy)
register_strategy(EncryptionMode.WINSCP, WinSCPStrategy)
