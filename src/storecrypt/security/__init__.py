"""Security helpers: filename tokens and streaming file encryption for storecrypt.

This package provides:
- mode resolution from user strings and filename suffixes
- salted AES-CBC filename tokens (base62, path-safe)
- streaming OpenPGP symmetric encryption of file contents
- the EncryptionManager façade dispatching to one strategy per mode
"""

from .modes import (
    EncryptionMode,
    PGP_ENCRYPTED_FILE_EXTENSION,
    WINSCP_ENCRYPTED_FILE_EXTENSION,
    resolve_mode,
    detect_mode_from_name,
)
from .kdf import FilenameKeyScheme
from .filename import encrypt_filename, decrypt_filename
from .crypto import encrypt_file_stream, decrypt_file_stream
from .manager import EncryptionManager
from .strategies import EncryptionStrategy, register_strategy

__all__ = [
    "EncryptionMode",
    "PGP_ENCRYPTED_FILE_EXTENSION",
    "WINSCP_ENCRYPTED_FILE_EXTENSION",
    "resolve_mode",
    "detect_mode_from_name",
    "FilenameKeyScheme",
    "encrypt_filename",
    "decrypt_filename",
    "encrypt_file_stream",
    "decrypt_file_stream",
    "EncryptionManager",
    "EncryptionStrategy",
    "register_strategy",
]
