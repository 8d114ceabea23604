"""Encryption mode resolution from user strings and filename suffixes."""

from __future__ import annotations

import posixpath
from enum import Enum
from typing import Optional


PGP_ENCRYPTED_FILE_EXTENSION = ".pgp.enc"
WINSCP_ENCRYPTED_FILE_EXTENSION = ".aesctr.enc"


class EncryptionMode(Enum):
    # Closed set of schemes; UNKNOWN means "do not attempt decryption"
    PGP = "PGP"
    WINSCP = "WINSCP"
    UNKNOWN = ""

    @property
    def suffix(self) -> str:
        return _SUFFIXES.get(self, "")


_SUFFIXES = {
    EncryptionMode.PGP: PGP_ENCRYPTED_FILE_EXTENSION,
    EncryptionMode.WINSCP: WINSCP_ENCRYPTED_FILE_EXTENSION,
}

_ALIASES = {
    "WINSCP": EncryptionMode.WINSCP,
    "PGP": EncryptionMode.PGP,
    "GPG": EncryptionMode.PGP,
    "OPENPGP": EncryptionMode.PGP,
}


def resolve_mode(raw: Optional[str]) -> EncryptionMode:
    """Map a user supplied mode string to an :class:`EncryptionMode`.

    Matching is case-insensitive. ``GPG`` and ``OPENPGP`` are synonyms for
    PGP. Anything unrecognised (including ``None``) resolves to UNKNOWN.
    """
    if not raw:
        return EncryptionMode.UNKNOWN
    return _ALIASES.get(raw.strip().upper(), EncryptionMode.UNKNOWN)


def detect_mode_from_name(filename: str) -> EncryptionMode:
    """Guess the mode that produced ``filename`` from its suffix marker."""
    name = posixpath.basename(filename.rstrip("/")) if filename else ""
    if name.endswith(WINSCP_ENCRYPTED_FILE_EXTENSION):
        return EncryptionMode.WINSCP
    if name.endswith(PGP_ENCRYPTED_FILE_EXTENSION):
        return EncryptionMode.PGP
    return EncryptionMode.UNKNOWN
