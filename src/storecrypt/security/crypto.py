"""Streaming file encryption for PGP mode.

Files are wrapped in a passphrase-encrypted OpenPGP message (AES-256, no
compression, no signature) produced by :mod:`storecrypt.security.openpgp`.
Content is copied in fixed-size chunks; between chunks an optional
``cancel_event`` (anything with ``is_set()``, e.g. ``threading.Event``) is
checked so long transfers can be interrupted.

Failure policy:
- errors while opening the source leave the target untouched
- any other failure removes the partially written target
- cancellation raises :class:`OperationCancelledError` and leaves the partial
  target in place for the caller to discard
"""

import logging
import os
from typing import BinaryIO, Callable, Optional

from storecrypt.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    OperationCancelledError,
    StreamIOError,
)
from .kdf import as_key_bytes
from .openpgp import CIPHER_AES256, SymmetricMessageReader, SymmetricMessageWriter


logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024  # 64KB


def single_attempt_passphrase(password: bytes) -> Callable[[], bytes]:
    """Return a passphrase callback that answers once and then refuses."""
    used = False

    def prompt() -> bytes:
        nonlocal used
        if used:
            raise AuthenticationError("decryption failed: wrong password or corrupted data", operation="decrypt_file")
        used = True
        return password

    return prompt


def _require_password(key, operation: str, path: str) -> bytes:
    password = as_key_bytes(key)
    if not password:
        raise ConfigurationError("encryption key is not set", operation=operation, path=path)
    return password


def require_chunk_size(chunk_size: int, operation: str, path: Optional[str] = None) -> int:
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk size must be positive, got {chunk_size}", operation=operation, path=path)
    return chunk_size


def _copy(reader, writer, chunk_size: int, cancel_event, operation: str, path: str) -> None:
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("operation cancelled", operation=operation, path=path)
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        writer.write(chunk)


def _remove_partial(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("failed to remove partial output %s: %s", path, e)


def _open_pair(in_path: str, out_path: str, operation: str):
    try:
        inf = open(in_path, "rb")
    except OSError as e:
        raise StreamIOError(f"failed to open file {in_path}: {e}", operation=operation, path=in_path) from e

    try:
        outf = open(out_path, "wb")
    except OSError as e:
        inf.close()
        raise StreamIOError(f"failed to create file {out_path}: {e}", operation=operation, path=out_path) from e
    return inf, outf


def _run(in_path, out_path, operation: str, body: Callable[[BinaryIO, BinaryIO], None]) -> None:
    in_path, out_path = os.fspath(in_path), os.fspath(out_path)
    inf, outf = _open_pair(in_path, out_path, operation)
    try:
        with inf, outf:
            body(inf, outf)
    except OperationCancelledError:
        logger.debug("%s cancelled, partial output left at %s", operation, out_path)
        raise
    except OSError as e:
        _remove_partial(out_path)
        raise StreamIOError(f"failed to {operation.replace('_', ' ')}: {e}", operation=operation, path=out_path) from e
    except Exception:
        _remove_partial(out_path)
        raise


def encrypt_file_stream(in_path, out_path, password, chunk_size: int = CHUNK_SIZE, cancel_event=None) -> None:
    """Encrypt ``in_path`` into an OpenPGP message at ``out_path``.

    The message writer is closed (literal tail and MDC flushed) before the
    target file handle.
    """
    password = _require_password(password, "encrypt_file", os.fspath(in_path))
    require_chunk_size(chunk_size, "encrypt_file", os.fspath(in_path))

    def body(inf: BinaryIO, outf: BinaryIO) -> None:
        with SymmetricMessageWriter(outf, password, cipher_algo=CIPHER_AES256) as writer:
            _copy(inf, writer, chunk_size, cancel_event, "encrypt_file", os.fspath(in_path))

    _run(in_path, out_path, "encrypt_file", body)
    logger.debug("encrypted %s -> %s", in_path, out_path)


def decrypt_file_stream(in_path, out_path, password, chunk_size: int = CHUNK_SIZE, cancel_event=None) -> None:
    """Decrypt the OpenPGP message at ``in_path`` into ``out_path``.

    The password is offered exactly once; a wrong password or a message that
    fails its integrity check raises :class:`AuthenticationError` and the
    partial output is removed.
    """
    password = _require_password(password, "decrypt_file", os.fspath(in_path))
    require_chunk_size(chunk_size, "decrypt_file", os.fspath(in_path))

    def body(inf: BinaryIO, outf: BinaryIO) -> None:
        reader = SymmetricMessageReader(inf, single_attempt_passphrase(password))
        _copy(reader, outf, chunk_size, cancel_event, "decrypt_file", os.fspath(in_path))

    _run(in_path, out_path, "decrypt_file", body)
    logger.debug("decrypted %s -> %s", in_path, out_path)
