"""Reversible, salt-randomized filename tokens.

Token layout before text encoding:

- 16 bytes: salt, also used as the AES-CBC IV
- 4 bytes: little-endian length of the UTF-8 encoded name
- N bytes: AES-CBC ciphertext of the PKCS7 padded name

The whole payload is base62 encoded so tokens only contain ``[0-9A-Za-z]``
and can be used as a path segment, then the PGP suffix marker is appended.
The length prefix, not the padding, decides how many decrypted bytes are
returned.
"""

from __future__ import annotations

import struct

import base62
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from storecrypt.core.exceptions import CipherError, ConfigurationError, EncodingError
from .kdf import AES_BLOCK_SIZE, FilenameKeyScheme, as_key_bytes, derive_filename_key, generate_salt, pad_pkcs7
from .modes import PGP_ENCRYPTED_FILE_EXTENSION


SALT_LEN = 16
LENGTH_PREFIX_LEN = 4


def _cipher(key: bytes, iv: bytes) -> Cipher:
    try:
        return Cipher(algorithms.AES(key), modes.CBC(iv))
    except ValueError as e:
        raise ConfigurationError(f"failed to create AES cipher: {e}", operation="cipher_init") from e


def encrypt_filename(name: str, key, scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED) -> str:
    """Encrypt ``name`` into an opaque token ending in ``.pgp.enc``.

    Every call draws a fresh salt, so the same name never produces the same
    token twice.
    """
    password = as_key_bytes(key)
    salt = generate_salt(SALT_LEN)
    aes_key = derive_filename_key(password, salt, scheme)

    raw = name.encode("utf-8")
    encryptor = _cipher(aes_key, salt).encryptor()
    try:
        ciphertext = encryptor.update(pad_pkcs7(raw, AES_BLOCK_SIZE)) + encryptor.finalize()
    except ValueError as e:
        raise CipherError(f"failed to encrypt filename: {e}", operation="encrypt_filename", path=name) from e

    payload = salt + struct.pack("<I", len(raw)) + ciphertext
    return f"{base62.encodebytes(payload)}{PGP_ENCRYPTED_FILE_EXTENSION}"


def decrypt_filename(token: str, key, scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED) -> str:
    """Recover the name stored in ``token``.

    A wrong key does not always raise: the result is then arbitrary text or
    an :class:`EncodingError` when it is not valid UTF-8.
    """
    password = as_key_bytes(key)
    encoded = token
    if encoded.endswith(PGP_ENCRYPTED_FILE_EXTENSION):
        encoded = encoded[: -len(PGP_ENCRYPTED_FILE_EXTENSION)]

    try:
        payload = base62.decodebytes(encoded)
    except (ValueError, TypeError) as e:
        raise EncodingError(f"failed to base62 decode filename: {e}", operation="decrypt_filename", path=token) from e

    if len(payload) < SALT_LEN:
        raise EncodingError("failed to extract salt from filename", operation="decrypt_filename", path=token)
    if len(payload) < SALT_LEN + LENGTH_PREFIX_LEN:
        raise EncodingError("failed to extract length from filename", operation="decrypt_filename", path=token)

    salt = payload[:SALT_LEN]
    (content_length,) = struct.unpack("<I", payload[SALT_LEN:SALT_LEN + LENGTH_PREFIX_LEN])
    ciphertext = payload[SALT_LEN + LENGTH_PREFIX_LEN:]

    if len(ciphertext) % AES_BLOCK_SIZE != 0:
        raise CipherError(
            f"ciphertext length {len(ciphertext)} is not a multiple of the block size",
            operation="decrypt_filename",
            path=token,
        )

    aes_key = derive_filename_key(password, salt, scheme)
    decryptor = _cipher(aes_key, salt).decryptor()
    plaintext = decryptor.update(ciphertext) + decryptor.finalize()

    if content_length > len(plaintext):
        raise EncodingError(
            f"declared length {content_length} exceeds decrypted payload",
            operation="decrypt_filename",
            path=token,
        )

    try:
        return plaintext[:content_length].decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError("decrypted filename is not valid UTF-8", operation="decrypt_filename", path=token) from e
