import os
from enum import Enum

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import padding

from storecrypt.core.exceptions import ConfigurationError


AES_BLOCK_SIZE = 16
VALID_AES_KEY_SIZES = (16, 24, 32)

# Argon2id cost for per-token filename keys; runs once per name
FILENAME_KDF_TIME_COST = 2
FILENAME_KDF_MEMORY_COST = 19456
FILENAME_KDF_PARALLELISM = 1


class FilenameKeyScheme(Enum):
    # PADDED is the historical scheme, ARGON2ID derives a fresh key per salt
    PADDED = "padded"
    ARGON2ID = "argon2id"


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def as_key_bytes(key) -> bytes:
    """Normalize str/bytes/bytearray key material to bytes."""
    if key is None:
        return b""
    if isinstance(key, str):
        return key.encode("utf-8")
    return bytes(key)


def pad_pkcs7(data: bytes, block_size: int = AES_BLOCK_SIZE) -> bytes:
    padder = padding.PKCS7(block_size * 8).padder()
    return padder.update(bytes(data)) + padder.finalize()


def derive_master_key(
    password: bytes,
    salt: bytes,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
    key_len: int = 32,
) -> bytes:
    """
    Derive a key from a password using Argon2id.
    Returns raw derived key bytes.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    return hash_secret_raw(
        secret=bytes(password),
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=key_len,
        type=Type.ID,
    )


def padded_password_key(password: bytes) -> bytes:
    """
    Build an AES key by PKCS7-padding the password to a 16-byte boundary.

    Only passwords of 0..31 bytes land on a valid AES key size (16 or 32
    bytes); anything longer is rejected with :class:`ConfigurationError`.
    """
    key = pad_pkcs7(password, AES_BLOCK_SIZE)
    if len(key) not in VALID_AES_KEY_SIZES:
        raise ConfigurationError(
            f"padded key length {len(key)} is not a valid AES key size; "
            f"use a password shorter than 32 bytes or the argon2id filename scheme",
            operation="derive_key",
        )
    return key


def derive_filename_key(password: bytes, salt: bytes, scheme: FilenameKeyScheme = FilenameKeyScheme.PADDED) -> bytes:
    """Return the AES key used for one filename token."""
    if not password:
        raise ConfigurationError("encryption key is not set", operation="derive_key")

    if scheme is FilenameKeyScheme.ARGON2ID:
        return derive_master_key(
            password,
            salt,
            time_cost=FILENAME_KDF_TIME_COST,
            memory_cost=FILENAME_KDF_MEMORY_COST,
            parallelism=FILENAME_KDF_PARALLELISM,
            key_len=32,
        )
    return padded_password_key(password)
