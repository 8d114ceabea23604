"""OS keystore integration using keyring for optional storage of the encryption key.

This module provides a tiny wrapper around `keyring` to store and retrieve
binary keys (base64-encoded) under a service/account pair. Use this only for
opt-in convenience storage; do not assume keyring provides hardware-backed
security on all platforms.
"""
import base64
import binascii
from typing import Optional

try:
    import keyring
    from keyring.errors import KeyringError, PasswordDeleteError
except ImportError:
    keyring = None

from storecrypt.core.exceptions import ConfigurationError


DEFAULT_SERVICE = "storecrypt"
DEFAULT_ACCOUNT = "encryption-key"


def _require_keyring():
    if keyring is None:
        raise ConfigurationError("keyring package is not available; install keyring to use keystore features")


def save_key(key_bytes: bytes, service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> None:
    """Persist key_bytes in the OS keystore under (service, account).

    The key is base64-encoded before storage to keep it string-friendly.
    """
    _require_keyring()
    secret = base64.b64encode(bytes(key_bytes)).decode("ascii")
    keyring.set_password(service, account, secret)


# backends that keep secrets on disk without OS protection, or refuse to work
_WEAK_BACKENDS = ("Plaintext", "Uncrypted", "Simple", "File", "Fail")
_OS_BACKENDS = ("Win", "Keychain", "SecretService", "KWallet")


def assess_keyring_backend() -> tuple[bool, str]:
    """Tell whether the active keyring backend is fit to hold the encryption key."""
    if keyring is None:
        return False, "keyring package is not installed"

    try:
        backend = keyring.get_keyring()
    except KeyringError as e:
        return False, f"cannot query keyring backend: {e}"

    name = type(backend).__name__
    if any(marker in name for marker in _WEAK_BACKENDS):
        return False, f"{name} does not protect stored secrets"

    priority = getattr(backend, "priority", None)
    if priority is not None and priority <= 0:
        return False, f"{name} is not usable on this system (priority={priority})"

    if any(marker in name for marker in _OS_BACKENDS):
        return True, f"using OS keystore {name}"
    return True, f"using unrecognised backend {name}; check that it encrypts stored secrets"


def load_key(service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> Optional[bytes]:
    """Load a persisted key from the OS keystore; returns raw bytes or None."""
    _require_keyring()
    secret = keyring.get_password(service, account)
    if secret is None:
        return None
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"stored key for {service}/{account} is not valid base64") from e


def delete_key(service: str = DEFAULT_SERVICE, account: str = DEFAULT_ACCOUNT) -> None:
    """Remove the key from the OS keystore; missing entries are ignored."""
    _require_keyring()
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        pass
