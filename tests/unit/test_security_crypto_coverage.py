"""
Supplemental unit tests for storecrypt.security.crypto.
Targeting error paths, cancellation and the passphrase callback.
"""

import os
from unittest.mock import patch

import pytest
from storecrypt.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    EncodingError,
    OperationCancelledError,
    StreamIOError,
)
from storecrypt.security.crypto import (
    decrypt_file_stream,
    encrypt_file_stream,
    single_attempt_passphrase,
)


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def plain_file(tmp_path):
    path = tmp_path / "plaintext.bin"
    path.write_bytes(os.urandom(50_000))
    return path


@pytest.fixture
def valid_encrypted_file(tmp_path, plain_file):
    out_path = tmp_path / "encrypted.pgp.enc"
    encrypt_file_stream(str(plain_file), str(out_path), b"test_password")
    return out_path


class CancelAfter:
    """Event stand-in that reports set after ``n`` checks."""

    def __init__(self, n):
        self.n = n
        self.checks = 0

    def is_set(self):
        self.checks += 1
        return self.checks > self.n


# ==============================================================================
# Tests: Passphrase callback
# ==============================================================================

def test_single_attempt_passphrase_refuses_second_call():
    prompt = single_attempt_passphrase(b"pw")
    assert prompt() == b"pw"
    with pytest.raises(AuthenticationError, match="wrong password"):
        prompt()


def test_wrong_password_prompts_exactly_once(valid_encrypted_file, tmp_path):
    """The password is offered once; the retry is refused, never re-prompted."""
    calls = []
    real = single_attempt_passphrase

    def counting(password):
        prompt = real(password)

        def wrapped():
            calls.append(1)
            return prompt()

        return wrapped

    with patch("storecrypt.security.crypto.single_attempt_passphrase", side_effect=counting):
        with pytest.raises(AuthenticationError):
            decrypt_file_stream(str(valid_encrypted_file), str(tmp_path / "out.bin"), b"wrong")
    assert len(calls) == 2


# ==============================================================================
# Tests: Configuration and I/O errors
# ==============================================================================

def test_missing_key_raises_configuration_error(plain_file, tmp_path):
    out = tmp_path / "out.enc"
    with pytest.raises(ConfigurationError):
        encrypt_file_stream(str(plain_file), str(out), b"")
    with pytest.raises(ConfigurationError):
        decrypt_file_stream(str(plain_file), str(out), None)
    assert not out.exists()


def test_missing_source_raises_io_error(tmp_path):
    out = tmp_path / "out.enc"
    with pytest.raises(StreamIOError, match="failed to open file") as excinfo:
        encrypt_file_stream(str(tmp_path / "missing.bin"), str(out), b"pw")
    assert excinfo.value.operation == "encrypt_file"
    assert isinstance(excinfo.value.__cause__, OSError)
    assert not out.exists()


def test_missing_source_leaves_existing_target(tmp_path):
    out = tmp_path / "out.bin"
    out.write_bytes(b"keep me")
    with pytest.raises(StreamIOError):
        decrypt_file_stream(str(tmp_path / "missing.enc"), str(out), b"pw")
    assert out.read_bytes() == b"keep me"


def test_unwritable_target_raises_io_error(plain_file, tmp_path):
    with pytest.raises(StreamIOError, match="failed to create file"):
        encrypt_file_stream(str(plain_file), str(tmp_path / "no" / "such" / "dir.enc"), b"pw")


def test_write_failure_removes_partial_target(plain_file, tmp_path):
    out = tmp_path / "out.enc"
    with patch(
        "storecrypt.security.openpgp.SymmetricMessageWriter.write",
        side_effect=OSError(28, "No space left on device"),
    ):
        with pytest.raises(StreamIOError, match="No space left"):
            encrypt_file_stream(str(plain_file), str(out), b"pw")
    assert not out.exists()


def test_decrypt_plain_file_fails_and_cleans_up(tmp_path):
    text_file = tmp_path / "notes.txt"
    text_file.write_bytes(b"hello, not encrypted")
    out = tmp_path / "out.bin"
    with pytest.raises(EncodingError):
        decrypt_file_stream(str(text_file), str(out), b"pw")
    assert not out.exists()


# ==============================================================================
# Tests: Cancellation
# ==============================================================================

def test_encrypt_cancelled_before_start(plain_file, tmp_path):
    out = tmp_path / "out.enc"
    with pytest.raises(OperationCancelledError) as excinfo:
        encrypt_file_stream(str(plain_file), str(out), b"pw", cancel_event=CancelAfter(0))
    assert excinfo.value.path == str(plain_file)


def test_encrypt_cancelled_mid_copy_leaves_partial(plain_file, tmp_path):
    """Cancellation is checked between chunks; the partial output stays for the caller."""
    out = tmp_path / "out.enc"
    event = CancelAfter(3)
    with pytest.raises(OperationCancelledError):
        encrypt_file_stream(str(plain_file), str(out), b"pw", chunk_size=1024, cancel_event=event)
    assert event.checks == 4
    assert out.exists()


def test_decrypt_cancelled_mid_copy(valid_encrypted_file, tmp_path):
    out = tmp_path / "out.bin"
    with pytest.raises(OperationCancelledError):
        decrypt_file_stream(
            str(valid_encrypted_file), str(out), b"test_password", chunk_size=1024, cancel_event=CancelAfter(2)
        )
    assert out.exists()
    assert out.stat().st_size == 2048


def test_unset_event_does_not_interfere(valid_encrypted_file, plain_file, tmp_path):
    out = tmp_path / "out.bin"
    event = CancelAfter(10**9)
    decrypt_file_stream(str(valid_encrypted_file), str(out), b"test_password", chunk_size=4096, cancel_event=event)
    assert out.read_bytes() == plain_file.read_bytes()
    # one check per chunk plus the final empty read
    assert event.checks == 50_000 // 4096 + 2
