"""Unit tests for the storecrypt command line front end."""

from unittest.mock import patch

import pytest
from storecrypt.frontend.cli.app import main


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment and OS keyring out of the tests."""
    for var in (
        "STORECRYPT_ENCRYPT",
        "STORECRYPT_ENCRYPT_MODE",
        "STORECRYPT_ENCRYPT_KEY",
        "STORECRYPT_ENCRYPT_FILENAME",
        "STORECRYPT_FILENAME_KDF",
    ):
        monkeypatch.delenv(var, raising=False)
    with patch("storecrypt.core.config.load_key", return_value=None):
        yield


def _lines(capsys):
    return capsys.readouterr().out.strip().splitlines()


# ==============================================================================
# Tests: Names
# ==============================================================================

def test_encrypt_then_decrypt_name(capsys):
    assert main(["encrypt-name", "--key", "hunter2", "secret-report.csv"]) == 0
    (token,) = _lines(capsys)
    assert token.endswith(".pgp.enc")

    assert main(["decrypt-name", "--key", "hunter2", token]) == 0
    (line,) = _lines(capsys)
    assert line == f"{token}\tsecret-report.csv"


def test_decrypt_name_with_wrong_key_reports_failure_or_garbage(capsys):
    main(["encrypt-name", "--key", "hunter2", "secret-report.csv"])
    (token,) = _lines(capsys)

    assert main(["decrypt-name", "--key", "wrongpass", token]) == 0
    out = capsys.readouterr().out
    assert out.startswith(token + "\t")
    assert "\tsecret-report.csv\n" not in out


def test_decrypt_name_skips_plain_names(capsys):
    assert main(["decrypt-name", "--key", "hunter2", "report.csv"]) == 0
    assert _lines(capsys) == ["report.csv\t(not encrypted)"]


def test_decrypt_name_winscp_suffix_fails_cleanly(capsys):
    assert main(["decrypt-name", "--key", "hunter2", "abc.aesctr.enc"]) == 0
    assert _lines(capsys) == ["abc.aesctr.enc\t(decryption_failed)"]


def test_decrypt_name_argon2id_tokens_by_suffix(capsys):
    assert main(["encrypt-name", "--key", "hunter2", "--filename-kdf", "argon2id", "report.csv"]) == 0
    (token,) = _lines(capsys)

    assert main(["decrypt-name", "--key", "hunter2", "--filename-kdf", "argon2id", token]) == 0
    assert _lines(capsys) == [f"{token}\treport.csv"]


def test_encrypt_name_with_key_from_env(capsys, monkeypatch):
    monkeypatch.setenv("STORECRYPT_ENCRYPT_KEY", "hunter2")
    assert main(["encrypt-name", "report.csv"]) == 0
    (token,) = _lines(capsys)
    assert main(["decrypt-name", "--key", "hunter2", token]) == 0
    assert _lines(capsys)[0].endswith("\treport.csv")


def test_prompt_key(capsys):
    with patch("storecrypt.frontend.cli.app.getpass.getpass", return_value="hunter2"):
        assert main(["encrypt-name", "--prompt-key", "report.csv"]) == 0
    (token,) = _lines(capsys)
    assert main(["decrypt-name", "--key", "hunter2", token]) == 0
    assert _lines(capsys)[0].endswith("\treport.csv")


def test_missing_key_exits_with_error(capsys):
    assert main(["encrypt-name", "report.csv"]) == 1
    err = capsys.readouterr().err
    assert "encryption key is not set" in err


def test_winscp_mode_exits_with_error(capsys):
    assert main(["encrypt-name", "--mode", "winscp", "--key", "k", "report.csv"]) == 1
    assert "not supported" in capsys.readouterr().err


# ==============================================================================
# Tests: Files
# ==============================================================================

def test_file_roundtrip(tmp_path):
    src = tmp_path / "report.csv"
    enc = tmp_path / "report.csv.pgp.enc"
    out = tmp_path / "report.out.csv"
    src.write_bytes(b"a,b\n1,2\n" * 500)

    assert main(["encrypt-file", "--key", "hunter2", str(src), str(enc)]) == 0
    assert main(["decrypt-file", "--key", "hunter2", str(enc), str(out)]) == 0
    assert out.read_bytes() == src.read_bytes()


def test_decrypt_file_wrong_key(tmp_path, capsys):
    src = tmp_path / "report.csv"
    enc = tmp_path / "report.csv.pgp.enc"
    out = tmp_path / "report.out.csv"
    src.write_bytes(b"a,b\n")

    main(["encrypt-file", "--key", "hunter2", str(src), str(enc)])
    assert main(["decrypt-file", "--key", "wrongpass", str(enc), str(out)]) == 1
    assert "wrong password" in capsys.readouterr().err
    assert not out.exists()


def test_decrypt_file_unknown_suffix_requires_mode(tmp_path, capsys):
    src = tmp_path / "report.csv"
    enc = tmp_path / "report.bin"
    out = tmp_path / "report.out.csv"
    src.write_bytes(b"a,b\n")

    main(["encrypt-file", "--key", "hunter2", str(src), str(enc)])
    assert main(["decrypt-file", "--key", "hunter2", str(enc), str(out)]) == 1
    assert "pass --mode" in capsys.readouterr().err
    assert not out.exists()

    assert main(["decrypt-file", "--mode", "pgp", "--key", "hunter2", str(enc), str(out)]) == 0
    assert out.read_bytes() == b"a,b\n"


# ==============================================================================
# Tests: detect / store-key / forget-key
# ==============================================================================

def test_detect(capsys):
    assert main(["detect", "a.pgp.enc", "b.aesctr.enc", "c.txt"]) == 0
    assert _lines(capsys) == ["a.pgp.enc\tPGP", "b.aesctr.enc\tWINSCP", "c.txt\tUNKNOWN"]


def test_store_key_refuses_insecure_backend(capsys):
    with patch("storecrypt.frontend.cli.app.assess_keyring_backend", return_value=(False, "insecure")), \
            patch("storecrypt.frontend.cli.app.save_key") as mock_save:
        assert main(["store-key"]) == 1
    mock_save.assert_not_called()
    assert "insecure" in capsys.readouterr().err


def test_store_key_force(capsys):
    with patch("storecrypt.frontend.cli.app.assess_keyring_backend", return_value=(False, "insecure")), \
            patch("storecrypt.frontend.cli.app.save_key") as mock_save, \
            patch("storecrypt.frontend.cli.app.getpass.getpass", return_value="hunter2"):
        assert main(["store-key", "--force"]) == 0
    mock_save.assert_called_once_with(b"hunter2")


def test_forget_key(capsys):
    with patch("storecrypt.frontend.cli.app.delete_key") as mock_delete:
        assert main(["forget-key"]) == 0
    mock_delete.assert_called_once_with()


def test_forget_key_without_keyring(capsys):
    with patch("storecrypt.security.keystore.keyring", None):
        assert main(["forget-key"]) == 1
    assert "keyring package is not available" in capsys.readouterr().err
