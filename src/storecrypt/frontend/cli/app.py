"""Command line front end for storecrypt.

Examples:

    storecrypt encrypt-name --key hunter2 secret-report.csv
    storecrypt decrypt-name --key hunter2 <token>.pgp.enc
    storecrypt encrypt-file --key hunter2 report.csv report.csv.pgp.enc
    storecrypt detect a.pgp.enc b.aesctr.enc c.txt
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from storecrypt.core.config import (
    DecryptionConfig,
    EncryptionConfig,
    build_decryption_manager,
    build_manager,
    parse_filename_key_scheme,
)
from storecrypt.core.exceptions import ConfigurationError, StoreCryptError
from storecrypt.security.keystore import assess_keyring_backend, delete_key, save_key
from storecrypt.security.manager import EncryptionManager
from storecrypt.security.modes import EncryptionMode, detect_mode_from_name, resolve_mode
from .logging_config import configure_logging


logger = logging.getLogger(__name__)


def _add_key_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mode",
        default=None,
        help="Encryption mode: PGP, GPG, OPENPGP or WINSCP (default: from env, else PGP)",
    )
    parser.add_argument(
        "--key",
        default=None,
        help="Encryption password (default: STORECRYPT_ENCRYPT_KEY, then OS keyring)",
    )
    parser.add_argument(
        "--prompt-key",
        action="store_true",
        help="Ask for the encryption password interactively",
    )
    parser.add_argument(
        "--filename-kdf",
        default=None,
        help="Filename key scheme: padded or argon2id (default: padded)",
    )


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storecrypt",
        description="Encrypt and decrypt file names and contents for remote storage.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("encrypt-name", help="Encrypt file names into tokens")
    _add_key_options(p)
    p.add_argument("names", nargs="+")

    p = sub.add_parser("decrypt-name", help="Decrypt tokens back into file names")
    _add_key_options(p)
    p.add_argument("names", nargs="+")

    p = sub.add_parser("encrypt-file", help="Encrypt a local file")
    _add_key_options(p)
    p.add_argument("source")
    p.add_argument("target")

    p = sub.add_parser("decrypt-file", help="Decrypt a local file")
    _add_key_options(p)
    p.add_argument("source")
    p.add_argument("target")

    p = sub.add_parser("detect", help="Print the encryption mode implied by each name's suffix")
    p.add_argument("names", nargs="+")

    p = sub.add_parser("store-key", help="Save the encryption password in the OS keyring")
    p.add_argument(
        "--force",
        action="store_true",
        help="Store even when the keyring backend looks insecure",
    )

    sub.add_parser("forget-key", help="Remove the encryption password from the OS keyring")
    return parser


def _load_config(args: argparse.Namespace, encrypt_filename: bool) -> EncryptionConfig:
    config = EncryptionConfig.from_env(use_keyring=args.key is None and not args.prompt_key)
    if args.mode is not None:
        config.mode = resolve_mode(args.mode)
    if args.filename_kdf is not None:
        config.filename_key_scheme = parse_filename_key_scheme(args.filename_kdf)
    if args.key is not None:
        config.key = args.key.encode("utf-8")
    elif args.prompt_key:
        config.key = getpass.getpass("Encryption password: ").encode("utf-8")
    config.encrypt_filename = encrypt_filename
    return config


def _decryption_manager(args: argparse.Namespace, config: EncryptionConfig, path: str) -> EncryptionManager:
    # an explicit --mode wins; otherwise trust the suffix like the listing commands do
    if args.mode:
        return build_manager(config)
    decryption = DecryptionConfig(key=config.key, filename_key_scheme=config.filename_key_scheme)
    return build_decryption_manager(decryption, path, encrypt_filename=config.encrypt_filename)


def _decrypt_names(args: argparse.Namespace) -> None:
    config = _load_config(args, encrypt_filename=True)
    for name in args.names:
        with _decryption_manager(args, config, name) as manager:
            if manager.mode is EncryptionMode.UNKNOWN:
                print(f"{name}\t(not encrypted)")
                continue
            try:
                print(f"{name}\t{manager.decrypt_filename(name)}")
            except StoreCryptError as e:
                logger.debug("%s", e)
                print(f"{name}\t(decryption_failed)")


def _decrypt_file(args: argparse.Namespace) -> None:
    config = _load_config(args, encrypt_filename=False)
    with _decryption_manager(args, config, args.source) as manager:
        if manager.mode is EncryptionMode.UNKNOWN:
            raise ConfigurationError(
                "cannot tell the encryption mode from the file name; pass --mode",
                operation="decrypt_file",
                path=args.source,
            )
        manager.decrypt_file(args.source, args.target)


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.command == "detect":
            for name in args.names:
                print(f"{name}\t{detect_mode_from_name(name).name}")
        elif args.command == "store-key":
            secure, msg = assess_keyring_backend()
            if not secure and not args.force:
                print(f"storecrypt: refusing to store key: {msg}", file=sys.stderr)
                return 1
            save_key(getpass.getpass("Encryption password: ").encode("utf-8"))
        elif args.command == "encrypt-name":
            with build_manager(_load_config(args, encrypt_filename=True)) as manager:
                for name in args.names:
                    print(manager.encrypt_filename(name))
        elif args.command == "decrypt-name":
            _decrypt_names(args)
        elif args.command == "encrypt-file":
            with build_manager(_load_config(args, encrypt_filename=False)) as manager:
                manager.encrypt_file(args.source, args.target)
        elif args.command == "decrypt-file":
            _decrypt_file(args)
        elif args.command == "forget-key":
            delete_key()
    except StoreCryptError as e:
        print(f"storecrypt: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
