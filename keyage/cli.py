"""
Command-line interface for keyage.

    keyage init ~/.config/keyage/identity.txt
    keyage insert site/login
    keyage show site/login
    keyage show --otp --qr site/totp

Policy lives here: refusing to overwrite without --force, asking before
removal, prompting for secrets. The store underneath never asks.
"""

import argparse
import getpass
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from keyage import __version__
from keyage.config import CONFIG_FILE_NAME, Configuration, StoreConfig, resolve_store_root
from keyage.errors import (
    EntryExistsError,
    InvalidPathError,
    KeyageError,
    StoreNotFoundError,
    StoreWriteError,
)
from keyage.generate import MIN_LENGTH, generate_password
from keyage.keys import generate_identity, load_identities, parse_recipient
from keyage.logger import configure_logging
from keyage.store import SecretStore
from keyage.views import render_qr, render_tree, totp_code

logger = logging.getLogger(__name__)

ERROR_PREFIX = "[keyage error]"


def _store_root() -> Path:
    root = resolve_store_root()
    if not root.is_dir():
        raise StoreNotFoundError(f"No store at {root}. Run `keyage init` first.")
    return root


def _open_store() -> SecretStore:
    return SecretStore.from_config(StoreConfig.from_root(_store_root()))


def _prompt_secret() -> str:
    secret = getpass.getpass("Enter a password: ")
    if not secret:
        raise KeyageError("Empty password, nothing stored")
    if getpass.getpass("Confirm password: ") != secret:
        raise KeyageError("Passwords do not match")
    return secret


def _confirm(question: str) -> bool:
    return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")


# --------- Commands ----------

def cmd_init(args):
    root = resolve_store_root()
    config_path = root / CONFIG_FILE_NAME
    if config_path.exists() and not args.force:
        raise EntryExistsError(f"{config_path} already exists (use --force to replace it)")

    identity_path = Path(args.identity_file).expanduser().absolute()
    identity = load_identities(identity_path)[0]
    recipient = args.recipient or str(identity.to_public())
    parse_recipient(recipient)

    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StoreWriteError(f"Cannot create {root}: {e.strerror}") from e

    Configuration(identifier=str(identity_path), recipient=recipient).save(config_path)
    print(f"Initialized keyage store in {root}")


def cmd_keygen(args):
    identity = generate_identity()
    public = str(identity.to_public())
    text = (
        f"# created: {datetime.now().astimezone().isoformat(timespec='seconds')}\n"
        f"# public key: {public}\n"
        f"{identity}\n"
    )

    if not args.output:
        sys.stdout.write(text)
        return

    path = Path(args.output).expanduser()
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError as e:
        raise EntryExistsError(f"{path} already exists") from e
    except OSError as e:
        raise StoreWriteError(f"Cannot create {path}: {e.strerror}") from e
    with os.fdopen(fd, "w") as f:
        f.write(text)
    print(f"Public key: {public}", file=sys.stderr)


def cmd_list(args):
    sys.stdout.write(render_tree(_store_root()))


def cmd_show(args):
    store = _open_store()
    secret = store.read(args.path)

    if args.otp:
        secret = totp_code(secret).encode("ascii")

    if args.qr:
        sys.stdout.write(render_qr(secret))
    else:
        sys.stdout.flush()
        sys.stdout.buffer.write(secret + b"\n")
        sys.stdout.buffer.flush()


def cmd_insert(args):
    store = _open_store()
    if store.exists(args.path) and not args.force:
        raise EntryExistsError(f"{args.path} already exists (use --force to overwrite)")

    store.write(args.path, _prompt_secret())


def cmd_generate(args):
    store = _open_store()
    if store.resolve(args.path).exists() and not args.force:
        raise EntryExistsError(f"{args.path} already exists (use --force to overwrite)")

    password = generate_password(args.length, symbols=not args.no_symbols)
    store.write(args.path, password)
    print(password)


def cmd_remove(args):
    store = _open_store()
    if not store.confined(args.path):
        raise InvalidPathError(f"{args.path} is not inside the store")

    if args.force or _confirm(f"Are you sure you want to remove {args.path}?"):
        store.delete(args.path)
    else:
        print("Nothing removed")


# --------- Parser ----------

def _password_length(value: str) -> int:
    length = int(value)
    if length < MIN_LENGTH:
        raise argparse.ArgumentTypeError(f"length must be at least {MIN_LENGTH}")
    return length


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="keyage",
        description="A password store whose entries are encrypted with age keys",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="count", default=0, help="More log output (repeatable)")
    p.add_argument("-q", "--quiet", action="store_true", help="No log output")
    sub = p.add_subparsers(dest="cmd", required=True, metavar="COMMAND")

    p_init = sub.add_parser("init", help="Initialize the store (location from KEYAGE_STORE)")
    p_init.add_argument("identity_file", help="File holding your age or SSH private key")
    p_init.add_argument("--recipient", help="Public key to encrypt to (default: derived from the identity)")
    p_init.add_argument("-f", "--force", action="store_true", help="Replace an existing config.toml")
    p_init.set_defaults(func=cmd_init)

    p_keygen = sub.add_parser("keygen", help="Generate a new age identity")
    p_keygen.add_argument("-o", "--output", help="Write the identity to this file instead of stdout")
    p_keygen.set_defaults(func=cmd_keygen)

    p_list = sub.add_parser("list", help="List all the passwords in the store")
    p_list.set_defaults(func=cmd_list)

    p_insert = sub.add_parser("insert", help="Add a password to the store")
    p_insert.add_argument("path", help="Path of the password relative to the store root")
    p_insert.add_argument("-f", "--force", action="store_true", help="Overwrite an existing password")
    p_insert.set_defaults(func=cmd_insert)

    p_gen = sub.add_parser("generate", help="Generate a password and add it to the store")
    p_gen.add_argument("path", help="Path of the password relative to the store root")
    p_gen.add_argument("length", type=_password_length, help=f"Password length (min. {MIN_LENGTH})")
    p_gen.add_argument("-n", "--no-symbols", action="store_true", help="Only use letters and digits")
    p_gen.add_argument("-f", "--force", action="store_true", help="Overwrite an existing password")
    p_gen.set_defaults(func=cmd_generate)

    p_rm = sub.add_parser("remove", help="Remove a password or a directory of passwords")
    p_rm.add_argument("path", help="Path of the password relative to the store root")
    p_rm.add_argument("-f", "--force", action="store_true", help="Do not ask for confirmation")
    p_rm.set_defaults(func=cmd_remove)

    p_show = sub.add_parser("show", help="Show a password")
    p_show.add_argument("path", help="Path of the password relative to the store root")
    p_show.add_argument("--qr", action="store_true", help="Show the password as a QR code")
    p_show.add_argument("--otp", action="store_true", help="Show the current one-time password")
    p_show.set_defaults(func=cmd_show)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(-1 if args.quiet else args.verbose)

    try:
        args.func(args)
    except KeyageError as e:
        logger.debug("command %s failed", args.cmd, exc_info=True)
        print(f"{ERROR_PREFIX}: {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print(file=sys.stderr)
        print(f"{ERROR_PREFIX}: Aborted", file=sys.stderr)
        return 1
    return 0
