"""
CipherChat - Command line entry point.

Drives the core against a local data directory: the SQLite database plays
the server (directory, account and message stores) and the key file plays
the device's key custody.
"""

import argparse
import getpass
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from . import __version__
from .account import AccountService
from .config import Config
from .constants import (
    APP_NAME,
    CONFIG_FILENAME,
    DATABASE_FILENAME,
    DEFAULT_DATA_DIR,
    KEYPAIR_FILENAME,
    LOG_FILENAME,
    LOG_FORMAT,
)
from .credentials import CredentialVerifier
from .custody import KeyCustodian
from .envelope import EnvelopeCipher
from .errors import CipherChatError, ErrorCode, KeyUnavailable
from .messaging import Messenger
from .storage import AccountStore, Database, Directory, MessageStore

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(config: Config, data_dir: Path, debug: bool = False) -> None:
    """Configure the root logger from the ``logging`` config section."""
    level_name = "DEBUG" if debug else str(config.get("logging", "level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.get("logging", "file_logging", False):
        log_file = data_dir / config.get("logging", "log_file", LOG_FILENAME)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


class App:
    """Wires the stores, custody and services for one data directory."""

    def __init__(self, data_dir: Path, config: Config):
        self.data_dir = data_dir
        self.config = config
        self.db = Database(data_dir / config.get("storage", "database", DATABASE_FILENAME))
        self.accounts = AccountStore(self.db)
        self.directory = Directory(self.accounts)
        self.messages = MessageStore(self.db)
        self.custodian = KeyCustodian(
            data_dir / config.get("storage", "keypair_file", KEYPAIR_FILENAME)
        )
        self.account_service = AccountService(
            self.accounts,
            verifier=CredentialVerifier.from_config(config),
            envelope_cipher=EnvelopeCipher.from_config(config),
        )
        self.messenger = Messenger.from_config(self.directory, self.messages, config)

    def close(self) -> None:
        self.db.close()

    def local_keypair_for(self, username: str):
        """Return the device key pair, checking it belongs to ``username``."""
        keypair = self.custodian.load_keypair()
        account = self.accounts.fetch(username)
        if not keypair.matches_public_key(account.public_key):
            raise KeyUnavailable(
                ErrorCode.E203_CUSTODY_CONFLICT,
                f"The key held on this device does not belong to {username}",
            )
        return keypair


def _read_password(prompt: str = "Password: ") -> str:
    return getpass.getpass(prompt)


def cmd_register(app: App, args) -> int:
    password = _read_password()
    if password != _read_password("Repeat password: "):
        console.print("[red]Passwords do not match[/red]")
        return 1
    account = app.account_service.register(args.username, password, app.custodian)
    console.print(f"[green]Welcome to {APP_NAME}, {account.username}![/green]")
    console.print(f"Key fingerprint: [bold]{app.custodian.load_keypair().fingerprint}[/bold]")
    console.print(
        "[yellow]Your private key is escrowed on the server under your password. "
        "Anyone who holds the database and learns your password can read your messages.[/yellow]"
    )
    return 0


def cmd_login(app: App, args) -> int:
    keypair = app.account_service.login(args.username, _read_password(), app.custodian)
    console.print(f"[green]Logged in as {args.username}[/green]")
    console.print(f"Key fingerprint: [bold]{keypair.fingerprint}[/bold]")
    return 0


def cmd_send(app: App, args) -> int:
    message = args.message
    if message is None:
        message = sys.stdin.read()
    if not message.strip():
        console.print("[red]Type a message![/red]")
        return 1

    keypair = app.local_keypair_for(args.username)
    result = app.messenger.send(args.username, keypair, message, args.recipients)
    for recipient in result.delivered:
        console.print(f"[green]Sent to {recipient}[/green]")
    for recipient, error in result.failures.items():
        console.print(f"[red]Failed for {recipient}: {error.message}[/red]")
    return 0 if result.ok else 2


def cmd_inbox(app: App, args) -> int:
    keypair = app.local_keypair_for(args.username)
    entries = app.messenger.inbox(args.username, keypair.private_bytes)

    table = Table(title=f"Messages for {args.username}")
    table.add_column("Time", style="dim")
    table.add_column("From", style="cyan")
    table.add_column("Message")
    for entry in entries:
        when = datetime.fromtimestamp(entry.record.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        text = Text(entry.text) if entry.result.ok else Text(entry.text, style="red italic")
        table.add_row(when, entry.record.sender, text)
    console.print(table)
    return 0


def cmd_users(app: App, args) -> int:
    for username in app.accounts.list_usernames():
        console.print(username)
    return 0


def cmd_reset(app: App, args) -> int:
    removed = app.db.reset_messages()
    console.print(f"Deleted {removed} messages")
    return 0


def cmd_reset_all(app: App, args) -> int:
    app.db.reset_all()
    console.print("All users and messages wiped!")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cipherchat",
        description=f"{APP_NAME} - end-to-end encrypted messaging core",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cipherchat register alice
  cipherchat send alice bob carol -m "hello"
  cipherchat inbox bob
        """
    )
    parser.add_argument('--version', action='version', version=f'{APP_NAME} {__version__}')
    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help=f'Data directory for the database, key file and config (default: {DEFAULT_DATA_DIR})'
    )
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('register', help='Create an account and escrow its key')
    p.add_argument('username')
    p.set_defaults(func=cmd_register)

    p = sub.add_parser('login', help='Recover the escrowed key onto this device')
    p.add_argument('username')
    p.set_defaults(func=cmd_login)

    p = sub.add_parser('send', help='Send a message to one or more recipients')
    p.add_argument('username')
    p.add_argument('recipients', nargs='+')
    p.add_argument('-m', '--message', help='Message text (default: read from stdin)')
    p.set_defaults(func=cmd_send)

    p = sub.add_parser('inbox', help='Show decrypted messages')
    p.add_argument('username')
    p.set_defaults(func=cmd_inbox)

    p = sub.add_parser('users', help='List registered users')
    p.set_defaults(func=cmd_users)

    p = sub.add_parser('reset', help='Delete all messages')
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser('reset-all', help='Delete all users and messages')
    p.set_defaults(func=cmd_reset_all)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CipherChat CLI."""
    args = build_parser().parse_args(argv)

    data_dir = Path(args.data_dir or os.getenv('CIPHERCHAT_DATA_DIR') or DEFAULT_DATA_DIR)
    data_dir = data_dir.expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)

    try:
        config = Config(data_dir / CONFIG_FILENAME)
    except CipherChatError as e:
        console.print(f"[red]{e.message}[/red]")
        return 1
    setup_logging(config, data_dir, args.debug)

    app = App(data_dir, config)
    try:
        return args.func(app, args)
    except KeyUnavailable as e:
        console.print(f"[red]{e.message}. Register or log in on this device first.[/red]")
        return 1
    except CipherChatError as e:
        logger.debug(f"Command failed: {e}")
        console.print(f"[red]{e.message}[/red]")
        return 1
    finally:
        app.close()


if __name__ == '__main__':
    sys.exit(main())
