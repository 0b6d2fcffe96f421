"""
CipherChat - SQLite persistence for accounts and ciphertext records.

The server side of CipherChat: it stores public keys, password hashes,
escrow envelopes and per-recipient ciphertexts. It never sees plaintext.

Thread safety:
- A single connection is shared and guarded by a threading.Lock
- Fan-out may append from several worker threads at once
"""

import base64
import binascii
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .account import Account
from .envelope import PasswordEnvelope
from .errors import (
    AccountError,
    AuthenticationFailure,
    DirectoryLookupFailed,
    ErrorCode,
    StorageError,
)
from .message import DirectedCiphertextRecord

logger = logging.getLogger(__name__)


class Database:
    """Owns the SQLite connection and schema."""

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize the database.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.lock = threading.Lock()
        self.conn: Optional[sqlite3.Connection] = None
        self._init_database()

    def _init_database(self) -> None:
        with self.lock:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row

            cursor = self.conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    username TEXT PRIMARY KEY,
                    publicKey TEXT NOT NULL,
                    passwordHash TEXT NOT NULL,
                    encryptedPrivateKey TEXT NOT NULL
                )
            """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    sender TEXT NOT NULL,
                    recipient TEXT NOT NULL,
                    encryptedMessage TEXT NOT NULL,
                    nonce TEXT NOT NULL,
                    senderPublicKey TEXT NOT NULL,
                    ts INTEGER NOT NULL
                )
            """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages (recipient, ts)
            """
            )
            self.conn.commit()
            logger.info(f"Database initialized: {self.db_path}")

    def reset_messages(self) -> int:
        """Delete every stored message. Returns the number removed."""
        with self.lock:
            cursor = self.conn.execute("DELETE FROM messages")
            self.conn.commit()
        logger.warning(f"Deleted {cursor.rowcount} messages")
        return cursor.rowcount

    def reset_all(self) -> None:
        """Delete every message and every account."""
        with self.lock:
            self.conn.execute("DELETE FROM messages")
            self.conn.execute("DELETE FROM users")
            self.conn.commit()
        logger.warning("All users and messages wiped")

    def close(self) -> None:
        with self.lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None


class AccountStore:
    """Accounts keyed by unique username."""

    def __init__(self, db: Database):
        self.db = db

    def exists(self, username: str) -> bool:
        with self.db.lock:
            row = self.db.conn.execute(
                "SELECT 1 FROM users WHERE username = ?", (username,)
            ).fetchone()
        return row is not None

    def create(self, account: Account) -> None:
        """
        Insert a new account.

        Raises:
            AccountError: If the username is already taken
        """
        try:
            with self.db.lock:
                self.db.conn.execute(
                    """
                    INSERT INTO users (username, publicKey, passwordHash, encryptedPrivateKey)
                    VALUES (?, ?, ?, ?)
                """,
                    (
                        account.username,
                        base64.b64encode(account.public_key).decode("utf-8"),
                        account.password_hash,
                        account.encrypted_private_key.to_json(),
                    ),
                )
                self.db.conn.commit()
        except sqlite3.IntegrityError as e:
            raise AccountError(
                ErrorCode.E402_ACCOUNT_ALREADY_EXISTS,
                "Username already exists",
                {"username": account.username},
            ) from e
        except sqlite3.Error as e:
            logger.error(f"Failed to create account: {e}", exc_info=True)
            raise StorageError(ErrorCode.E601_WRITE_FAILED, f"Failed to create account: {e}") from e

    def fetch(self, username: str) -> Account:
        """
        Load an account.

        Raises:
            AccountError: If no such account exists
            StorageError: If the query fails or the stored row cannot be decoded
        """
        try:
            with self.db.lock:
                row = self.db.conn.execute(
                    "SELECT * FROM users WHERE username = ?", (username,)
                ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read account {username}: {e}", exc_info=True)
            raise StorageError(
                ErrorCode.E602_READ_FAILED, f"Failed to read account: {e}", {"username": username}
            ) from e

        if row is None:
            raise AccountError(
                ErrorCode.E401_ACCOUNT_NOT_FOUND, "User not found", {"username": username}
            )

        try:
            return Account(
                username=row["username"],
                public_key=base64.b64decode(row["publicKey"], validate=True),
                password_hash=row["passwordHash"],
                encrypted_private_key=PasswordEnvelope.from_json(row["encryptedPrivateKey"]),
            )
        except (binascii.Error, AuthenticationFailure) as e:
            logger.error(f"Corrupted account row for {username}")
            raise StorageError(
                ErrorCode.E602_READ_FAILED, "Stored account is corrupted", {"username": username}
            ) from e

    def list_usernames(self) -> List[str]:
        with self.db.lock:
            rows = self.db.conn.execute("SELECT username FROM users ORDER BY username").fetchall()
        return [row["username"] for row in rows]


class Directory:
    """Resolves usernames to their current public keys."""

    def __init__(self, accounts: AccountStore):
        self.accounts = accounts

    def resolve_public_key(self, username: str) -> bytes:
        """
        Return the current public key for ``username``.

        Raises:
            DirectoryLookupFailed: If the user is unknown or the row is unreadable
        """
        try:
            return self.accounts.fetch(username).public_key
        except AccountError as e:
            raise DirectoryLookupFailed(
                message=f"Recipient {username} not found",
                details={"username": username},
            ) from e
        except StorageError as e:
            raise DirectoryLookupFailed(
                ErrorCode.E300_DIRECTORY_ERROR,
                f"Directory lookup for {username} failed",
                {"username": username},
            ) from e


class MessageStore:
    """Per-recipient ciphertext records."""

    _INSERT = """
        INSERT INTO messages (id, sender, recipient, encryptedMessage, nonce, senderPublicKey, ts)
        VALUES (:id, :sender, :recipient, :encryptedMessage, :nonce, :senderPublicKey, :ts)
    """

    def __init__(self, db: Database):
        self.db = db

    def append(self, record: DirectedCiphertextRecord) -> None:
        """
        Store one record.

        Raises:
            StorageError: If the insert fails
        """
        self.append_many([record])

    def append_many(self, records: Iterable[DirectedCiphertextRecord]) -> int:
        """Store several records in a single transaction."""
        rows = [record.to_dict() for record in records]
        try:
            with self.db.lock:
                with self.db.conn:
                    self.db.conn.executemany(self._INSERT, rows)
        except sqlite3.Error as e:
            logger.error(f"Failed to store {len(rows)} messages: {e}")
            raise StorageError(ErrorCode.E601_WRITE_FAILED, f"Failed to store messages: {e}") from e
        logger.debug(f"Stored {len(rows)} messages")
        return len(rows)

    def list_for(self, recipient: str) -> List[DirectedCiphertextRecord]:
        """
        Return every record addressed to ``recipient``, oldest first.

        A row with a damaged encoding is salvaged rather than dropped; its
        undecodable byte fields come back empty and fail decryption.

        Raises:
            StorageError: If the query fails
        """
        try:
            with self.db.lock:
                rows = self.db.conn.execute(
                    "SELECT * FROM messages WHERE recipient = ? ORDER BY ts ASC, rowid ASC",
                    (recipient,),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to read messages for {recipient}: {e}", exc_info=True)
            raise StorageError(ErrorCode.E602_READ_FAILED, f"Failed to read messages: {e}") from e

        records = []
        for row in rows:
            try:
                records.append(DirectedCiphertextRecord.from_dict(dict(row)))
            except ValueError as e:
                logger.warning(f"Message row {row['id']} is damaged: {e}")
                records.append(DirectedCiphertextRecord.from_damaged_dict(dict(row)))
        return records
