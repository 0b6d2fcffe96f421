"""
CipherChat - Sending and reading messages.

Sending fans a message out to every recipient: each branch resolves the
recipient's public key, encrypts, and stores its own record. A branch that
fails (unknown recipient, bad key, storage error) is reported in the result
and never stops the other branches.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .codec import DecryptionResult, MessageCodec
from .config import Config
from .constants import FANOUT_MAX_WORKERS
from .errors import (
    CipherChatError,
    DirectoryLookupFailed,
    EncryptionFailed,
    ErrorCode,
    NoRecipients,
    StorageError,
)
from .keys import AsymmetricKeyPair
from .message import DirectedCiphertextRecord

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    """Per-recipient outcome of a send."""

    delivered: Dict[str, DirectedCiphertextRecord] = field(default_factory=dict)
    failures: Dict[str, CipherChatError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True when every recipient received a record."""
        return not self.failures

    @property
    def records(self) -> List[DirectedCiphertextRecord]:
        return list(self.delivered.values())


@dataclass(frozen=True)
class InboxEntry:
    """A stored record together with its decryption outcome."""

    record: DirectedCiphertextRecord
    result: DecryptionResult

    @property
    def text(self) -> str:
        return self.result.display_text


class Messenger:
    """Client-side send and receive built on the codec and the stores.

    ``directory`` must provide ``resolve_public_key(username)``;
    ``message_store`` must provide ``append(record)`` and ``list_for(recipient)``.
    """

    def __init__(self,
                 directory,
                 message_store,
                 codec: Optional[MessageCodec] = None,
                 max_workers: int = FANOUT_MAX_WORKERS):
        self.directory = directory
        self.message_store = message_store
        self.codec = codec or MessageCodec()
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, directory, message_store, config: Optional[Config]) -> 'Messenger':
        workers = FANOUT_MAX_WORKERS
        if config is not None:
            workers = config.get('messaging', 'fanout_workers', FANOUT_MAX_WORKERS)
        return cls(directory, message_store, max_workers=workers)

    def _deliver(self,
                 sender: str,
                 keypair: AsymmetricKeyPair,
                 plaintext: str,
                 recipient: str) -> DirectedCiphertextRecord:
        try:
            recipient_key = self.directory.resolve_public_key(recipient)
        except CipherChatError:
            raise
        except Exception as e:
            logger.error(f"Directory lookup for {recipient} failed: {e}", exc_info=True)
            raise DirectoryLookupFailed(
                ErrorCode.E300_DIRECTORY_ERROR,
                f"Directory lookup failed: {e}",
                {"username": recipient},
            ) from e

        outcome = self.codec.encrypt_for_recipients(
            plaintext, keypair.private_bytes, keypair.public_bytes, [recipient_key]
        )[0]
        if isinstance(outcome, EncryptionFailed):
            outcome.details["username"] = recipient
            raise outcome
        record = outcome.address(sender, recipient)

        try:
            self.message_store.append(record)
        except CipherChatError:
            raise
        except Exception as e:
            logger.error(f"Storing message for {recipient} failed: {e}", exc_info=True)
            raise StorageError(
                ErrorCode.E601_WRITE_FAILED,
                f"Failed to store message: {e}",
                {"username": recipient},
            ) from e
        return record

    def send(self,
             sender: str,
             keypair: AsymmetricKeyPair,
             plaintext: str,
             recipients: Sequence[str]) -> FanOutResult:
        """
        Encrypt and store ``plaintext`` once per distinct recipient.

        Raises:
            NoRecipients: If ``recipients`` is empty
        """
        targets = tuple(dict.fromkeys(recipients))
        if not targets:
            raise NoRecipients()

        result = FanOutResult()
        workers = min(self.max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                (recipient, pool.submit(self._deliver, sender, keypair, plaintext, recipient))
                for recipient in targets
            ]
            for recipient, future in futures:
                try:
                    result.delivered[recipient] = future.result()
                except CipherChatError as e:
                    logger.warning(f"Delivery to {recipient} failed: {e}")
                    result.failures[recipient] = e
                except Exception as e:
                    logger.error(f"Delivery to {recipient} failed: {e}", exc_info=True)
                    failure = EncryptionFailed(f"Delivery failed: {e}", {"username": recipient})
                    failure.__cause__ = e
                    result.failures[recipient] = failure

        logger.info(
            f"{sender} sent a message to {len(result.delivered)}/{len(targets)} recipients"
        )
        return result

    def inbox(self, username: str, private_key: bytes) -> List[InboxEntry]:
        """Fetch and decrypt every record addressed to ``username``, oldest first."""
        records = self.message_store.list_for(username)
        results = self.codec.decrypt_all(records, private_key)
        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning(f"{failed} of {len(records)} messages for {username} could not be decrypted")
        return [InboxEntry(record, res) for record, res in zip(records, results)]
