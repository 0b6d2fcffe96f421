"""
CipherChat - Authenticated public-key message encryption.

Each message is encrypted independently for every recipient:
- X25519 ECDH between the sender's private key and the recipient's public key
- HKDF-SHA256 binds the derived key to both public keys, sender first
- ChaCha20-Poly1305 with a fresh random 96-bit nonce per recipient
- Both public keys are authenticated as associated data

Only the holder of the sender's private key or the recipient's private key can
derive the message key, so a record that decrypts under a given sender public
key was produced by that sender (from the recipient's point of view).

The codec is stateless; concurrent calls share nothing.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .constants import (
    KEY_SIZE,
    MAX_MESSAGE_SIZE,
    MESSAGE_KEY_INFO,
    MESSAGE_NONCE_SIZE,
    UNDECRYPTABLE_PLACEHOLDER,
)
from .errors import CryptoError, DecryptionFailed, EncryptionFailed, NoRecipients
from .keys import AsymmetricKeyPair, load_public_key
from .message import SealedMessage

logger = logging.getLogger(__name__)

SealOutcome = Union[SealedMessage, EncryptionFailed]


@dataclass(frozen=True)
class DecryptionResult:
    """Outcome of decrypting one record; exactly one of the fields is set."""

    plaintext: Optional[str] = None
    error: Optional[DecryptionFailed] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def display_text(self) -> str:
        """Plaintext, or an explicit placeholder when decryption failed."""
        return self.plaintext if self.ok else UNDECRYPTABLE_PLACEHOLDER


def derive_message_key(local_private: AsymmetricKeyPair,
                       remote_public: bytes,
                       sender_public: bytes,
                       recipient_public: bytes) -> bytes:
    """
    Derive the 32-byte message key for a (sender, recipient) pair.

    Both sides compute the same key: the sender from (sender private,
    recipient public), the recipient from (recipient private, sender public).
    """
    shared_secret = local_private.private_key.exchange(load_public_key(remote_public))
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=MESSAGE_KEY_INFO + sender_public + recipient_public
    )
    return hkdf.derive(shared_secret)


class MessageCodec:
    """Encrypts messages per recipient and decrypts incoming records."""

    def __init__(self, max_message_size: int = MAX_MESSAGE_SIZE):
        self.max_message_size = max_message_size

    def seal_for_recipient(self,
                           plaintext: bytes,
                           sender: AsymmetricKeyPair,
                           recipient_public_key: bytes) -> SealedMessage:
        """Encrypt already-encoded plaintext for a single recipient."""
        try:
            key = derive_message_key(
                sender, recipient_public_key, sender.public_bytes, recipient_public_key
            )
        except (CryptoError, ValueError) as e:
            raise EncryptionFailed(
                "Invalid recipient public key",
                {"recipient_public_key_length": len(recipient_public_key)},
            ) from e

        nonce = os.urandom(MESSAGE_NONCE_SIZE)
        ciphertext = ChaCha20Poly1305(key).encrypt(
            nonce, plaintext, sender.public_bytes + recipient_public_key
        )
        return SealedMessage(
            recipient_public_key=recipient_public_key,
            ciphertext=ciphertext,
            nonce=nonce,
            sender_public_key=sender.public_bytes,
        )

    def encrypt_for_recipients(self,
                               plaintext: Union[str, bytes],
                               sender_private_key: bytes,
                               sender_public_key: bytes,
                               recipient_public_keys: Iterable[bytes]) -> List[SealOutcome]:
        """
        Encrypt one message independently for every recipient.

        Returns one outcome per recipient key, in input order: a SealedMessage
        with its own freshly drawn nonce, or the EncryptionFailed for that
        recipient alone. A bad recipient key never affects the others.

        Raises:
            NoRecipients: If ``recipient_public_keys`` is empty
            EncryptionFailed: If the sender keys do not form a pair or the
                message is too large
        """
        recipients = tuple(recipient_public_keys)
        if not recipients:
            raise NoRecipients()

        payload = plaintext.encode('utf-8') if isinstance(plaintext, str) else bytes(plaintext)
        if len(payload) > self.max_message_size:
            raise EncryptionFailed(
                "Message too large",
                {"size": len(payload), "max_size": self.max_message_size},
            )

        try:
            sender = AsymmetricKeyPair.from_private_bytes(sender_private_key)
        except CryptoError as e:
            raise EncryptionFailed("Invalid sender private key") from e
        if not sender.matches_public_key(sender_public_key):
            raise EncryptionFailed("Sender public key does not match sender private key")

        outcomes: List[SealOutcome] = []
        for index, recipient_public_key in enumerate(recipients):
            try:
                outcomes.append(self.seal_for_recipient(payload, sender, recipient_public_key))
            except EncryptionFailed as e:
                e.details["recipient_index"] = index
                logger.warning(f"Skipping recipient {index}: {e}")
                outcomes.append(e)
        return outcomes

    def decrypt(self, record, recipient_private_key: bytes) -> DecryptionResult:
        """
        Decrypt a record addressed to the holder of ``recipient_private_key``.

        ``record`` is anything with ``ciphertext``, ``nonce`` and
        ``sender_public_key`` attributes. Failures of any kind are returned as
        a DecryptionResult carrying DecryptionFailed, never raised.
        """
        record_id = getattr(record, 'id', None)
        try:
            recipient = AsymmetricKeyPair.from_private_bytes(recipient_private_key)
            if len(record.nonce) != MESSAGE_NONCE_SIZE:
                raise ValueError(f"nonce must be {MESSAGE_NONCE_SIZE} bytes")
            if len(record.sender_public_key) != KEY_SIZE:
                raise ValueError(f"sender public key must be {KEY_SIZE} bytes")

            key = derive_message_key(
                recipient, record.sender_public_key,
                record.sender_public_key, recipient.public_bytes
            )
            plaintext = ChaCha20Poly1305(key).decrypt(
                record.nonce, record.ciphertext,
                record.sender_public_key + recipient.public_bytes
            )
            return DecryptionResult(plaintext=plaintext.decode('utf-8'))
        except (InvalidTag, CryptoError, ValueError, TypeError, AttributeError) as e:
            logger.debug(f"Could not decrypt record {record_id}: {type(e).__name__}")
            return DecryptionResult(
                error=DecryptionFailed(details={"record_id": record_id})
            )

    def decrypt_all(self, records: Sequence, recipient_private_key: bytes) -> List[DecryptionResult]:
        """Decrypt each record independently, preserving order."""
        return [self.decrypt(record, recipient_private_key) for record in records]
