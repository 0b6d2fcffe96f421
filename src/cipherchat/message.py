"""
CipherChat - Ciphertext records.

One record exists per (message, recipient) pair. Records are immutable once
created; byte fields are base64 encoded at rest and on the wire.
"""

import base64
import binascii
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def _unb64(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


def now_millis() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class SealedMessage:
    """The codec's output for a single recipient, before addressing."""

    recipient_public_key: bytes
    ciphertext: bytes
    nonce: bytes
    sender_public_key: bytes

    def address(self, sender: str, recipient: str) -> "DirectedCiphertextRecord":
        """Complete this ciphertext into a storable record."""
        return DirectedCiphertextRecord(
            sender=sender,
            recipient=recipient,
            ciphertext=self.ciphertext,
            nonce=self.nonce,
            sender_public_key=self.sender_public_key,
        )


@dataclass(frozen=True)
class DirectedCiphertextRecord:
    """A message encrypted for exactly one recipient."""

    sender: str
    recipient: str
    ciphertext: bytes
    nonce: bytes
    sender_public_key: bytes
    timestamp: int = field(default_factory=now_millis)
    id: str = field(default_factory=new_record_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to its wire representation."""
        return {
            "id": self.id,
            "sender": self.sender,
            "recipient": self.recipient,
            "encryptedMessage": _b64(self.ciphertext),
            "nonce": _b64(self.nonce),
            "senderPublicKey": _b64(self.sender_public_key),
            "ts": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DirectedCiphertextRecord":
        """Create record from its wire representation.

        Raises:
            ValueError: If a field is missing or not valid base64
        """
        try:
            return cls(
                id=data["id"],
                sender=data["sender"],
                recipient=data["recipient"],
                ciphertext=_unb64(data["encryptedMessage"]),
                nonce=_unb64(data["nonce"]),
                sender_public_key=_unb64(data["senderPublicKey"]),
                timestamp=int(data["ts"]),
            )
        except (KeyError, TypeError, binascii.Error) as e:
            raise ValueError(f"Malformed ciphertext record: {e}") from e

    @classmethod
    def from_damaged_dict(cls, data: Dict[str, Any]) -> "DirectedCiphertextRecord":
        """Build a record from a row whose byte fields did not all decode.

        Undecodable byte fields become empty, so the record is kept in the
        inbox and fails decryption instead of disappearing.
        """

        def salvage(key: str) -> bytes:
            try:
                return _unb64(data.get(key) or "")
            except (TypeError, binascii.Error):
                return b""

        try:
            timestamp = int(data.get("ts") or 0)
        except (TypeError, ValueError):
            timestamp = 0

        return cls(
            id=str(data.get("id") or new_record_id()),
            sender=str(data.get("sender") or ""),
            recipient=str(data.get("recipient") or ""),
            ciphertext=salvage("encryptedMessage"),
            nonce=salvage("nonce"),
            sender_public_key=salvage("senderPublicKey"),
            timestamp=timestamp,
        )
