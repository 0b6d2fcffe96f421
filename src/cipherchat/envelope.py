"""
CipherChat - Password envelope encryption for private-key escrow.

A private key is wrapped under a key derived from the account password so
the server can store it at rest. This protects the escrowed key with:
- Argon2id key derivation (memory-hard, slow)
- AES-256-GCM authenticated encryption
- Unique salt and nonce on every wrap

Trust boundary: whoever holds the envelope and learns the password can
recover the private key. The escrow holder is therefore fully trusted.
"""

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

from argon2.exceptions import Argon2Error
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import Config
from .constants import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    ENVELOPE_CONTEXT,
    ENVELOPE_KEY_SIZE,
    ENVELOPE_NONCE_SIZE,
    ENVELOPE_TAG_SIZE,
    ENVELOPE_VERSION,
    SALT_SIZE,
)
from .errors import AuthenticationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasswordEnvelope:
    """An escrowed private key, opaque without the password."""

    ciphertext: bytes
    nonce: bytes
    salt: bytes
    tag: bytes
    version: str = ENVELOPE_VERSION

    def to_dict(self) -> Dict[str, str]:
        """Export envelope to a dictionary of base64 strings."""
        return {
            'data': base64.b64encode(self.ciphertext).decode('utf-8'),
            'iv': base64.b64encode(self.nonce).decode('utf-8'),
            'salt': base64.b64encode(self.salt).decode('utf-8'),
            'tag': base64.b64encode(self.tag).decode('utf-8'),
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'PasswordEnvelope':
        """
        Import envelope from dictionary.

        Raises AuthenticationFailure on malformed input, so a damaged
        envelope is indistinguishable from a wrong password.
        """
        try:
            return cls(
                ciphertext=base64.b64decode(data['data'], validate=True),
                nonce=base64.b64decode(data['iv'], validate=True),
                salt=base64.b64decode(data['salt'], validate=True),
                tag=base64.b64decode(data['tag'], validate=True),
                version=data.get('version', ENVELOPE_VERSION),
            )
        except (KeyError, TypeError, AttributeError, binascii.Error) as e:
            raise AuthenticationFailure() from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> 'PasswordEnvelope':
        try:
            data = json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            raise AuthenticationFailure() from e
        if not isinstance(data, dict):
            raise AuthenticationFailure()
        return cls.from_dict(data)


class EnvelopeCipher:
    """
    Wraps and unwraps private keys under a password-derived key.

    Argon2id parameters are fixed per deployment:
        - Time cost: 3 iterations
        - Memory cost: 65536 KB (64 MB)
        - Parallelism: 1 thread
        - Unique 16-byte salt per envelope
        - Unique 12-byte nonce per envelope
    """

    def __init__(self,
                 time_cost: int = ARGON2_TIME_COST,
                 memory_cost: int = ARGON2_MEMORY_COST,
                 parallelism: int = ARGON2_PARALLELISM):
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism

    @classmethod
    def from_config(cls, config: Optional[Config]) -> 'EnvelopeCipher':
        if config is None:
            return cls()
        return cls(
            time_cost=config.get('kdf', 'time_cost', ARGON2_TIME_COST),
            memory_cost=config.get('kdf', 'memory_cost', ARGON2_MEMORY_COST),
            parallelism=config.get('kdf', 'parallelism', ARGON2_PARALLELISM),
        )

    def derive_key(self, password: str, salt: bytes) -> bytes:
        """Derive a 32-byte AES key from a password and salt using Argon2id."""
        return hash_secret_raw(
            secret=password.encode('utf-8'),
            salt=salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=ENVELOPE_KEY_SIZE,
            type=Type.ID
        )

    def wrap(self, private_key: bytes, password: str) -> PasswordEnvelope:
        """Encrypt ``private_key`` under ``password`` with a fresh salt and nonce."""
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(ENVELOPE_NONCE_SIZE)
        key = self.derive_key(password, salt)

        sealed = AESGCM(key).encrypt(nonce, private_key, ENVELOPE_CONTEXT)
        return PasswordEnvelope(
            ciphertext=sealed[:-ENVELOPE_TAG_SIZE],
            nonce=nonce,
            salt=salt,
            tag=sealed[-ENVELOPE_TAG_SIZE:],
        )

    def unwrap(self, envelope: PasswordEnvelope, password: str) -> bytes:
        """
        Decrypt an envelope and verify its tag.

        Raises AuthenticationFailure if:
        - Password is incorrect
        - Envelope is corrupted or tampered with
        The two cases are deliberately indistinguishable.
        """
        if (len(envelope.salt) != SALT_SIZE
                or len(envelope.nonce) != ENVELOPE_NONCE_SIZE
                or len(envelope.tag) != ENVELOPE_TAG_SIZE):
            logger.debug("Rejecting envelope with malformed field lengths")
            raise AuthenticationFailure()

        try:
            key = self.derive_key(password, envelope.salt)
            return AESGCM(key).decrypt(
                envelope.nonce, envelope.ciphertext + envelope.tag, ENVELOPE_CONTEXT
            )
        except (InvalidTag, Argon2Error) as e:
            raise AuthenticationFailure() from e
