"""
CipherChat - Password credential verification.

Account passwords are stored only as salted Argon2id hashes (argon2-cffi's
PasswordHasher). Verification is constant-time with respect to the hash.
"""

import logging
import os
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .config import Config
from .constants import (
    PASSWORD_HASH_MEMORY_COST,
    PASSWORD_HASH_PARALLELISM,
    PASSWORD_HASH_TIME_COST,
)

logger = logging.getLogger(__name__)


class CredentialVerifier:
    """Hashes and verifies account passwords."""

    def __init__(self,
                 time_cost: int = PASSWORD_HASH_TIME_COST,
                 memory_cost: int = PASSWORD_HASH_MEMORY_COST,
                 parallelism: int = PASSWORD_HASH_PARALLELISM):
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )
        self._dummy_hash: Optional[str] = None

    @classmethod
    def from_config(cls, config: Optional[Config]) -> 'CredentialVerifier':
        if config is None:
            return cls()
        return cls(
            time_cost=config.get('password_hash', 'time_cost', PASSWORD_HASH_TIME_COST),
            memory_cost=config.get('password_hash', 'memory_cost', PASSWORD_HASH_MEMORY_COST),
            parallelism=config.get('password_hash', 'parallelism', PASSWORD_HASH_PARALLELISM),
        )

    def hash(self, password: str) -> str:
        """Return an encoded Argon2id hash (salt and parameters included)."""
        return self._hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Check a password against a stored hash.

        Returns False for a mismatch or an unparseable hash; never raises for
        either, so callers cannot tell the two apart.
        """
        try:
            return self._hasher.verify(password_hash, password)
        except VerificationError:
            return False
        except InvalidHashError:
            logger.warning("Stored password hash is not a valid Argon2 hash")
            return False

    def reject(self, password: str) -> bool:
        """
        Spend one full verification on a throwaway hash and return False.

        Used when there is no stored hash to check against, so an unknown
        account costs as much as a wrong password.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self._hasher.hash(os.urandom(16).hex())
        self.verify(password, self._dummy_hash)
        return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if a hash was made with weaker parameters than the current ones."""
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True
