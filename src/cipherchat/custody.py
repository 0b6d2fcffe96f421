"""
CipherChat - Local key custody.

Manages the device's key pair: generates it once, persists it, and hands it
to the encryption and decryption paths. Custody is an explicit object bound
to a key file; nothing here is module-level state.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Union

from .errors import CryptoError, ErrorCode, KeyUnavailable
from .keys import AsymmetricKeyPair

logger = logging.getLogger(__name__)


class KeyCustodian:
    """Owns the key pair held on this device.

    Thread Safety:
        First-use initialisation and adoption run under a lock, so two threads
        calling ``ensure_keypair`` concurrently always observe the same pair.
    """

    def __init__(self, key_file: Union[str, Path]):
        self.key_file = Path(key_file)
        self._keypair: Optional[AsymmetricKeyPair] = None
        self._lock = threading.Lock()

    def has_keypair(self) -> bool:
        """Check if a key pair is held in memory or on disk."""
        return self._keypair is not None or self.key_file.exists()

    def ensure_keypair(self) -> AsymmetricKeyPair:
        """
        Return the device key pair, generating and persisting one on first use.

        Never regenerates over an existing key file: a file that exists but
        cannot be read raises KeyUnavailable instead, since replacing it would
        orphan every message already encrypted to the old key.
        """
        with self._lock:
            if self._keypair is not None:
                return self._keypair

            if self.key_file.exists():
                self._keypair = self._read_key_file()
                logger.info(f"Loaded key pair from {self.key_file}")
                return self._keypair

            keypair = AsymmetricKeyPair.generate()
            self._write_key_file(keypair)
            self._keypair = keypair
            logger.info(f"Generated new key pair (fingerprint {keypair.fingerprint[:16]})")
            return keypair

    def load_keypair(self) -> AsymmetricKeyPair:
        """
        Return the held key pair without generating one.

        Raises:
            KeyUnavailable: If custody was never established on this device
        """
        with self._lock:
            if self._keypair is None:
                if not self.key_file.exists():
                    raise KeyUnavailable(details={"path": str(self.key_file)})
                self._keypair = self._read_key_file()
            return self._keypair

    def load_private_key(self) -> bytes:
        """Return the raw private key, or raise KeyUnavailable."""
        return self.load_keypair().private_bytes

    def adopt_keypair(self, keypair: AsymmetricKeyPair) -> AsymmetricKeyPair:
        """
        Install a key pair recovered from escrow and persist it.

        Adopting the pair already held is a no-op. Adopting a different pair
        is refused: the held key may be the only one able to read local history.
        """
        with self._lock:
            current = self._keypair
            if current is None and self.key_file.exists():
                current = self._read_key_file()

            if current is not None:
                if not current.matches_public_key(keypair.public_bytes):
                    raise KeyUnavailable(
                        ErrorCode.E203_CUSTODY_CONFLICT,
                        "A different key pair is already held on this device",
                        {"path": str(self.key_file)},
                    )
                self._keypair = current
                return current

            self._write_key_file(keypair)
            self._keypair = keypair
            logger.info(f"Adopted escrowed key pair (fingerprint {keypair.fingerprint[:16]})")
            return keypair

    def forget(self) -> None:
        """Drop the key pair from memory and delete the key file."""
        with self._lock:
            self._keypair = None
            if self.key_file.exists():
                os.remove(self.key_file)
                logger.warning(f"Deleted key file {self.key_file}")

    def _read_key_file(self) -> AsymmetricKeyPair:
        try:
            with open(self.key_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return AsymmetricKeyPair.from_dict(data)
        except (OSError, json.JSONDecodeError, CryptoError) as e:
            logger.error(f"Key file is unreadable: {self.key_file}: {e}")
            raise KeyUnavailable(
                ErrorCode.E202_KEY_FILE_CORRUPTED,
                "Key file exists but cannot be loaded",
                {"path": str(self.key_file)},
            ) from e

    def _write_key_file(self, keypair: AsymmetricKeyPair) -> None:
        """Write the key pair atomically with owner-only permissions."""
        self.key_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.key_file.with_name(self.key_file.name + '.tmp')
        try:
            # A leftover temp file would keep its old permissions
            if temp_file.exists():
                os.remove(temp_file)
            fd = os.open(temp_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(keypair.to_dict(), f, indent=2)

            # Atomic on POSIX systems
            os.replace(temp_file, self.key_file)
        except OSError as e:
            logger.error(f"Failed to save key pair: {e}", exc_info=True)
            try:
                if temp_file.exists():
                    os.remove(temp_file)
            except OSError:
                logger.warning(f"Could not remove temporary key file {temp_file}")
            raise KeyUnavailable(
                ErrorCode.E204_KEY_SAVE_FAILED,
                f"Failed to save key pair: {e}",
                {"path": str(self.key_file)},
            ) from e
