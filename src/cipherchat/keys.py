"""
CipherChat - Asymmetric key pairs.

Each account owns exactly one X25519 key pair for its whole lifetime.
The public half is always recomputed from the private half, so a pair can
never be assembled from two unrelated keys.

All cryptographic operations use the cryptography library (Apache 2.0/BSD License).
"""

import base64
import binascii
from typing import Dict, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import x25519

from .constants import KEY_SIZE
from .errors import CryptoError, ErrorCode


class AsymmetricKeyPair:
    """
    A user's X25519 key pair for authenticated public-key encryption.

    X25519 provides:
    - 128-bit security level
    - Small key size (32 bytes)
    - Resistance to timing attacks
    """

    def __init__(self, private_key: Optional[x25519.X25519PrivateKey] = None):
        if private_key is None:
            self.private_key = x25519.X25519PrivateKey.generate()
        else:
            self.private_key = private_key
        self.public_key = self.private_key.public_key()

    @classmethod
    def generate(cls) -> 'AsymmetricKeyPair':
        """Generate a fresh key pair from the OS CSPRNG."""
        return cls()

    @property
    def public_bytes(self) -> bytes:
        """Public key as 32 raw bytes; safe to disclose."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )

    @property
    def private_bytes(self) -> bytes:
        """Private key as 32 raw bytes; must never leave custody unencrypted."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )

    @property
    def fingerprint(self) -> str:
        return generate_fingerprint(self.public_bytes)

    def matches_public_key(self, public_bytes: bytes) -> bool:
        """Check whether ``public_bytes`` is the public half of this pair."""
        return self.public_bytes == public_bytes

    def to_dict(self) -> Dict[str, str]:
        """Export key pair to dictionary for storage."""
        return {
            'private': base64.b64encode(self.private_bytes).decode('utf-8'),
            'public': base64.b64encode(self.public_bytes).decode('utf-8')
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'AsymmetricKeyPair':
        """
        Import key pair from dictionary.

        Raises CryptoError if the stored public half does not belong to the
        stored private half.
        """
        try:
            keypair = cls.from_private_bytes(base64.b64decode(data['private'], validate=True))
            public_bytes = base64.b64decode(data['public'], validate=True)
        except (KeyError, TypeError, binascii.Error) as e:
            raise CryptoError(ErrorCode.E103_INVALID_KEY, f"Malformed key pair data: {e}") from e

        if not keypair.matches_public_key(public_bytes):
            raise CryptoError(ErrorCode.E103_INVALID_KEY, "Public key does not match private key")
        return keypair

    @classmethod
    def from_private_bytes(cls, private_bytes: bytes) -> 'AsymmetricKeyPair':
        """Rebuild a key pair from its raw private key."""
        if len(private_bytes) != KEY_SIZE:
            raise CryptoError(
                ErrorCode.E103_INVALID_KEY,
                f"Private key must be {KEY_SIZE} bytes, got {len(private_bytes)}"
            )
        return cls(x25519.X25519PrivateKey.from_private_bytes(private_bytes))

    def __repr__(self) -> str:
        return f"AsymmetricKeyPair(fingerprint={self.fingerprint[:16]}...)"


def load_public_key(public_bytes: bytes) -> x25519.X25519PublicKey:
    """Load a public key from raw bytes, raising CryptoError on bad input."""
    if len(public_bytes) != KEY_SIZE:
        raise CryptoError(
            ErrorCode.E103_INVALID_KEY,
            f"Public key must be {KEY_SIZE} bytes, got {len(public_bytes)}"
        )
    return x25519.X25519PublicKey.from_public_bytes(public_bytes)


def generate_fingerprint(public_key_bytes: bytes) -> str:
    """
    Generate a human-readable fingerprint from a public key using SHA-256.

    Users should compare fingerprints through a trusted channel before
    trusting a key returned by the directory.

    Returns a 64-character hexadecimal fingerprint.
    """
    digest = hashes.Hash(hashes.SHA256())
    digest.update(public_key_bytes)
    return digest.finalize().hex()
