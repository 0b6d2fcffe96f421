"""
CipherChat - End-to-end encrypted messaging core

Per-user X25519 key pairs, authenticated public-key encryption fanned out
per recipient, and password-derived envelope encryption for escrowing
private keys on the server.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .account import Account, AccountService
from .codec import DecryptionResult, MessageCodec
from .config import Config
from .constants import APP_NAME, VERSION
from .credentials import CredentialVerifier
from .custody import KeyCustodian
from .envelope import EnvelopeCipher, PasswordEnvelope
from .errors import (
    AccountError,
    AuthenticationFailure,
    CipherChatError,
    ConfigError,
    CryptoError,
    DecryptionFailed,
    DirectoryLookupFailed,
    EncryptionFailed,
    ErrorCode,
    KeyUnavailable,
    NoRecipients,
    StorageError,
)
from .keys import AsymmetricKeyPair
from .message import DirectedCiphertextRecord, SealedMessage
from .messaging import FanOutResult, InboxEntry, Messenger

__all__ = [
    "APP_NAME",
    "VERSION",
    "Account",
    "AccountError",
    "AccountService",
    "AsymmetricKeyPair",
    "AuthenticationFailure",
    "CipherChatError",
    "Config",
    "ConfigError",
    "CredentialVerifier",
    "CryptoError",
    "DecryptionFailed",
    "DecryptionResult",
    "DirectedCiphertextRecord",
    "DirectoryLookupFailed",
    "EncryptionFailed",
    "EnvelopeCipher",
    "ErrorCode",
    "FanOutResult",
    "InboxEntry",
    "KeyCustodian",
    "KeyUnavailable",
    "MessageCodec",
    "Messenger",
    "NoRecipients",
    "PasswordEnvelope",
    "SealedMessage",
    "StorageError",
    "__license__",
    "__version__",
]
