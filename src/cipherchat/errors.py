"""
CipherChat - Custom Exception Classes and Error Codes

This module defines all custom exceptions and error codes used throughout
the CipherChat core. Each error has a unique code for logging and debugging.

Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all CipherChat error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E104_AUTHENTICATION_FAILED = "E104"
    E105_NO_RECIPIENTS = "E105"

    # Key Custody Errors (E200-E299)
    E200_CUSTODY_ERROR = "E200"
    E201_KEY_UNAVAILABLE = "E201"
    E202_KEY_FILE_CORRUPTED = "E202"
    E203_CUSTODY_CONFLICT = "E203"
    E204_KEY_SAVE_FAILED = "E204"

    # Directory Errors (E300-E399)
    E300_DIRECTORY_ERROR = "E300"
    E301_USER_NOT_FOUND = "E301"

    # Account Errors (E400-E499)
    E400_ACCOUNT_ERROR = "E400"
    E401_ACCOUNT_NOT_FOUND = "E401"
    E402_ACCOUNT_ALREADY_EXISTS = "E402"
    E403_INVALID_USERNAME = "E403"
    E404_INVALID_PASSWORD = "E404"
    E405_KEY_MISMATCH = "E405"

    # Storage Errors (E600-E699)
    E600_STORAGE_ERROR = "E600"
    E601_WRITE_FAILED = "E601"
    E602_READ_FAILED = "E602"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E704_CONFIG_PARSE_ERROR = "E704"


class CipherChatError(Exception):
    """Base exception class for all CipherChat errors.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Additional error details (optional)
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {"code": self.code.value, "message": self.message, "details": self.details}


class CryptoError(CipherChatError):
    """Exception raised for cryptographic operation failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E100_CRYPTO_ERROR,
        message: str = "Cryptographic operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class KeyUnavailable(CryptoError):
    """Raised when local key custody has never been established on this device."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E201_KEY_UNAVAILABLE,
        message: str = "No keypair is held on this device",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class AuthenticationFailure(CryptoError):
    """Raised when a password or escrow envelope does not verify.

    The message is identical for every cause (wrong password, unknown user,
    tampered envelope) so callers cannot use it as an oracle.
    """

    MESSAGE = "Authentication failed"

    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.E104_AUTHENTICATION_FAILED, self.MESSAGE, details)


class NoRecipients(CryptoError):
    """Raised when a message is encrypted for an empty recipient set."""

    def __init__(self, message: str = "At least one recipient is required"):
        super().__init__(ErrorCode.E105_NO_RECIPIENTS, message)


class EncryptionFailed(CryptoError):
    """Raised when a single recipient's branch of a fan-out cannot be encrypted."""

    def __init__(
        self,
        message: str = "Encryption failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E101_ENCRYPTION_FAILED, message, details)


class DecryptionFailed(CryptoError):
    """Per-message decryption failure.

    Returned (not raised) by the message codec so one bad record never
    blocks the rest of an inbox.
    """

    def __init__(
        self,
        message: str = "Message could not be decrypted",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(ErrorCode.E102_DECRYPTION_FAILED, message, details)


class DirectoryLookupFailed(CipherChatError):
    """Raised when a username cannot be resolved to a public key."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E301_USER_NOT_FOUND,
        message: str = "Recipient not found",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class AccountError(CipherChatError):
    """Exception raised for account management failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E400_ACCOUNT_ERROR,
        message: str = "Account operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class StorageError(CipherChatError):
    """Exception raised for persistence failures in the account and message stores."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E600_STORAGE_ERROR,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)


class ConfigError(CipherChatError):
    """Exception raised for configuration failures."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.E700_CONFIG_ERROR,
        message: str = "Configuration operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, details)
