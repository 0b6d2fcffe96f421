"""
Unit tests for cipherchat.errors module.

Tests error codes, hierarchy and serialization.
"""

from cipherchat.errors import (
    AccountError,
    AuthenticationFailure,
    CipherChatError,
    CryptoError,
    DecryptionFailed,
    DirectoryLookupFailed,
    ErrorCode,
    KeyUnavailable,
    NoRecipients,
)


class TestErrorHierarchy:
    """Test which errors are cryptographic failures."""

    def test_crypto_errors(self):
        for error in (KeyUnavailable(), AuthenticationFailure(), NoRecipients(), DecryptionFailed()):
            assert isinstance(error, CryptoError)
            assert isinstance(error, CipherChatError)

    def test_non_crypto_errors(self):
        assert not isinstance(DirectoryLookupFailed(), CryptoError)
        assert not isinstance(AccountError(), CryptoError)


class TestErrorCodes:
    """Test default codes and messages."""

    def test_default_codes(self):
        assert KeyUnavailable().code is ErrorCode.E201_KEY_UNAVAILABLE
        assert AuthenticationFailure().code is ErrorCode.E104_AUTHENTICATION_FAILED
        assert NoRecipients().code is ErrorCode.E105_NO_RECIPIENTS
        assert DecryptionFailed().code is ErrorCode.E102_DECRYPTION_FAILED
        assert DirectoryLookupFailed().code is ErrorCode.E301_USER_NOT_FOUND

    def test_message_includes_code(self):
        assert str(NoRecipients()) == "[E105] At least one recipient is required"

    def test_authentication_failure_message_is_fixed(self):
        assert AuthenticationFailure().message == AuthenticationFailure({"x": 1}).message


class TestSerialization:
    """Test conversion to dictionaries."""

    def test_to_dict(self):
        error = DirectoryLookupFailed(message="Recipient bob not found", details={"username": "bob"})

        assert error.to_dict() == {
            "code": "E301",
            "message": "Recipient bob not found",
            "details": {"username": "bob"},
        }

    def test_details_default_empty(self):
        assert AccountError().details == {}
