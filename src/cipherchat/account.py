"""
CipherChat - Account registration and login.

Registration mints (or reuses) the device key pair, hashes the password and
escrows the private key under it. Login checks the password first and only
then unwraps the escrowed key, so a failed login never triggers the slow
envelope key derivation.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .constants import MAX_USERNAME_LENGTH
from .credentials import CredentialVerifier
from .custody import KeyCustodian
from .envelope import EnvelopeCipher, PasswordEnvelope
from .errors import AccountError, AuthenticationFailure, ErrorCode
from .keys import AsymmetricKeyPair

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')


@dataclass(frozen=True)
class Account:
    """A registered user as held by the account store."""

    username: str
    public_key: bytes
    password_hash: str
    encrypted_private_key: PasswordEnvelope


def validate_username(username: str) -> str:
    """Return the stripped username, or raise AccountError."""
    name = (username or "").strip()
    if not name:
        raise AccountError(ErrorCode.E403_INVALID_USERNAME, "Username is required")
    if len(name) > MAX_USERNAME_LENGTH:
        raise AccountError(
            ErrorCode.E403_INVALID_USERNAME,
            f"Username must be at most {MAX_USERNAME_LENGTH} characters",
        )
    if not USERNAME_PATTERN.match(name):
        raise AccountError(
            ErrorCode.E403_INVALID_USERNAME,
            "Username may only contain letters, digits, '_', '.' and '-'",
        )
    return name


class AccountService:
    """Ties credential checks, escrow and the account store together.

    The account store must provide ``exists``, ``create`` and ``fetch``.
    """

    def __init__(self,
                 account_store,
                 verifier: Optional[CredentialVerifier] = None,
                 envelope_cipher: Optional[EnvelopeCipher] = None):
        self.accounts = account_store
        self.verifier = verifier or CredentialVerifier()
        self.envelope_cipher = envelope_cipher or EnvelopeCipher()

    def register(self, username: str, password: str, custodian: KeyCustodian) -> Account:
        """
        Create an account for the key pair held by ``custodian``.

        Raises:
            AccountError: If the username is invalid or taken, or the password is empty
        """
        username = validate_username(username)
        if not password:
            raise AccountError(ErrorCode.E404_INVALID_PASSWORD, "Password is required")
        if self.accounts.exists(username):
            raise AccountError(
                ErrorCode.E402_ACCOUNT_ALREADY_EXISTS,
                "Username already exists",
                {"username": username},
            )

        keypair = custodian.ensure_keypair()
        account = Account(
            username=username,
            public_key=keypair.public_bytes,
            password_hash=self.verifier.hash(password),
            encrypted_private_key=self.envelope_cipher.wrap(keypair.private_bytes, password),
        )
        self.accounts.create(account)
        logger.info(f"Registered account {username} (fingerprint {keypair.fingerprint[:16]})")
        return account

    def login(self,
              username: str,
              password: str,
              custodian: Optional[KeyCustodian] = None) -> AsymmetricKeyPair:
        """
        Verify credentials and recover the escrowed key pair.

        If ``custodian`` is given, the recovered pair is adopted into local
        custody so history can be decrypted on this device.

        Raises:
            AuthenticationFailure: Unknown user, wrong password or damaged
                envelope, all reported identically
        """
        try:
            account = self.accounts.fetch(username)
        except AccountError as e:
            if e.code is not ErrorCode.E401_ACCOUNT_NOT_FOUND:
                raise
            self.verifier.reject(password)
            logger.info("Login rejected")
            raise AuthenticationFailure() from None

        if not self.verifier.verify(password, account.password_hash):
            logger.info("Login rejected")
            raise AuthenticationFailure()

        private_bytes = self.envelope_cipher.unwrap(account.encrypted_private_key, password)
        keypair = AsymmetricKeyPair.from_private_bytes(private_bytes)
        if not keypair.matches_public_key(account.public_key):
            logger.error(f"Escrowed key for {account.username} does not match its public key")
            raise AccountError(
                ErrorCode.E405_KEY_MISMATCH,
                "Escrowed private key does not match the registered public key",
                {"username": account.username},
            )

        if custodian is not None:
            custodian.adopt_keypair(keypair)
        logger.info(f"Login succeeded for {account.username}")
        return keypair
