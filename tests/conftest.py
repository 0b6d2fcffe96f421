"""
Pytest configuration and fixtures for CipherChat tests.

Provides common fixtures and test utilities for unit and integration tests.
Key derivation and password hashing use minimal Argon2 work factors so the
suite stays fast; production defaults live in cipherchat.constants.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from cipherchat.account import AccountService
from cipherchat.codec import MessageCodec
from cipherchat.credentials import CredentialVerifier
from cipherchat.custody import KeyCustodian
from cipherchat.envelope import EnvelopeCipher
from cipherchat.keys import AsymmetricKeyPair
from cipherchat.messaging import Messenger
from cipherchat.storage import AccountStore, Database, Directory, MessageStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp(prefix="cipherchat_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def envelope_cipher() -> EnvelopeCipher:
    """Envelope cipher with the smallest Argon2 work factors."""
    return EnvelopeCipher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def verifier() -> CredentialVerifier:
    """Password verifier with the smallest Argon2 work factors."""
    return CredentialVerifier(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def codec() -> MessageCodec:
    return MessageCodec()


@pytest.fixture
def alice() -> AsymmetricKeyPair:
    return AsymmetricKeyPair.generate()


@pytest.fixture
def bob() -> AsymmetricKeyPair:
    return AsymmetricKeyPair.generate()


@pytest.fixture
def carol() -> AsymmetricKeyPair:
    return AsymmetricKeyPair.generate()


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """In-memory SQLite database."""
    db = Database(":memory:")
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def account_store(database: Database) -> AccountStore:
    return AccountStore(database)


@pytest.fixture
def message_store(database: Database) -> MessageStore:
    return MessageStore(database)


@pytest.fixture
def directory(account_store: AccountStore) -> Directory:
    return Directory(account_store)


@pytest.fixture
def account_service(account_store, verifier, envelope_cipher) -> AccountService:
    return AccountService(account_store, verifier=verifier, envelope_cipher=envelope_cipher)


@pytest.fixture
def messenger(directory, message_store) -> Messenger:
    return Messenger(directory, message_store, max_workers=4)


@pytest.fixture
def make_custodian(temp_dir: Path):
    """Factory for key custodians, one key file per device name."""

    def _make(device: str) -> KeyCustodian:
        return KeyCustodian(temp_dir / device / "keypair.json")

    return _make


# Pytest marks
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# Test collection hooks
def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
