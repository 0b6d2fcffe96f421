"""
CipherChat - Integration tests.

End-to-end workflows: registration, login with escrow recovery, sending to
several recipients and reading inboxes, all against SQLite storage.
"""

import base64

import pytest

from cipherchat.account import AccountService
from cipherchat.credentials import CredentialVerifier
from cipherchat.errors import AccountError, AuthenticationFailure, ErrorCode
from cipherchat.keys import AsymmetricKeyPair


class SpyEnvelopeCipher:
    """Wraps a real cipher and counts unwrap attempts."""

    def __init__(self, inner):
        self.inner = inner
        self.unwrap_calls = 0

    def wrap(self, private_key, password):
        return self.inner.wrap(private_key, password)

    def unwrap(self, envelope, password):
        self.unwrap_calls += 1
        return self.inner.unwrap(envelope, password)


class CountingVerifier(CredentialVerifier):
    """Counts how many password checks actually run."""

    def __init__(self):
        super().__init__(time_cost=1, memory_cost=1024, parallelism=1)
        self.verify_calls = 0

    def verify(self, password, password_hash):
        self.verify_calls += 1
        return super().verify(password, password_hash)


def test_register_and_login_recovers_escrowed_key(account_service, account_store, make_custodian):
    """Alice registers with pw1; pw1 recovers her key, pw2 does not."""
    laptop = make_custodian("alice-laptop")
    account = account_service.register("alice", "pw1", laptop)
    a_pair = laptop.load_keypair()

    assert account.public_key == a_pair.public_bytes
    assert account_store.fetch("alice").public_key == a_pair.public_bytes

    recovered = account_service.login("alice", "pw1")
    assert recovered.private_bytes == a_pair.private_bytes

    with pytest.raises(AuthenticationFailure):
        account_service.login("alice", "pw2")


def test_stored_account_never_contains_private_key(account_service, account_store, make_custodian):
    laptop = make_custodian("alice-laptop")
    account_service.register("alice", "pw1", laptop)
    private = laptop.load_private_key()

    row = account_store.db.conn.execute("SELECT * FROM users").fetchone()
    stored = " ".join(str(v) for v in tuple(row))

    assert base64.b64encode(private).decode() not in stored


def test_login_on_new_device_adopts_key(account_service, make_custodian):
    laptop = make_custodian("alice-laptop")
    account_service.register("alice", "pw1", laptop)

    phone = make_custodian("alice-phone")
    account_service.login("alice", "pw1", phone)

    assert phone.load_private_key() == laptop.load_private_key()


def test_failed_login_never_unwraps(account_store, verifier, envelope_cipher, make_custodian):
    spy = SpyEnvelopeCipher(envelope_cipher)
    service = AccountService(account_store, verifier=verifier, envelope_cipher=spy)
    service.register("alice", "pw1", make_custodian("alice"))

    with pytest.raises(AuthenticationFailure):
        service.login("alice", "wrong")
    assert spy.unwrap_calls == 0

    service.login("alice", "pw1")
    assert spy.unwrap_calls == 1


def test_unknown_user_looks_like_wrong_password(account_service, make_custodian):
    account_service.register("alice", "pw1", make_custodian("alice"))

    with pytest.raises(AuthenticationFailure) as unknown:
        account_service.login("mallory", "pw1")
    with pytest.raises(AuthenticationFailure) as wrong:
        account_service.login("alice", "nope")

    assert str(unknown.value) == str(wrong.value)


def test_unknown_user_still_runs_a_password_check(account_store, envelope_cipher, make_custodian):
    verifier = CountingVerifier()
    service = AccountService(account_store, verifier=verifier, envelope_cipher=envelope_cipher)
    service.register("alice", "pw1", make_custodian("alice"))

    with pytest.raises(AuthenticationFailure):
        service.login("mallory", "pw1")
    assert verifier.verify_calls == 1

    with pytest.raises(AuthenticationFailure):
        service.login("alice", "nope")
    assert verifier.verify_calls == 2


def test_duplicate_registration_rejected(account_service, make_custodian):
    account_service.register("alice", "pw1", make_custodian("alice"))

    with pytest.raises(AccountError) as exc_info:
        account_service.register("alice", "other", make_custodian("impostor"))

    assert exc_info.value.code is ErrorCode.E402_ACCOUNT_ALREADY_EXISTS


@pytest.mark.parametrize("username", ["", "   ", "has space", "x" * 65, "semi;colon"])
def test_invalid_usernames_rejected(account_service, make_custodian, username):
    with pytest.raises(AccountError) as exc_info:
        account_service.register(username, "pw", make_custodian("device"))

    assert exc_info.value.code is ErrorCode.E403_INVALID_USERNAME


def test_empty_password_rejected(account_service, make_custodian):
    with pytest.raises(AccountError) as exc_info:
        account_service.register("alice", "", make_custodian("alice"))

    assert exc_info.value.code is ErrorCode.E404_INVALID_PASSWORD


def test_registration_reuses_existing_device_key(account_service, make_custodian):
    laptop = make_custodian("laptop")
    existing = laptop.ensure_keypair()

    account = account_service.register("alice", "pw1", laptop)

    assert account.public_key == existing.public_bytes


def test_mismatched_escrow_detected(account_service, account_store, envelope_cipher, make_custodian):
    account_service.register("alice", "pw1", make_custodian("alice"))
    stranger = AsymmetricKeyPair.generate()
    swapped = envelope_cipher.wrap(stranger.private_bytes, "pw1").to_json()
    account_store.db.conn.execute(
        "UPDATE users SET encryptedPrivateKey = ? WHERE username = 'alice'", (swapped,)
    )

    with pytest.raises(AccountError) as exc_info:
        account_service.login("alice", "pw1")

    assert exc_info.value.code is ErrorCode.E405_KEY_MISMATCH


def test_alice_sends_to_bob_and_carol(account_service, messenger, message_store, make_custodian):
    """Two records are produced, each readable only by its recipient."""
    devices = {name: make_custodian(name) for name in ("alice", "bob", "carol")}
    for name, custodian in devices.items():
        account_service.register(name, f"{name}-pw", custodian)
    alice = devices["alice"].load_keypair()

    result = messenger.send("alice", alice, "hello", ["bob", "carol"])

    assert result.ok
    assert len(result.records) == 2
    assert result.delivered["bob"].nonce != result.delivered["carol"].nonce

    bob_inbox = messenger.inbox("bob", devices["bob"].load_private_key())
    carol_inbox = messenger.inbox("carol", devices["carol"].load_private_key())
    assert [(e.record.sender, e.text) for e in bob_inbox] == [("alice", "hello")]
    assert [(e.record.sender, e.text) for e in carol_inbox] == [("alice", "hello")]
    assert bob_inbox[0].record.sender_public_key == alice.public_bytes

    # Carol's key cannot read Bob's copy
    wrong = messenger.inbox("bob", devices["carol"].load_private_key())
    assert [e.result.ok for e in wrong] == [False]
    assert wrong[0].text == "[Unable to decrypt]"


def test_history_readable_after_escrow_login(account_service, messenger, make_custodian):
    """Messages sent before a device change are readable with the recovered key."""
    account_service.register("alice", "a-pw", make_custodian("alice"))
    account_service.register("bob", "b-pw", make_custodian("bob-old"))
    alice = make_custodian("alice").load_keypair()

    messenger.send("alice", alice, "before the move", ["bob"])

    new_phone = make_custodian("bob-new")
    account_service.login("bob", "b-pw", new_phone)

    entries = messenger.inbox("bob", new_phone.load_private_key())
    assert [e.text for e in entries] == ["before the move"]


def test_partial_delivery_with_unknown_recipient(account_service, messenger, make_custodian):
    account_service.register("alice", "a-pw", make_custodian("alice"))
    account_service.register("bob", "b-pw", make_custodian("bob"))
    alice = make_custodian("alice").load_keypair()

    result = messenger.send("alice", alice, "hi", ["bob", "nobody"])

    assert list(result.delivered) == ["bob"]
    assert list(result.failures) == ["nobody"]
    assert len(messenger.inbox("bob", make_custodian("bob").load_private_key())) == 1


def test_damaged_row_shows_placeholder(account_service, messenger, message_store, make_custodian):
    account_service.register("alice", "a-pw", make_custodian("alice"))
    account_service.register("bob", "b-pw", make_custodian("bob"))
    alice = make_custodian("alice").load_keypair()
    first = messenger.send("alice", alice, "one", ["bob"]).delivered["bob"]
    messenger.send("alice", alice, "two", ["bob"])
    message_store.db.conn.execute(
        "UPDATE messages SET encryptedMessage = '!!notbase64!!' WHERE id = ?", (first.id,)
    )

    entries = messenger.inbox("bob", make_custodian("bob").load_private_key())

    assert len(entries) == 2
    assert [e.text for e in entries] == ["[Unable to decrypt]", "two"]
    assert entries[0].record.sender == "alice"
