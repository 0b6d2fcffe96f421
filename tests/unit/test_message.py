"""
Unit tests for cipherchat.message module.

Tests ciphertext record construction and wire encoding.
"""

import pytest

from cipherchat.message import DirectedCiphertextRecord, SealedMessage


def make_record(**overrides):
    fields = dict(
        sender="alice",
        recipient="bob",
        ciphertext=b"\x00\x01ciphertext",
        nonce=b"\x02" * 12,
        sender_public_key=b"\x03" * 32,
    )
    fields.update(overrides)
    return DirectedCiphertextRecord(**fields)


class TestRecordDefaults:
    """Test generated identifiers and timestamps."""

    def test_ids_are_unique(self):
        assert make_record().id != make_record().id

    def test_timestamp_in_milliseconds(self):
        assert make_record().timestamp > 1_600_000_000_000

    def test_records_are_immutable(self):
        record = make_record()
        with pytest.raises(AttributeError):
            record.recipient = "mallory"


class TestWireFormat:
    """Test dictionary encoding used by the stores."""

    def test_to_dict_fields(self):
        data = make_record(timestamp=1234, id="abc").to_dict()

        assert data == {
            "id": "abc",
            "sender": "alice",
            "recipient": "bob",
            "encryptedMessage": "AAFjaXBoZXJ0ZXh0",
            "nonce": "AgICAgICAgICAgIC",
            "senderPublicKey": "AwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwM=",
            "ts": 1234,
        }

    def test_from_dict_inverts_to_dict(self):
        record = make_record()

        assert DirectedCiphertextRecord.from_dict(record.to_dict()) == record

    def test_from_dict_rejects_bad_base64(self):
        data = make_record().to_dict()
        data["nonce"] = "***"

        with pytest.raises(ValueError):
            DirectedCiphertextRecord.from_dict(data)

    def test_from_dict_rejects_missing_field(self):
        data = make_record().to_dict()
        del data["senderPublicKey"]

        with pytest.raises(ValueError):
            DirectedCiphertextRecord.from_dict(data)


class TestSealedMessage:
    """Test addressing a codec output."""

    def test_address(self):
        sealed = SealedMessage(
            recipient_public_key=b"r" * 32,
            ciphertext=b"c",
            nonce=b"n" * 12,
            sender_public_key=b"s" * 32,
        )

        record = sealed.address("alice", "bob")

        assert (record.sender, record.recipient) == ("alice", "bob")
        assert record.ciphertext == b"c"
        assert record.nonce == b"n" * 12
        assert record.sender_public_key == b"s" * 32
