"""
tests/unit/test_signing.py - Deposit signature tests.
"""

import pytest
from eth_account import Account

from core.constants import ErrorCode
from core.exceptions import InvalidSignatureError
from core.signing import (
    build_deposit_message,
    deposit_message_hash,
    recover_signer,
    sign_deposit,
    verify_deposit_signature,
)

RECIPIENT = b"\x01" * 48
PUBKEY = b"\x04" + b"\x02" * 64


@pytest.fixture
def account():
    return Account.create()


class TestDepositMessage:
    def test_message_layout(self, account):
        message = build_deposit_message(account.address, 10, RECIPIENT, PUBKEY)

        assert len(message) == 20 + 32 + len(RECIPIENT) + len(PUBKEY)
        assert message[:20] == bytes.fromhex(account.address[2:])
        assert int.from_bytes(message[20:52], "big") == 10
        assert message[52:100] == RECIPIENT
        assert message[100:] == PUBKEY

    def test_hash_depends_on_amount(self, account):
        h1 = deposit_message_hash(account.address, 10, RECIPIENT, PUBKEY)
        h2 = deposit_message_hash(account.address, 11, RECIPIENT, PUBKEY)

        assert len(h1) == 32
        assert h1 != h2


class TestVerifyDepositSignature:
    def test_valid_signature_passes(self, account):
        signature = sign_deposit(account.key, account.address, 10, RECIPIENT, PUBKEY)

        verify_deposit_signature(account.address, 10, RECIPIENT, PUBKEY, signature)

    def test_lowercase_sender_accepted(self, account):
        signature = sign_deposit(account.key, account.address, 10, RECIPIENT, PUBKEY)

        verify_deposit_signature(account.address.lower(), 10, RECIPIENT, PUBKEY, signature)

    def test_recover_signer_returns_checksummed_address(self, account):
        signature = sign_deposit(account.key, account.address, 10, RECIPIENT, PUBKEY)
        message_hash = deposit_message_hash(account.address, 10, RECIPIENT, PUBKEY)

        assert recover_signer(message_hash, signature) == account.address

    def test_tampered_amount_rejected(self, account):
        signature = sign_deposit(account.key, account.address, 10, RECIPIENT, PUBKEY)

        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_deposit_signature(account.address, 11, RECIPIENT, PUBKEY, signature)

        assert exc_info.value.code == ErrorCode.INVALID_SIGNATURE

    def test_other_signer_rejected(self, account):
        impostor = Account.create()
        signature = sign_deposit(impostor.key, account.address, 10, RECIPIENT, PUBKEY)

        with pytest.raises(InvalidSignatureError) as exc_info:
            verify_deposit_signature(account.address, 10, RECIPIENT, PUBKEY, signature)

        assert exc_info.value.details["recovered"] == impostor.address

    def test_malformed_signature_rejected(self, account):
        with pytest.raises(InvalidSignatureError):
            verify_deposit_signature(account.address, 10, RECIPIENT, PUBKEY, b"\x00" * 12)
