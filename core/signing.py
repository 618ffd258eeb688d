"""
core/signing.py - Deposit metadata signatures.

MESSAGE CONTRACT
================
  message = sender (20 bytes) || amount (uint256, big endian)
            || encrypted_recipient || public_key
  hash    = keccak256(message)

Clients sign `hash` as an Ethereum personal message
("\\x19Ethereum Signed Message:\\n32" + hash), which is what wallets such as
MetaMask produce for a 32-byte payload. The operator recovers the signer
and compares it to the declared sender.
================
"""

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak, to_canonical_address, to_checksum_address

from core.exceptions import InvalidSignatureError
from core.logging import get_logger

logger = get_logger(__name__)


def build_deposit_message(
    sender: str,
    amount: int,
    encrypted_recipient: bytes,
    public_key: bytes,
) -> bytes:
    """Pack deposit metadata into the signed message bytes."""
    return (
        to_canonical_address(sender)
        + int(amount).to_bytes(32, "big")
        + bytes(encrypted_recipient)
        + bytes(public_key)
    )


def deposit_message_hash(
    sender: str,
    amount: int,
    encrypted_recipient: bytes,
    public_key: bytes,
) -> bytes:
    """keccak256 of the packed deposit message."""
    return keccak(build_deposit_message(sender, amount, encrypted_recipient, public_key))


def recover_signer(message_hash: bytes, signature: bytes) -> str:
    """
    Recover the checksummed address that signed message_hash.

    Raises:
        InvalidSignatureError: If the signature is malformed
    """
    try:
        return Account.recover_message(
            encode_defunct(primitive=message_hash),
            signature=bytes(signature),
        )
    except (KeyValidationError, ValueError, TypeError) as e:
        raise InvalidSignatureError(
            f"Malformed signature: {e}",
            details={"signature_length": len(signature)},
        ) from e


def verify_deposit_signature(
    sender: str,
    amount: int,
    encrypted_recipient: bytes,
    public_key: bytes,
    signature: bytes,
) -> None:
    """
    Check that signature authenticates the deposit tuple for sender.

    Raises:
        InvalidSignatureError: If the recovered signer is not sender
    """
    message_hash = deposit_message_hash(sender, amount, encrypted_recipient, public_key)
    recovered = recover_signer(message_hash, signature)

    logger.debug(
        "Recovered deposit signer",
        extra={"context": {"sender": sender, "recovered": recovered}},
    )

    if recovered != to_checksum_address(sender):
        raise InvalidSignatureError(
            "Invalid signature",
            details={"sender": to_checksum_address(sender), "recovered": recovered},
        )


def sign_deposit(
    private_key: str | bytes,
    sender: str,
    amount: int,
    encrypted_recipient: bytes,
    public_key: bytes,
) -> bytes:
    """Sign deposit metadata the way a participant's wallet does."""
    message_hash = deposit_message_hash(sender, amount, encrypted_recipient, public_key)
    signed = Account.sign_message(encode_defunct(primitive=message_hash), private_key)
    return bytes(signed.signature)
