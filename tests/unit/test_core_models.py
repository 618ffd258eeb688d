# PATH: tests/unit/test_core_models.py
"""
Unit tests for core data models.

Includes:
- Store serialization (to_dict / from_dict) for deposits and deals
- Address checksumming on construction
- Status helpers used by the registry and lifecycle
"""

import unittest

from core.constants import ActionType, DealStatus, DepositStatus
from core.models import (
    Deal,
    Deposit,
    ExecutionReceipt,
    OperatorAction,
    PubKeyData,
    TaskRecordOpts,
    TxReceipt,
)

LOWER_SENDER = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
CHECKSUM_SENDER = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def make_deposit(**overrides) -> Deposit:
    fields = dict(
        id="0x" + "11" * 32,
        sender=LOWER_SENDER,
        amount=10 ** 18,
        encrypted_recipient=b"\x01\x02\x03",
        public_key=b"\x04" * 64,
        signature=b"\x05" * 65,
    )
    fields.update(overrides)
    return Deposit(**fields)


class TestDeposit(unittest.TestCase):
    """Deposit model."""

    def test_sender_is_checksummed(self):
        deposit = make_deposit()
        self.assertEqual(deposit.sender, CHECKSUM_SENDER)

    def test_defaults(self):
        deposit = make_deposit()
        self.assertEqual(deposit.status, DepositStatus.PENDING)
        self.assertIsNone(deposit.deal_id)
        self.assertTrue(deposit.registered_at)
        self.assertFalse(deposit.is_fillable)

    def test_is_fillable(self):
        self.assertTrue(make_deposit(status=DepositStatus.FILLABLE).is_fillable)
        self.assertFalse(make_deposit(status=DepositStatus.CONSUMED).is_fillable)

    def test_to_dict_encodes_bytes_and_amount(self):
        data = make_deposit(status=DepositStatus.FILLABLE, sequence=3).to_dict()

        self.assertEqual(data["amount"], str(10 ** 18))
        self.assertEqual(data["encrypted_recipient"], "0x010203")
        self.assertEqual(data["status"], "FILLABLE")
        self.assertEqual(data["sequence"], 3)

    def test_from_dict_restores_fields(self):
        original = make_deposit(status=DepositStatus.CONSUMED, deal_id="0xdeal", sequence=7)
        restored = Deposit.from_dict(original.to_dict())

        self.assertEqual(restored, original)
        self.assertIsInstance(restored.encrypted_recipient, bytes)


class TestDeal(unittest.TestCase):
    """Deal model."""

    def _deal(self, **overrides) -> Deal:
        fields = dict(
            id="0x" + "22" * 32,
            deposit_ids=["a", "b"],
            participants=[CHECKSUM_SENDER, CHECKSUM_SENDER],
            amount=5,
        )
        fields.update(overrides)
        return Deal(**fields)

    def test_defaults(self):
        deal = self._deal()
        self.assertEqual(deal.status, DealStatus.CREATED)
        self.assertEqual(deal.nb_participants, 2)
        self.assertTrue(deal.created_at)
        self.assertFalse(deal.is_terminal)

    def test_terminal_statuses(self):
        self.assertTrue(self._deal(status=DealStatus.EXECUTED).is_terminal)
        self.assertTrue(self._deal(status=DealStatus.FAILED).is_terminal)

    def test_from_dict_with_receipts(self):
        deal = self._deal(
            status=DealStatus.EXECUTED,
            ledger_receipt=TxReceipt(tx_hash="0xabc", block_number=12, status=True, gas_used=21000),
            execution_receipt=ExecutionReceipt(task_id="0xtask", output={"ok": True}),
            executed_at="2026-01-01T00:00:00+00:00",
        )

        restored = Deal.from_dict(deal.to_dict())

        self.assertEqual(restored, deal)
        self.assertEqual(restored.ledger_receipt.block_number, 12)

    def test_from_dict_without_receipts(self):
        data = self._deal().to_dict()
        self.assertIsNone(data["ledger_receipt"])

        restored = Deal.from_dict(data)
        self.assertIsNone(restored.execution_receipt)


class TestReceipts(unittest.TestCase):
    """Receipt helpers."""

    def test_execution_succeeded(self):
        self.assertTrue(ExecutionReceipt(task_id="t").succeeded)
        self.assertFalse(ExecutionReceipt(task_id="t", status="FAILED").succeeded)
        self.assertFalse(ExecutionReceipt(task_id="t", status="failed").succeeded)

    def test_execution_from_camel_case(self):
        receipt = ExecutionReceipt.from_dict({"taskId": "0x1", "status": "SUCCESS"})
        self.assertEqual(receipt.task_id, "0x1")
        self.assertEqual(receipt.output, {})


class TestMessages(unittest.TestCase):
    """Wire-facing helpers."""

    def test_task_record_opts(self):
        opts = TaskRecordOpts(task_gas_limit=4_712_388, task_gas_px=100_000)
        self.assertEqual(opts.to_dict(), {"taskGasLimit": 4_712_388, "taskGasPx": 100_000})

    def test_pub_key_data(self):
        key = PubKeyData(public_key=b"\xaa\xbb", metadata={"worker": "w1"})
        self.assertEqual(key.to_dict()["public_key"], "0xaabb")
        self.assertEqual(PubKeyData.from_dict(key.to_dict()), key)

    def test_operator_action(self):
        action = OperatorAction(ActionType.QUORUM_UPDATE, {"quorum": 2})
        self.assertEqual(action.to_dict(), {"action": "QuorumChanged", "payload": {"quorum": 2}})


if __name__ == "__main__":
    unittest.main()
