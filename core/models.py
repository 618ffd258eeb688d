# PATH: core/models.py
"""
Core data models for the Salad operator.

SERIALIZATION CONTRACT
======================
Every model round-trips through to_dict()/from_dict() so that it can be
persisted by any Store backend and forwarded to clients as JSON:
  - bytes fields are 0x-prefixed hex strings
  - addresses are EIP-55 checksummed
  - enums are their string values
  - amounts are ints (wei), never floats
======================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_utils import decode_hex, encode_hex, to_checksum_address

from core.constants import ActionType, DealStatus, DepositStatus
from core.time import now_iso


@dataclass
class Deposit:
    """A participant's registered intent to join a mix."""
    id: str
    sender: str
    amount: int
    encrypted_recipient: bytes
    public_key: bytes
    signature: bytes
    status: DepositStatus = DepositStatus.PENDING
    deal_id: Optional[str] = None
    sequence: int = 0
    registered_at: str = ""

    def __post_init__(self):
        self.sender = to_checksum_address(self.sender)
        if not self.registered_at:
            self.registered_at = now_iso()

    @property
    def is_fillable(self) -> bool:
        return self.status == DepositStatus.FILLABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "amount": str(self.amount),
            "encrypted_recipient": encode_hex(self.encrypted_recipient),
            "public_key": encode_hex(self.public_key),
            "signature": encode_hex(self.signature),
            "status": self.status.value,
            "deal_id": self.deal_id,
            "sequence": self.sequence,
            "registered_at": self.registered_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deposit":
        return cls(
            id=data["id"],
            sender=data["sender"],
            amount=int(data["amount"]),
            encrypted_recipient=decode_hex(data["encrypted_recipient"]),
            public_key=decode_hex(data["public_key"]),
            signature=decode_hex(data["signature"]),
            status=DepositStatus(data.get("status", DepositStatus.PENDING.value)),
            deal_id=data.get("deal_id"),
            sequence=int(data.get("sequence", 0)),
            registered_at=data.get("registered_at", ""),
        )


@dataclass
class TxReceipt:
    """Mined ledger transaction."""
    tx_hash: str
    block_number: int
    status: bool
    gas_used: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "status": self.status,
            "gas_used": self.gas_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TxReceipt":
        return cls(
            tx_hash=data["tx_hash"],
            block_number=int(data["block_number"]),
            status=bool(data["status"]),
            gas_used=int(data.get("gas_used", 0)),
        )


@dataclass
class ExecutionReceipt:
    """Compute network task receipt (execution or verification)."""
    task_id: str
    status: str = "SUCCESS"
    output: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status.upper() != "FAILED"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status,
            "output": self.output,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionReceipt":
        return cls(
            task_id=str(data.get("task_id") or data.get("taskId") or ""),
            status=str(data.get("status", "SUCCESS")),
            output=dict(data.get("output") or {}),
        )


@dataclass
class Deal:
    """A batch of deposits committed together for mixing."""
    id: str
    deposit_ids: List[str]
    participants: List[str]
    amount: int
    status: DealStatus = DealStatus.CREATED
    ledger_receipt: Optional[TxReceipt] = None
    execution_receipt: Optional[ExecutionReceipt] = None
    created_at: str = ""
    executed_at: Optional[str] = None

    def __post_init__(self):
        if not self.created_at:
            self.created_at = now_iso()

    @property
    def is_terminal(self) -> bool:
        return self.status in (DealStatus.EXECUTED, DealStatus.FAILED)

    @property
    def nb_participants(self) -> int:
        return len(self.deposit_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deposit_ids": list(self.deposit_ids),
            "participants": list(self.participants),
            "amount": str(self.amount),
            "status": self.status.value,
            "ledger_receipt": self.ledger_receipt.to_dict() if self.ledger_receipt else None,
            "execution_receipt": self.execution_receipt.to_dict() if self.execution_receipt else None,
            "created_at": self.created_at,
            "executed_at": self.executed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deal":
        ledger_receipt = data.get("ledger_receipt")
        execution_receipt = data.get("execution_receipt")
        return cls(
            id=data["id"],
            deposit_ids=list(data["deposit_ids"]),
            participants=list(data["participants"]),
            amount=int(data["amount"]),
            status=DealStatus(data.get("status", DealStatus.CREATED.value)),
            ledger_receipt=TxReceipt.from_dict(ledger_receipt) if ledger_receipt else None,
            execution_receipt=ExecutionReceipt.from_dict(execution_receipt) if execution_receipt else None,
            created_at=data.get("created_at", ""),
            executed_at=data.get("executed_at"),
        )


@dataclass(frozen=True)
class PubKeyData:
    """Encryption public key published by the compute network."""
    public_key: bytes
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "public_key": encode_hex(self.public_key),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PubKeyData":
        return cls(
            public_key=decode_hex(data["public_key"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class TaskRecordOpts:
    """Gas budget for a compute network task."""
    task_gas_limit: int
    task_gas_px: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskGasLimit": self.task_gas_limit,
            "taskGasPx": self.task_gas_px,
        }


@dataclass
class OperatorAction:
    """Message returned by every outward operator operation."""
    action: ActionType
    payload: Any = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "payload": self.payload}
