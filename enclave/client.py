"""
enclave/client.py - Compute network capability.

The compute network holds the mixing secret contract. The operator only
submits inputs and reads receipts:
- enclave_getPubKey       -> {"publicKey": "0x..", "metadata": {...}} | null
- enclave_executeDeal     -> {"taskId": ..., "status": ..., "output": {...}}
- enclave_verifyDeposits  -> {"taskId": ..., "status": ..., "output": {...}}
"""

from abc import ABC, abstractmethod
from typing import Any

from eth_utils import encode_hex

from chains.providers import RPCProvider
from core.exceptions import TransientNetworkError
from core.logging import get_logger
from core.models import Deal, Deposit, ExecutionReceipt, PubKeyData, TaskRecordOpts

logger = get_logger(__name__)


def pack_encrypted_recipients(deposits: list[Deposit]) -> str:
    """Concatenate encrypted recipients in deal order, as the secret contract slices them."""
    return encode_hex(b"".join(d.encrypted_recipient for d in deposits))


class ComputeClient(ABC):
    """Capabilities the operator needs from the compute network."""

    @abstractmethod
    async def fetch_encryption_key(self, opts: TaskRecordOpts) -> PubKeyData | None:
        """Encryption public key, or None when not available yet."""

    @abstractmethod
    async def submit_for_execution(
        self,
        deal: Deal,
        deposits: list[Deposit],
        opts: TaskRecordOpts,
    ) -> ExecutionReceipt:
        """Run the mixing computation for a created deal."""

    @abstractmethod
    async def submit_for_verification(
        self,
        amount: int,
        deposits: list[Deposit],
        opts: TaskRecordOpts,
    ) -> ExecutionReceipt:
        """Prove fillability of sub-quorum deposits without creating a deal."""

    async def close(self) -> None:
        """Release network resources."""


class RPCComputeClient(ComputeClient):
    """ComputeClient over the compute node's JSON-RPC gateway."""

    def __init__(self, provider: RPCProvider, secret_contract_address: str):
        self.provider = provider
        self.secret_contract_address = secret_contract_address

    async def fetch_encryption_key(self, opts: TaskRecordOpts) -> PubKeyData | None:
        response = await self.provider.call(
            "enclave_getPubKey",
            [self.secret_contract_address, opts.to_dict()],
        )
        result = response.result
        if not result:
            return None
        if not isinstance(result, dict) or "publicKey" not in result:
            raise TransientNetworkError(
                "Malformed encryption key response",
                details={"result": str(result)[:100]},
            )
        return PubKeyData.from_dict({
            "public_key": result["publicKey"],
            "metadata": result.get("metadata") or {},
        })

    async def submit_for_execution(
        self,
        deal: Deal,
        deposits: list[Deposit],
        opts: TaskRecordOpts,
    ) -> ExecutionReceipt:
        args: dict[str, Any] = {
            "dealId": deal.id,
            "amount": str(deal.amount),
            "nbRecipients": len(deposits),
            "encRecipients": pack_encrypted_recipients(deposits),
            "pubKeys": [encode_hex(d.public_key) for d in deposits],
        }
        response = await self.provider.call(
            "enclave_executeDeal",
            [self.secret_contract_address, args, opts.to_dict()],
        )
        return self._to_receipt(response.result, "enclave_executeDeal")

    async def submit_for_verification(
        self,
        amount: int,
        deposits: list[Deposit],
        opts: TaskRecordOpts,
    ) -> ExecutionReceipt:
        args: dict[str, Any] = {
            "amount": str(amount),
            "nbDeposits": len(deposits),
            "senders": [d.sender for d in deposits],
            "encRecipients": pack_encrypted_recipients(deposits),
        }
        response = await self.provider.call(
            "enclave_verifyDeposits",
            [self.secret_contract_address, args, opts.to_dict()],
        )
        return self._to_receipt(response.result, "enclave_verifyDeposits")

    @staticmethod
    def _to_receipt(result: Any, method: str) -> ExecutionReceipt:
        if not isinstance(result, dict):
            raise TransientNetworkError(
                f"Malformed {method} response",
                details={"result": str(result)[:100]},
            )
        receipt = ExecutionReceipt.from_dict(result)
        logger.debug(
            "Compute task receipt",
            extra={"context": {"method": method, "task_id": receipt.task_id, "status": receipt.status}},
        )
        return receipt

    async def close(self) -> None:
        await self.provider.close()
