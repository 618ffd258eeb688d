"""
chains/ledger.py - Ledger client capability.

The operator never signs transactions itself: it asks the ledger node to
send them from a node-managed account (eth_sendTransaction) and waits for
the receipt. Contract calls are ABI-encoded here.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, to_checksum_address

from chains.providers import RPCProvider
from core.constants import (
    DEFAULT_RECEIPT_MAX_POLLS,
    DEFAULT_RECEIPT_POLL_SECONDS,
    DEFAULT_TX_GAS_LIMIT,
    ErrorCode,
)
from core.exceptions import ConfigError, TransactionRevertedError, TransientNetworkError
from core.logging import get_logger
from core.models import TxReceipt

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContractCall:
    """A contract function call, e.g. newDeal(bytes32,uint256,address[])."""
    name: str
    arg_types: tuple[str, ...] = ()
    args: tuple[Any, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.arg_types)})"

    def encode(self) -> str:
        """0x-prefixed call data: 4-byte selector + ABI encoded arguments."""
        selector = function_signature_to_4byte_selector(self.signature)
        return encode_hex(selector + abi_encode(list(self.arg_types), list(self.args)))


@dataclass(frozen=True)
class TxOpts:
    """Ledger transaction options."""
    gas: int = DEFAULT_TX_GAS_LIMIT
    gas_price: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class LedgerClient(ABC):
    """Capabilities the operator needs from the ledger."""

    @abstractmethod
    async def get_height(self) -> int:
        """Current block height."""

    @abstractmethod
    async def submit_transaction(self, call: ContractCall, opts: TxOpts | None = None) -> TxReceipt:
        """Send a contract transaction and wait until it is mined."""

    @abstractmethod
    async def query_contract_state(self, call: ContractCall, output_types: tuple[str, ...]) -> tuple:
        """Read-only contract call, decoded with output_types."""

    async def close(self) -> None:
        """Release network resources."""


class RPCLedgerClient(LedgerClient):
    """
    LedgerClient over Ethereum JSON-RPC.

    Usage:
        provider = RPCProvider("ledger", ["http://localhost:8545"])
        ledger = RPCLedgerClient(provider, salad_contract_address)
        height = await ledger.get_height()
    """

    def __init__(
        self,
        provider: RPCProvider,
        contract_address: str,
        account_index: int = 0,
        sender: str | None = None,
        receipt_poll_seconds: float = DEFAULT_RECEIPT_POLL_SECONDS,
        receipt_max_polls: int = DEFAULT_RECEIPT_MAX_POLLS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.contract_address = to_checksum_address(contract_address)
        self.account_index = account_index
        self._sender = to_checksum_address(sender) if sender else None
        self.receipt_poll_seconds = receipt_poll_seconds
        self.receipt_max_polls = receipt_max_polls
        self._sleep = sleep

    async def get_sender(self) -> str:
        """Operator account, resolved once from eth_accounts."""
        if self._sender is None:
            accounts = await self.provider.get_accounts()
            if self.account_index >= len(accounts):
                raise ConfigError(
                    f"Operator account index {self.account_index} out of range",
                    details={"accounts": len(accounts)},
                )
            self._sender = to_checksum_address(accounts[self.account_index])
            logger.info(
                "Operator account resolved",
                extra={"context": {"sender": self._sender, "account_index": self.account_index}},
            )
        return self._sender

    async def get_height(self) -> int:
        block_number, latency_ms = await self.provider.get_block_number()
        logger.debug(f"Fetched block {block_number} (latency={latency_ms}ms)")
        return block_number

    async def submit_transaction(self, call: ContractCall, opts: TxOpts | None = None) -> TxReceipt:
        opts = opts or TxOpts()
        tx: dict[str, Any] = {
            "from": await self.get_sender(),
            "to": self.contract_address,
            "data": call.encode(),
            "gas": hex(opts.gas),
            **opts.extra,
        }
        if opts.gas_price is not None:
            tx["gasPrice"] = hex(opts.gas_price)

        tx_hash = await self.provider.send_transaction(tx)
        logger.info(
            f"Transaction sent: {call.name}",
            extra={"context": {"tx_hash": tx_hash, "signature": call.signature}},
        )

        receipt = await self._wait_for_receipt(tx_hash)
        if not receipt.status:
            raise TransactionRevertedError(
                f"Transaction {call.name} reverted",
                details={"tx_hash": tx_hash, "block_number": receipt.block_number},
            )
        return receipt

    async def _wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        for _ in range(self.receipt_max_polls):
            raw = await self.provider.get_transaction_receipt(tx_hash)
            if raw:
                return TxReceipt(
                    tx_hash=tx_hash,
                    block_number=int(raw["blockNumber"], 16),
                    status=int(raw.get("status", "0x1"), 16) == 1,
                    gas_used=int(raw.get("gasUsed", "0x0"), 16),
                )
            await self._sleep(self.receipt_poll_seconds)

        raise TransientNetworkError(
            f"Transaction {tx_hash} not mined after {self.receipt_max_polls} polls",
            code=ErrorCode.INFRA_TIMEOUT,
            details={"tx_hash": tx_hash},
        )

    async def query_contract_state(self, call: ContractCall, output_types: tuple[str, ...]) -> tuple:
        response = await self.provider.eth_call(self.contract_address, call.encode())
        if not response.result or response.result == "0x":
            raise TransientNetworkError(
                f"Empty response from {call.signature}",
                details={"contract": self.contract_address},
            )
        return tuple(abi_decode(list(output_types), decode_hex(response.result)))

    async def close(self) -> None:
        await self.provider.close()
