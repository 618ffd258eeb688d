"""
deals/manager.py - Deal operations against the ledger and compute network.

Mixer contract interface:
  newDeal(bytes32 dealId, uint256 amount, address[] participants)
  updateLastMixBlockNumber()
  lastMixBlockNumber() -> uint256
"""

import uuid

from eth_abi import encode as abi_encode
from eth_utils import decode_hex, encode_hex, keccak

from chains.block import BlockCountdown, compute_countdown, fetch_block_height
from chains.ledger import ContractCall, LedgerClient, TxOpts
from core.constants import (
    DEALS_COLLECTION,
    EXECUTE_DEAL_BASE_GAS_UNIT,
    EXECUTE_DEAL_GAS_PRICE,
    EXECUTE_DEAL_PARTICIPANT_GAS_UNIT,
    DealStatus,
)
from core.exceptions import InvalidTransitionError, ValidationError
from core.logging import get_logger
from core.math import task_gas_limit, to_grains
from core.models import Deal, Deposit, ExecutionReceipt, TaskRecordOpts, TxReceipt
from core.time import now_iso
from deals.registry import DepositRegistry
from enclave.client import ComputeClient
from storage.store import Store

logger = get_logger(__name__)

LAST_MIX_BLOCK_QUERY = ContractCall("lastMixBlockNumber")
UPDATE_LAST_MIX_BLOCK_CALL = ContractCall("updateLastMixBlockNumber")


def new_deal_call(deal_id: str, amount: int, participants: list[str]) -> ContractCall:
    return ContractCall(
        name="newDeal",
        arg_types=("bytes32", "uint256", "address[]"),
        args=(decode_hex(deal_id), amount, list(participants)),
    )


def generate_deal_id(amount: int, participants: list[str]) -> str:
    """Random bytes32 deal id bound to the deal's amount and participants."""
    nonce = uuid.uuid4().int
    packed = abi_encode(["uint256", "address[]", "uint256"], [amount, list(participants), nonce])
    return encode_hex(keccak(packed))


def execution_task_opts(nb_participants: int) -> TaskRecordOpts:
    """Task gas budget for executing a deal of nb_participants."""
    return TaskRecordOpts(
        task_gas_limit=task_gas_limit(
            EXECUTE_DEAL_BASE_GAS_UNIT,
            EXECUTE_DEAL_PARTICIPANT_GAS_UNIT,
            nb_participants,
        ),
        task_gas_px=to_grains(EXECUTE_DEAL_GAS_PRICE),
    )


class DealManager:
    """
    Creates, executes and verifies deals.

    Usage:
        manager = DealManager(ledger, compute, store, registry, deal_interval_blocks=5)
        deal = await manager.create_deal(amount, deposits)
        deal = await manager.execute_deal(deal, deposits, execution_task_opts(len(deposits)))
    """

    def __init__(
        self,
        ledger: LedgerClient,
        compute: ComputeClient,
        store: Store,
        registry: DepositRegistry,
        deal_interval_blocks: int,
        tx_opts: TxOpts | None = None,
    ):
        self.ledger = ledger
        self.compute = compute
        self.store = store
        self.registry = registry
        self.deal_interval_blocks = deal_interval_blocks
        self.tx_opts = tx_opts or TxOpts()

    # -------------------------------------------------------------------------
    # Countdown
    # -------------------------------------------------------------------------

    async def get_last_mix_block(self) -> int:
        (last_mix_block,) = await self.ledger.query_contract_state(LAST_MIX_BLOCK_QUERY, ("uint256",))
        return int(last_mix_block)

    async def get_blocks_until_mix(self) -> BlockCountdown:
        current_height = await fetch_block_height(self.ledger)
        last_mix_block = await self.get_last_mix_block()
        return compute_countdown(current_height, last_mix_block, self.deal_interval_blocks)

    async def update_last_mix_block(self) -> TxReceipt:
        receipt = await self.ledger.submit_transaction(UPDATE_LAST_MIX_BLOCK_CALL, self.tx_opts)
        logger.info(
            "Last mix block updated",
            extra={"context": {"block_number": receipt.block_number, "tx_hash": receipt.tx_hash}},
        )
        return receipt

    # -------------------------------------------------------------------------
    # Deals
    # -------------------------------------------------------------------------

    async def create_deal(self, amount: int, deposits: list[Deposit]) -> Deal:
        """
        Submit the deal creation transaction, persist the deal and consume its deposits.

        Raises:
            ValidationError: If deposits is empty or not amount-homogeneous
            InfraError: If the ledger transaction fails
        """
        if not deposits:
            raise ValidationError("Cannot create a deal without deposits")
        amounts = {d.amount for d in deposits}
        if amounts != {amount}:
            raise ValidationError(
                "Deal deposits must all match the deal amount",
                details={"amount": amount, "deposit_amounts": sorted(amounts)},
            )

        participants = [d.sender for d in deposits]
        deal_id = generate_deal_id(amount, participants)

        receipt = await self.ledger.submit_transaction(
            new_deal_call(deal_id, amount, participants),
            self.tx_opts,
        )

        deal = Deal(
            id=deal_id,
            deposit_ids=[d.id for d in deposits],
            participants=participants,
            amount=amount,
            ledger_receipt=receipt,
        )
        await self.store.put(DEALS_COLLECTION, deal.id, deal.to_dict())
        await self.registry.mark_consumed(deal.deposit_ids, deal.id)

        logger.info(
            "Deal created",
            extra={"context": {
                "deal_id": deal.id,
                "participants": deal.nb_participants,
                "amount": str(amount),
                "tx_hash": receipt.tx_hash,
            }},
        )
        return deal

    async def execute_deal(
        self,
        deal: Deal,
        deposits: list[Deposit],
        opts: TaskRecordOpts,
    ) -> Deal:
        """
        Submit a created deal for confidential execution.

        The deal becomes EXECUTED, or FAILED when the receipt reports failure.
        Exceptions propagate and leave the deal CREATED.
        """
        if deal.is_terminal:
            raise InvalidTransitionError(
                f"Deal {deal.id} is already {deal.status.value}",
                details={"deal_id": deal.id},
            )

        receipt = await self.compute.submit_for_execution(deal, deposits, opts)

        deal.execution_receipt = receipt
        if receipt.succeeded:
            deal.status = DealStatus.EXECUTED
            deal.executed_at = now_iso()
        else:
            deal.status = DealStatus.FAILED
        await self.store.put(DEALS_COLLECTION, deal.id, deal.to_dict())

        logger.info(
            f"Deal execution {deal.status.value}",
            extra={"context": {
                "deal_id": deal.id,
                "task_id": receipt.task_id,
                "task_gas_limit": opts.task_gas_limit,
            }},
        )
        return deal

    async def verify_deposits(
        self,
        amount: int,
        deposits: list[Deposit],
        opts: TaskRecordOpts,
    ) -> ExecutionReceipt:
        receipt = await self.compute.submit_for_verification(amount, deposits, opts)
        logger.info(
            "Deposits verified",
            extra={"context": {
                "deposits": len(deposits),
                "task_id": receipt.task_id,
                "status": receipt.status,
            }},
        )
        return receipt

    async def get_deal(self, deal_id: str) -> Deal | None:
        document = await self.store.get(DEALS_COLLECTION, deal_id)
        return Deal.from_dict(document) if document else None

    async def fetch_deals(self, status: DealStatus | None = None) -> list[Deal]:
        deals = [Deal.from_dict(d) for d in await self.store.list(DEALS_COLLECTION)]
        if status is not None:
            deals = [d for d in deals if d.status == status]
        return deals
