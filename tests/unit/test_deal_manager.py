"""
tests/unit/test_deal_manager.py - Deal manager tests.
"""

import pytest
from eth_utils import decode_hex

from core.constants import DealStatus, DepositStatus
from core.exceptions import InvalidTransitionError, TransientNetworkError, ValidationError
from deals.manager import (
    DealManager,
    LAST_MIX_BLOCK_QUERY,
    execution_task_opts,
    generate_deal_id,
    new_deal_call,
)
from deals.registry import DepositRegistry


@pytest.fixture
def registry(store, broadcaster):
    return DepositRegistry(store, broadcaster)


@pytest.fixture
def manager(ledger, compute, store, registry):
    return DealManager(ledger, compute, store, registry, deal_interval_blocks=5)


async def register(registry, signed_deposit, *amounts):
    return [await registry.register_deposit(**signed_deposit(amount=a)) for a in amounts]


class TestContractCalls:
    def test_last_mix_block_selector(self):
        assert LAST_MIX_BLOCK_QUERY.signature == "lastMixBlockNumber()"
        assert len(decode_hex(LAST_MIX_BLOCK_QUERY.encode())) == 4

    def test_new_deal_encoding(self):
        deal_id = "0x" + "11" * 32
        participants = ["0x5FbDB2315678afecb367f032d93F642f64180aa3"]

        call = new_deal_call(deal_id, 10, participants)
        data = decode_hex(call.encode())

        assert call.signature == "newDeal(bytes32,uint256,address[])"
        assert data[4:36] == decode_hex(deal_id)
        assert int.from_bytes(data[36:68], "big") == 10

    def test_deal_ids_are_unique(self):
        participants = ["0x5FbDB2315678afecb367f032d93F642f64180aa3"]

        first = generate_deal_id(10, participants)
        second = generate_deal_id(10, participants)

        assert first != second
        assert len(decode_hex(first)) == 32

    def test_execution_task_opts(self):
        opts = execution_task_opts(2)

        assert opts.task_gas_limit == 3_000_000 + 24_000_000 * 2
        assert opts.task_gas_px == 100_000
        assert opts.to_dict() == {"taskGasLimit": 51_000_000, "taskGasPx": 100_000}


class TestCountdown:
    @pytest.mark.asyncio
    async def test_blocks_until_mix(self, manager, ledger):
        ledger.height = 103
        ledger.last_mix_block = 100

        countdown = await manager.get_blocks_until_mix()

        assert countdown.remaining == 2
        assert not countdown.deadline_reached

    @pytest.mark.asyncio
    async def test_update_last_mix_block(self, manager, ledger):
        ledger.height = 110

        receipt = await manager.update_last_mix_block()

        assert receipt.status
        assert await manager.get_last_mix_block() == 110


class TestCreateDeal:
    @pytest.mark.asyncio
    async def test_create_deal(self, manager, registry, ledger, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 10)

        deal = await manager.create_deal(10, deposits)

        assert deal.status == DealStatus.CREATED
        assert deal.deposit_ids == [d.id for d in deposits]
        assert deal.participants == [d.sender for d in deposits]
        assert deal.ledger_receipt is not None
        assert len(ledger.calls_named("newDeal")) == 1

        stored = await manager.get_deal(deal.id)
        assert stored.to_dict() == deal.to_dict()

        for deposit in deposits:
            consumed = await registry.get_deposit(deposit.id)
            assert consumed.status == DepositStatus.CONSUMED
            assert consumed.deal_id == deal.id

    @pytest.mark.asyncio
    async def test_empty_deposits_rejected(self, manager):
        with pytest.raises(ValidationError):
            await manager.create_deal(10, [])

    @pytest.mark.asyncio
    async def test_mixed_amounts_rejected(self, manager, registry, ledger, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 20)

        with pytest.raises(ValidationError):
            await manager.create_deal(10, deposits)

        assert ledger.transactions == []

    @pytest.mark.asyncio
    async def test_ledger_failure_leaves_deposits_fillable(self, manager, registry, ledger, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 10)
        ledger.failing_calls.add("newDeal")

        with pytest.raises(TransientNetworkError):
            await manager.create_deal(10, deposits)

        assert await registry.compute_quorum() == 2
        assert await manager.fetch_deals() == []


class TestExecuteDeal:
    @pytest.mark.asyncio
    async def test_execute_success(self, manager, registry, compute, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 10)
        deal = await manager.create_deal(10, deposits)

        deal = await manager.execute_deal(deal, deposits, execution_task_opts(2))

        assert deal.status == DealStatus.EXECUTED
        assert deal.executed_at
        assert deal.execution_receipt.task_id == "task-1"
        assert (await manager.get_deal(deal.id)).status == DealStatus.EXECUTED
        assert compute.executions[0][2].task_gas_limit == 51_000_000

    @pytest.mark.asyncio
    async def test_failed_receipt_marks_failed(self, manager, registry, compute, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 10)
        deal = await manager.create_deal(10, deposits)
        compute.execution_status = "FAILED"

        deal = await manager.execute_deal(deal, deposits, execution_task_opts(2))

        assert deal.status == DealStatus.FAILED
        assert await manager.fetch_deals(DealStatus.FAILED) == [deal]

    @pytest.mark.asyncio
    async def test_exception_leaves_deal_created(self, manager, registry, compute, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 10)
        deal = await manager.create_deal(10, deposits)
        compute.execution_error = TransientNetworkError("enclave offline")

        with pytest.raises(TransientNetworkError):
            await manager.execute_deal(deal, deposits, execution_task_opts(2))

        assert (await manager.get_deal(deal.id)).status == DealStatus.CREATED

    @pytest.mark.asyncio
    async def test_terminal_deal_not_executed_again(self, manager, registry, compute, signed_deposit):
        deposits = await register(registry, signed_deposit, 10, 10)
        deal = await manager.create_deal(10, deposits)
        deal = await manager.execute_deal(deal, deposits, execution_task_opts(2))

        with pytest.raises(InvalidTransitionError):
            await manager.execute_deal(deal, deposits, execution_task_opts(2))

        assert len(compute.executions) == 1


class TestVerifyDeposits:
    @pytest.mark.asyncio
    async def test_verify(self, manager, registry, compute, signed_deposit):
        deposits = await register(registry, signed_deposit, 10)

        receipt = await manager.verify_deposits(10, deposits, execution_task_opts(1))

        assert receipt.task_id == "verify-1"
        assert compute.verifications[0][0] == 10
