"""
Pytest configuration and fixtures for Salad operator tests.
"""

import os
import sys
from pathlib import Path

import pytest
from eth_account import Account

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chains.ledger import ContractCall, LedgerClient, TxOpts  # noqa: E402
from core.exceptions import TransientNetworkError  # noqa: E402
from core.models import ExecutionReceipt, PubKeyData, TxReceipt  # noqa: E402
from core.signing import sign_deposit  # noqa: E402
from enclave.client import ComputeClient  # noqa: E402
from events.broadcaster import EventBroadcaster  # noqa: E402
from storage.store import MemoryStore  # noqa: E402

SALAD_CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SECRET_CONTRACT = "0x" + "ab" * 32


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeLedger(LedgerClient):
    """In-memory ledger with a mixer contract."""

    def __init__(self, height: int = 100, last_mix_block: int = 100):
        self.height = height
        self.last_mix_block = last_mix_block
        self.transactions: list[ContractCall] = []
        self.failing_calls: set[str] = set()
        self.call_errors: dict[str, Exception] = {}
        self.height_error: Exception | None = None
        self.closed = False

    async def get_height(self) -> int:
        if self.height_error is not None:
            raise self.height_error
        return self.height

    async def submit_transaction(self, call: ContractCall, opts: TxOpts | None = None) -> TxReceipt:
        self.transactions.append(call)
        if call.name in self.call_errors:
            raise self.call_errors[call.name]
        if call.name in self.failing_calls:
            raise TransientNetworkError(f"{call.name} failed")
        if call.name == "updateLastMixBlockNumber":
            self.last_mix_block = self.height
        return TxReceipt(
            tx_hash="0x" + f"{len(self.transactions):064x}",
            block_number=self.height,
            status=True,
            gas_used=21_000,
        )

    async def query_contract_state(self, call: ContractCall, output_types: tuple[str, ...]) -> tuple:
        if call.name == "lastMixBlockNumber":
            return (self.last_mix_block,)
        raise TransientNetworkError(f"Unknown query {call.signature}")

    def calls_named(self, name: str) -> list[ContractCall]:
        return [c for c in self.transactions if c.name == name]

    async def close(self) -> None:
        self.closed = True


class FakeCompute(ComputeClient):
    """Compute network double; key responses are consumed in order."""

    def __init__(self, key_responses: list | None = None):
        self.key_responses = list(key_responses) if key_responses is not None else [
            PubKeyData(public_key=b"\x04" + b"\x11" * 64)
        ]
        self.key_calls = 0
        self.executions: list[tuple] = []
        self.verifications: list[tuple] = []
        self.execution_status = "SUCCESS"
        self.execution_error: Exception | None = None
        self.verification_error: Exception | None = None
        self.closed = False

    async def fetch_encryption_key(self, opts):
        self.key_calls += 1
        response = self.key_responses.pop(0) if self.key_responses else None
        if isinstance(response, Exception):
            raise response
        return response

    async def submit_for_execution(self, deal, deposits, opts):
        self.executions.append((deal, deposits, opts))
        if self.execution_error is not None:
            raise self.execution_error
        return ExecutionReceipt(task_id=f"task-{len(self.executions)}", status=self.execution_status)

    async def submit_for_verification(self, amount, deposits, opts):
        self.verifications.append((amount, deposits, opts))
        if self.verification_error is not None:
            raise self.verification_error
        return ExecutionReceipt(task_id=f"verify-{len(self.verifications)}")

    async def close(self) -> None:
        self.closed = True


class EventRecorder:
    """Collects broadcast events per topic."""

    def __init__(self, broadcaster: EventBroadcaster):
        self.events = []
        for topic in broadcaster._handlers:
            broadcaster.subscribe(topic, self.events.append)

    def topics(self) -> list[str]:
        return [e.topic.value for e in self.events]

    def payloads(self, topic) -> list[dict]:
        return [e.payload for e in self.events if e.topic == topic]


async def no_sleep(seconds: float) -> None:
    return None


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def recorder(broadcaster):
    return EventRecorder(broadcaster)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def compute():
    return FakeCompute()


@pytest.fixture
def signed_deposit():
    """
    Factory for register_deposit kwargs signed by a fresh account.

    Pass account= to reuse a participant.
    """

    def _make(amount: int = 10, account=None, recipient: bytes | None = None) -> dict:
        account = account or Account.create()
        encrypted_recipient = recipient or os.urandom(48)
        public_key = b"\x04" + os.urandom(64)
        signature = sign_deposit(
            account.key,
            account.address,
            amount,
            encrypted_recipient,
            public_key,
        )
        return {
            "sender": account.address,
            "amount": amount,
            "public_key": public_key,
            "encrypted_recipient": encrypted_recipient,
            "signature": signature,
        }

    return _make
