"""
deals/registry.py - Quorum/deposit registry.

Pipeline:
1. Verify the deposit signature against the declared sender
2. Persist the deposit as FILLABLE (registration order is kept)
3. Broadcast the new quorum

Quorum is never stored: it is recomputed from a snapshot of the deposits
collection on every query.
"""

import asyncio
import uuid
from collections import OrderedDict
from typing import Iterable

from eth_utils import to_checksum_address

from core.constants import DEPOSITS_COLLECTION, MAX_UINT256, DepositStatus, Topic
from core.exceptions import (
    DepositAlreadyConsumedError,
    DuplicateDepositError,
    ValidationError,
)
from core.logging import get_logger
from core.models import Deposit
from core.signing import verify_deposit_signature
from events.broadcaster import EventBroadcaster
from storage.store import Store

logger = get_logger(__name__)


class DepositRegistry:
    """
    Registry of deposits awaiting a deal.

    Mutations go through a single writer lock; reads are snapshot reads.
    """

    def __init__(
        self,
        store: Store,
        broadcaster: EventBroadcaster,
        quorum_minimum_amount: int = 0,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.quorum_minimum_amount = quorum_minimum_amount
        self._write_lock = asyncio.Lock()

    async def register_deposit(
        self,
        sender: str,
        amount: int,
        public_key: bytes,
        encrypted_recipient: bytes,
        signature: bytes,
    ) -> Deposit:
        """
        Verify and register a deposit.

        Raises:
            ValidationError: If the sender or amount is malformed
            InvalidSignatureError: If the signature does not authenticate sender
            DuplicateDepositError: If sender already has a fillable deposit of this amount
        """
        try:
            sender = to_checksum_address(sender)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid sender address: {sender}") from e

        amount = int(amount)
        if amount <= 0:
            raise ValidationError("Deposit amount must be positive", details={"amount": amount})
        if amount > MAX_UINT256:
            raise ValidationError("Deposit amount does not fit in uint256", details={"amount": str(amount)})

        verify_deposit_signature(sender, amount, encrypted_recipient, public_key, signature)

        async with self._write_lock:
            existing = await self._load_all()
            for other in existing:
                if other.is_fillable and other.sender == sender and other.amount == amount:
                    raise DuplicateDepositError(
                        f"Sender {sender} already has a fillable deposit of {amount}",
                        details={"deposit_id": other.id},
                    )

            deposit = Deposit(
                id=uuid.uuid4().hex,
                sender=sender,
                amount=amount,
                encrypted_recipient=bytes(encrypted_recipient),
                public_key=bytes(public_key),
                signature=bytes(signature),
                sequence=max((d.sequence for d in existing), default=0) + 1,
            )
            deposit.status = DepositStatus.FILLABLE
            await self.store.put(DEPOSITS_COLLECTION, deposit.id, deposit.to_dict())

        logger.info(
            "Registered deposit",
            extra={"context": {"deposit_id": deposit.id, "sender": sender, "amount": amount}},
        )

        quorum = await self.compute_quorum(self.quorum_minimum_amount)
        logger.debug("Broadcasting quorum update", extra={"context": {"quorum": quorum}})
        self.broadcaster.emit(Topic.QUORUM_CHANGED, {"quorum": quorum})

        return deposit

    async def _load_all(self) -> list[Deposit]:
        documents = await self.store.list(DEPOSITS_COLLECTION)
        deposits = [Deposit.from_dict(d) for d in documents]
        deposits.sort(key=lambda d: d.sequence)
        return deposits

    async def get_deposit(self, deposit_id: str) -> Deposit | None:
        document = await self.store.get(DEPOSITS_COLLECTION, deposit_id)
        return Deposit.from_dict(document) if document else None

    async def fetch_fillable_deposits(self, minimum_amount: int = 0) -> list[Deposit]:
        """FILLABLE deposits with amount >= minimum_amount, in registration order."""
        return [
            d for d in await self._load_all()
            if d.is_fillable and d.amount >= minimum_amount
        ]

    async def compute_quorum(self, minimum_amount: int = 0) -> int:
        return len(await self.fetch_fillable_deposits(minimum_amount))

    async def balance_fillable_deposits(self, minimum_amount: int = 0) -> list[Deposit]:
        """
        Amount-homogeneous batch of fillable deposits for the next deal.

        Deposits are grouped by amount; the largest group wins and ties go
        to the group whose first deposit registered earliest.
        """
        buckets: OrderedDict[int, list[Deposit]] = OrderedDict()
        for deposit in await self.fetch_fillable_deposits(minimum_amount):
            buckets.setdefault(deposit.amount, []).append(deposit)

        if not buckets:
            return []

        # max() keeps the first maximal bucket, i.e. the earliest registered
        return max(buckets.values(), key=len)

    async def mark_consumed(self, deposit_ids: Iterable[str], deal_id: str) -> list[Deposit]:
        """
        Transition deposits to CONSUMED under deal_id.

        Idempotent for the same deal.

        Raises:
            DepositAlreadyConsumedError: If a deposit belongs to another deal
            KeyError: If a deposit id is unknown
        """
        async with self._write_lock:
            # Validate the whole set before writing anything
            consumed = []
            for deposit_id in deposit_ids:
                document = await self.store.get(DEPOSITS_COLLECTION, deposit_id)
                if document is None:
                    raise KeyError(f"Unknown deposit: {deposit_id}")

                deposit = Deposit.from_dict(document)
                if deposit.status == DepositStatus.CONSUMED and deposit.deal_id != deal_id:
                    raise DepositAlreadyConsumedError(
                        f"Deposit {deposit_id} already consumed by deal {deposit.deal_id}",
                        details={"deposit_id": deposit_id, "deal_id": deposit.deal_id},
                    )
                consumed.append(deposit)

            for deposit in consumed:
                if deposit.status == DepositStatus.CONSUMED:
                    continue
                deposit.status = DepositStatus.CONSUMED
                deposit.deal_id = deal_id
                await self.store.put(DEPOSITS_COLLECTION, deposit.id, deposit.to_dict())

        logger.debug(
            "Deposits consumed",
            extra={"context": {"deal_id": deal_id, "count": len(consumed)}},
        )
        return consumed
