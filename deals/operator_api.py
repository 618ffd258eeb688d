"""
deals/operator_api.py - Outward operator capabilities.

Every query and command returns an OperatorAction, the message a transport
layer forwards to clients as {"action": ..., "payload": ...}. Subscription
callbacks receive OperatorActions as well.
"""

from typing import Any, Callable

from eth_utils import decode_hex

from chains.ledger import LedgerClient, RPCLedgerClient, TxOpts
from chains.providers import RPCProvider
from config.settings import OperatorConfig
from core.constants import ActionType, Topic
from core.exceptions import SaladError, ValidationError
from core.logging import get_logger
from core.models import OperatorAction
from deals.manager import DealManager
from deals.registry import DepositRegistry
from deals.scheduler import CountdownScheduler
from deals.state_machine import DealLifecycle
from enclave.client import ComputeClient, RPCComputeClient
from enclave.keys import EncryptionKeyBootstrapper
from events.broadcaster import Event, EventBroadcaster
from storage.store import Store, create_store

logger = get_logger(__name__)

ActionCallback = Callable[[OperatorAction], None]


def _as_bytes(value: bytes | str, field_name: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    try:
        return decode_hex(value)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{field_name} must be bytes or a hex string") from e


class OperatorApi:
    """
    Facade over the registry, deal manager, key bootstrapper and scheduler.

    Usage:
        api = build_operator(load_operator_config())
        await api.init()
        await api.activate()
        await api.scheduler.run()
    """

    def __init__(
        self,
        config: OperatorConfig,
        store: Store,
        broadcaster: EventBroadcaster,
        ledger: LedgerClient,
        compute: ComputeClient,
        registry: DepositRegistry,
        manager: DealManager,
        keys: EncryptionKeyBootstrapper,
        lifecycle: DealLifecycle,
        scheduler: CountdownScheduler,
        providers: list[RPCProvider] | None = None,
    ):
        self.config = config
        self.store = store
        self.broadcaster = broadcaster
        self.ledger = ledger
        self.compute = compute
        self.registry = registry
        self.manager = manager
        self.keys = keys
        self.lifecycle = lifecycle
        self.scheduler = scheduler
        self.providers = providers or []

    # -------------------------------------------------------------------------
    # Deposits
    # -------------------------------------------------------------------------

    async def submit_deposit_metadata(
        self,
        sender: str,
        amount: int | str,
        public_key: bytes | str,
        encrypted_recipient: bytes | str,
        signature: bytes | str,
    ) -> OperatorAction:
        """
        Register a deposit.

        Rejected registrations are returned as {"err": ..., "code": ...}
        rather than raised.
        """
        try:
            try:
                amount = int(amount)
            except (ValueError, TypeError) as e:
                raise ValidationError(f"Invalid deposit amount: {amount}") from e

            deposit = await self.registry.register_deposit(
                sender=sender,
                amount=amount,
                public_key=_as_bytes(public_key, "public_key"),
                encrypted_recipient=_as_bytes(encrypted_recipient, "encrypted_recipient"),
                signature=_as_bytes(signature, "signature"),
            )
        except SaladError as e:
            logger.warning(
                f"Deposit rejected: {e.message}",
                extra={"context": {"sender": sender, "error_code": e.code.value}},
            )
            return OperatorAction(
                ActionType.SUBMIT_DEPOSIT_METADATA_RESULT,
                {"err": e.message, "code": e.code.value},
            )

        return OperatorAction(
            ActionType.SUBMIT_DEPOSIT_METADATA_RESULT,
            {"deposit": deposit.to_dict()},
        )

    async def fetch_fillable_deposits(self, minimum_amount: int = 0) -> OperatorAction:
        deposits = await self.registry.fetch_fillable_deposits(minimum_amount)
        return OperatorAction(
            ActionType.FETCH_FILLABLE_SUCCESS,
            {"deposits": [d.to_dict() for d in deposits]},
        )

    async def fetch_quorum(self, minimum_amount: int = 0) -> OperatorAction:
        quorum = await self.registry.compute_quorum(minimum_amount)
        return OperatorAction(ActionType.QUORUM_UPDATE, {"quorum": quorum})

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def get_threshold(self) -> OperatorAction:
        """Broadcast and return the participation threshold."""
        payload = {"threshold": self.lifecycle.threshold}
        self.broadcaster.emit(Topic.THRESHOLD_INFO, payload)
        return OperatorAction(ActionType.THRESHOLD_UPDATE, payload)

    async def fetch_config(self) -> OperatorAction:
        """Client configuration, waiting for the encryption key if needed."""
        pub_key = await self.keys.load_encryption_key()
        return OperatorAction(
            ActionType.FETCH_CONFIG_SUCCESS,
            {
                "config": {
                    "saladContractAddr": self.config.salad_contract_address,
                    "secretContractAddr": self.config.secret_contract_address,
                    "pubKeyData": pub_key.to_dict(),
                    "threshold": self.lifecycle.threshold,
                },
            },
        )

    # -------------------------------------------------------------------------
    # Deal lifecycle
    # -------------------------------------------------------------------------

    async def refresh_countdown(self) -> OperatorAction:
        countdown = await self.scheduler.refresh_countdown()
        return OperatorAction(ActionType.BLOCK_UPDATE, {"blockCountdown": countdown.remaining})

    async def load_encryption_key(self) -> OperatorAction:
        pub_key = await self.keys.load_encryption_key()
        return OperatorAction(ActionType.PUB_KEY_UPDATE, {"pubKeyData": pub_key.to_dict()})

    async def handle_deal_execution(self) -> OperatorAction:
        """Run the deal lifecycle immediately, regardless of the countdown."""
        run = await self.scheduler.run_lifecycle()
        return OperatorAction(
            ActionType.DEAL_EXECUTION_RESULT,
            {"run": run.to_dict() if run else None, "error": self.scheduler.last_error},
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def _subscribe(self, topic: Topic, action: ActionType, callback: ActionCallback) -> Callable[[], None]:
        def handler(event: Event) -> None:
            callback(OperatorAction(action, event.payload))

        return self.broadcaster.subscribe(topic, handler)

    def on_pub_key(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.PUB_KEY_READY, ActionType.PUB_KEY_UPDATE, callback)

    def on_deal_created(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.DEAL_CREATED, ActionType.DEAL_CREATED_UPDATE, callback)

    def on_deal_executed(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.DEAL_EXECUTED, ActionType.DEAL_EXECUTED_UPDATE, callback)

    def on_quorum_update(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.QUORUM_CHANGED, ActionType.QUORUM_UPDATE, callback)

    def on_quorum_not_reached(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.QUORUM_NOT_REACHED, ActionType.QUORUM_NOT_REACHED_UPDATE, callback)

    def on_block(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.COUNTDOWN_TICK, ActionType.BLOCK_UPDATE, callback)

    def on_threshold(self, callback: ActionCallback) -> Callable[[], None]:
        return self._subscribe(Topic.THRESHOLD_INFO, ActionType.THRESHOLD_UPDATE, callback)

    # -------------------------------------------------------------------------
    # Service lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> None:
        await self.store.init()
        logger.info(
            "Operator initialized",
            extra={"context": {"threshold": self.lifecycle.threshold, "store": type(self.store).__name__}},
        )

    async def activate(self) -> None:
        """Load the encryption key, then start the countdown scheduler."""
        await self.scheduler.activate()

    def deactivate(self) -> None:
        self.scheduler.deactivate()

    async def shutdown(self) -> None:
        self.scheduler.deactivate()
        await self.ledger.close()
        await self.compute.close()
        await self.store.close()
        logger.info("Operator shut down")

    def get_rpc_stats(self) -> dict[str, Any]:
        return {p.name: p.get_stats_summary() for p in self.providers}


def build_operator(config: OperatorConfig) -> OperatorApi:
    """Wire an operator from configuration."""
    store = create_store(config.store_path)
    broadcaster = EventBroadcaster()

    ledger_provider = RPCProvider("ledger", config.ledger_rpc_urls, config.ledger_timeout_seconds)
    compute_provider = RPCProvider("enigma", [config.enigma_url], config.enigma_timeout_seconds)

    ledger = RPCLedgerClient(
        ledger_provider,
        config.salad_contract_address,
        account_index=config.account_index,
        receipt_poll_seconds=config.receipt_poll_seconds,
        receipt_max_polls=config.receipt_max_polls,
    )
    compute = RPCComputeClient(compute_provider, config.secret_contract_address)

    registry = DepositRegistry(store, broadcaster, quorum_minimum_amount=config.minimum_amount)
    manager = DealManager(
        ledger,
        compute,
        store,
        registry,
        deal_interval_blocks=config.deal_interval_blocks,
        tx_opts=TxOpts(gas=config.tx_gas_limit, gas_price=config.gas_price_wei),
    )
    keys = EncryptionKeyBootstrapper(store, compute, broadcaster, policy=config.key_fetch)
    lifecycle = DealLifecycle(
        registry,
        manager,
        broadcaster,
        threshold=config.threshold,
        minimum_amount=config.minimum_amount,
    )
    scheduler = CountdownScheduler(
        manager,
        lifecycle,
        broadcaster,
        keys,
        poll_interval_seconds=config.poll_interval_seconds,
    )

    return OperatorApi(
        config=config,
        store=store,
        broadcaster=broadcaster,
        ledger=ledger,
        compute=compute,
        registry=registry,
        manager=manager,
        keys=keys,
        lifecycle=lifecycle,
        scheduler=scheduler,
        providers=[ledger_provider, compute_provider],
    )
