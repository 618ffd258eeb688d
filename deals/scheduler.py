"""
deals/scheduler.py - Block countdown scheduler.

Polls the ledger every poll interval. When the countdown reaches zero the
deal lifecycle runs to completion before the next poll starts.
"""

import asyncio
from typing import Any, Awaitable, Callable

from chains.block import BlockCountdown
from core.constants import DEFAULT_POLL_INTERVAL_SECONDS, ServiceState, Topic
from core.exceptions import SaladError
from core.logging import get_logger
from core.time import now_iso
from deals.manager import DealManager
from deals.state_machine import DealLifecycle, LifecycleRun
from enclave.keys import EncryptionKeyBootstrapper
from events.broadcaster import EventBroadcaster

logger = get_logger(__name__)


class CountdownScheduler:
    """
    Runs the deal lifecycle each time the block countdown expires.

    Usage:
        scheduler = CountdownScheduler(manager, lifecycle, broadcaster, keys)
        await scheduler.activate()
        await scheduler.run()        # until deactivate()
    """

    def __init__(
        self,
        manager: DealManager,
        lifecycle: DealLifecycle,
        broadcaster: EventBroadcaster,
        key_bootstrapper: EncryptionKeyBootstrapper,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.manager = manager
        self.lifecycle = lifecycle
        self.broadcaster = broadcaster
        self.key_bootstrapper = key_bootstrapper
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._state = ServiceState.STOPPED
        self._tick_lock = asyncio.Lock()

        self.last_countdown: BlockCountdown | None = None
        self.last_tick_at: str | None = None
        self.last_error: str | None = None
        self.lifecycle_runs = 0
        self.ticks = 0

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    async def activate(self) -> None:
        """
        Start accepting ticks once the encryption key is cached.

        Raises:
            KeyUnavailableError: If the key could not be fetched
        """
        await self.key_bootstrapper.load_encryption_key()
        self._state = ServiceState.RUNNING
        logger.info(
            "Countdown scheduler activated",
            extra={"context": {"poll_interval_seconds": self.poll_interval_seconds}},
        )

    def deactivate(self) -> None:
        if self._state == ServiceState.RUNNING:
            logger.info("Countdown scheduler deactivated")
        self._state = ServiceState.STOPPED

    async def refresh_countdown(self) -> BlockCountdown:
        """Read the countdown from the ledger and broadcast it."""
        countdown = await self.manager.get_blocks_until_mix()
        self.last_countdown = countdown
        logger.debug(
            "Block countdown",
            extra={"context": countdown.to_dict()},
        )
        self.broadcaster.emit(Topic.COUNTDOWN_TICK, {"blockCountdown": countdown.remaining})
        return countdown

    async def tick(self) -> LifecycleRun | None:
        """
        One polling step.

        Returns the lifecycle run when the countdown expired, else None.
        Lifecycle errors are logged and recorded, never raised. Countdown
        refresh errors propagate.
        """
        async with self._tick_lock:
            self.ticks += 1
            self.last_tick_at = now_iso()

            countdown = await self.refresh_countdown()
            if not countdown.deadline_reached:
                return None

            logger.info(
                "Countdown expired, running deal lifecycle",
                extra={"context": countdown.to_dict()},
            )
            return await self._run_lifecycle()

    async def run_lifecycle(self) -> LifecycleRun | None:
        """Run the deal lifecycle now, serialized with polling ticks."""
        async with self._tick_lock:
            return await self._run_lifecycle()

    async def _run_lifecycle(self) -> LifecycleRun | None:
        self.lifecycle_runs += 1
        try:
            run = await self.lifecycle.handle_deal_execution()
        except Exception as e:
            self.last_error = str(e)
            logger.error(
                f"Deal lifecycle error: {e}",
                extra={"context": {
                    "error_code": e.code.value if isinstance(e, SaladError) else "UNKNOWN",
                }},
                exc_info=True,
            )
            return None

        self.last_error = None
        return run

    async def run(self) -> None:
        """Poll until deactivated."""
        while self.is_running:
            try:
                await self.tick()
            except Exception as e:
                self.last_error = str(e)
                logger.error(
                    f"Unable to refresh block countdown: {e}",
                    extra={"context": {"error": str(e)}},
                )

            if self.is_running:
                await self._sleep(self.poll_interval_seconds)

        logger.info(
            "Countdown scheduler stopped",
            extra={"context": {"ticks": self.ticks, "lifecycle_runs": self.lifecycle_runs}},
        )

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "ticks": self.ticks,
            "lifecycle_runs": self.lifecycle_runs,
            "last_tick_at": self.last_tick_at,
            "last_countdown": self.last_countdown.to_dict() if self.last_countdown else None,
            "last_error": self.last_error,
        }
