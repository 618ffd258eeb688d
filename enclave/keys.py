"""
enclave/keys.py - Encryption key bootstrap.

KEY STATE CONTRACT
==================
  UNCACHED    -> FETCHING     (load_encryption_key, cache miss)
  UNCACHED    -> CACHED       (load_encryption_key, cache hit)
  FETCHING    -> CACHED       (network returned a key)
  FETCHING    -> UNAVAILABLE  (attempt budget exhausted)
  UNAVAILABLE -> FETCHING     (next load_encryption_key call)

CACHED is terminal: the network is never contacted again.
==================
"""

import asyncio
from typing import Awaitable, Callable

from config.settings import KeyFetchPolicy
from core.constants import (
    CACHE_COLLECTION,
    GET_ENCRYPTION_PUB_KEY_GAS_LIMIT,
    GET_ENCRYPTION_PUB_KEY_GAS_PRICE,
    PUB_KEY_CACHE_KEY,
    KeyState,
    Topic,
)
from core.exceptions import InfraError, KeyUnavailableError
from core.logging import get_logger
from core.math import to_grains
from core.models import PubKeyData, TaskRecordOpts
from enclave.client import ComputeClient
from events.broadcaster import EventBroadcaster
from storage.store import Store

logger = get_logger(__name__)


def default_key_task_opts() -> TaskRecordOpts:
    return TaskRecordOpts(
        task_gas_limit=GET_ENCRYPTION_PUB_KEY_GAS_LIMIT,
        task_gas_px=to_grains(GET_ENCRYPTION_PUB_KEY_GAS_PRICE),
    )


class EncryptionKeyBootstrapper:
    """
    Fetches the compute network's encryption key once and caches it.

    Concurrent callers share a single fetch.
    """

    def __init__(
        self,
        store: Store,
        compute: ComputeClient,
        broadcaster: EventBroadcaster,
        policy: KeyFetchPolicy | None = None,
        task_opts: TaskRecordOpts | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.compute = compute
        self.broadcaster = broadcaster
        self.policy = policy or KeyFetchPolicy()
        self.task_opts = task_opts or default_key_task_opts()
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._state = KeyState.UNCACHED
        self._pub_key: PubKeyData | None = None
        self._attempts = 0
        self._last_error: str | None = None

    @property
    def state(self) -> KeyState:
        return self._state

    @property
    def pub_key(self) -> PubKeyData | None:
        return self._pub_key

    @property
    def is_cached(self) -> bool:
        return self._state == KeyState.CACHED

    async def load_encryption_key(self) -> PubKeyData:
        """
        Return the cached key, fetching it from the compute network if needed.

        Raises:
            KeyUnavailableError: If every attempt in the budget failed
        """
        if self._pub_key is not None:
            return self._pub_key

        async with self._lock:
            if self._pub_key is not None:
                return self._pub_key

            cached = await self.store.get(CACHE_COLLECTION, PUB_KEY_CACHE_KEY)
            if cached is not None:
                self._pub_key = PubKeyData.from_dict(cached)
                self._state = KeyState.CACHED
                logger.debug("Encryption key loaded from cache")
                return self._pub_key

            pub_key = await self._fetch_with_backoff()
            await self.store.put(CACHE_COLLECTION, PUB_KEY_CACHE_KEY, pub_key.to_dict())
            self._pub_key = pub_key
            self._state = KeyState.CACHED

        logger.info(
            "Encryption key cached",
            extra={"context": {"attempts": self._attempts}},
        )
        self.broadcaster.emit(Topic.PUB_KEY_READY, {"pubKeyData": pub_key.to_dict()})
        return pub_key

    async def _fetch_with_backoff(self) -> PubKeyData:
        self._state = KeyState.FETCHING
        self._attempts = 0

        for attempt in range(1, self.policy.max_attempts + 1):
            self._attempts = attempt
            try:
                logger.debug(
                    "Fetching the encryption key from the compute network",
                    extra={"context": {"attempt": attempt}},
                )
                pub_key = await self.compute.fetch_encryption_key(self.task_opts)
                if pub_key is not None:
                    self._last_error = None
                    return pub_key
                self._last_error = "Compute network returned no key"
            except InfraError as e:
                self._last_error = str(e)
                logger.warning(
                    f"Unable to fetch encryption key: {e}",
                    extra={"context": {"attempt": attempt, "error_code": e.code.value}},
                )

            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.backoff_for(attempt))

        self._state = KeyState.UNAVAILABLE
        logger.error(
            "Encryption key unavailable",
            extra={"context": {"attempts": self._attempts, "last_error": self._last_error}},
        )
        raise KeyUnavailableError(
            f"Encryption key unavailable after {self._attempts} attempts",
            details={"attempts": self._attempts, "last_error": self._last_error},
        )

    def get_status(self) -> dict:
        return {
            "state": self._state.value,
            "attempts": self._attempts,
            "last_error": self._last_error,
        }
