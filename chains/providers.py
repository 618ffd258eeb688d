"""
chains/providers.py - JSON-RPC transport shared by the ledger and compute clients.

One RPCProvider per remote node. Endpoints are tried in configured order;
the first that answers with a JSON-RPC result wins. Per-endpoint counters
feed the health report.
"""

import os
from dataclasses import dataclass
from typing import Any

import httpx

from core.constants import ErrorCode
from core.exceptions import TransientNetworkError
from core.logging import get_logger
from core.time import now_ms

logger = get_logger(__name__)


class _EndpointTimeout(Exception):
    pass


@dataclass
class RPCStats:
    """Counters for one endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def record_success(self, latency_ms: int) -> None:
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.last_success_ts = now_ms()

    def record_failure(self, error: str) -> None:
        self.failed_requests += 1
        self.last_error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "success_rate": round(self.success_rate, 3),
            "avg_latency_ms": self.avg_latency_ms,
            "last_error": self.last_error,
        }


@dataclass
class RPCResponse:
    """Result of a JSON-RPC call and the endpoint that served it."""
    result: Any
    latency_ms: int
    endpoint_used: str


def _rpc_error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)


class RPCProvider:
    """
    JSON-RPC provider with endpoint failover.

    Usage:
        provider = RPCProvider("ledger", ["http://localhost:8545"])
        height, latency_ms = await provider.get_block_number()
        await provider.close()
    """

    def __init__(
        self,
        name: str,
        rpc_urls: list[str],
        timeout_seconds: int = 10,
        client: httpx.AsyncClient | None = None,
    ):
        self.name = name
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._request_id = 0

        # ${VAR} placeholders let API keys stay in the environment
        self.rpc_urls = [os.path.expandvars(url) for url in rpc_urls]
        self.stats: dict[str, RPCStats] = {url: RPCStats(url=url) for url in self.rpc_urls}

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _envelope(self, method: str, params: list | None) -> dict[str, Any]:
        self._request_id += 1
        return {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params or []}

    async def _call_endpoint(self, url: str, envelope: dict[str, Any]) -> RPCResponse:
        """
        Single attempt against one endpoint.

        Raises _EndpointTimeout on timeout, TransientNetworkError otherwise.
        """
        stats = self.stats[url]
        stats.total_requests += 1
        started = now_ms()

        try:
            resp = await self._http().post(url, json=envelope)
            body = resp.json()
        except httpx.TimeoutException as e:
            stats.record_failure(f"Timeout after {now_ms() - started}ms")
            raise _EndpointTimeout(str(e)) from e
        except (httpx.HTTPError, ValueError) as e:
            stats.record_failure(str(e))
            raise TransientNetworkError(str(e), details={"url": url}) from e

        if "error" in body:
            message = _rpc_error_message(body["error"])
            stats.record_failure(message)
            raise TransientNetworkError(f"RPC error: {message}", details={"url": url})

        latency_ms = now_ms() - started
        stats.record_success(latency_ms)
        return RPCResponse(result=body.get("result"), latency_ms=latency_ms, endpoint_used=url)

    async def call(self, method: str, params: list | None = None) -> RPCResponse:
        """
        Call `method`, falling over to the next endpoint on any failure.

        Raises:
            TransientNetworkError: INFRA_TIMEOUT if any endpoint timed out,
                INFRA_RPC_ERROR otherwise
        """
        if not self.rpc_urls:
            raise TransientNetworkError(
                "No RPC endpoints configured",
                details={"provider": self.name},
            )

        envelope = self._envelope(method, params)
        timed_out = False
        last_error: Exception | None = None

        for url in self.rpc_urls:
            try:
                return await self._call_endpoint(url, envelope)
            except _EndpointTimeout as e:
                timed_out = True
                last_error = e
            except TransientNetworkError as e:
                last_error = e

            logger.debug(
                "RPC endpoint failed, trying next",
                extra={"context": {"provider": self.name, "url": url, "method": method, "error": str(last_error)}},
            )

        raise TransientNetworkError(
            f"All RPC endpoints failed for {self.name}",
            code=ErrorCode.INFRA_TIMEOUT if timed_out else ErrorCode.INFRA_RPC_ERROR,
            details={
                "provider": self.name,
                "method": method,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": str(last_error),
            },
        )

    # -------------------------------------------------------------------------
    # Ethereum JSON-RPC helpers
    # -------------------------------------------------------------------------

    async def get_block_number(self) -> tuple[int, int]:
        """(block_number, latency_ms)"""
        response = await self.call("eth_blockNumber")
        return int(response.result, 16), response.latency_ms

    async def eth_call(self, to: str, data: str, block: str = "latest") -> RPCResponse:
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    async def get_accounts(self) -> list[str]:
        """Accounts unlocked on the node."""
        response = await self.call("eth_accounts")
        return list(response.result or [])

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """Submit a transaction signed by a node-managed account; returns the hash."""
        response = await self.call("eth_sendTransaction", [tx])
        return response.result

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """None while the transaction is pending."""
        response = await self.call("eth_getTransactionReceipt", [tx_hash])
        return response.result

    def get_stats_summary(self) -> dict:
        return {url: s.to_dict() for url, s in self.stats.items()}
