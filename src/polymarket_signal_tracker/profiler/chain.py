"""Polygon RPC access for wallet transaction counts.

Freshness and activity level are both derived from a wallet's nonce, so
this is the only on-chain read the profiler needs.
"""

import asyncio
import logging
import time
from typing import Any

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_SECONDS = 0.5
DEFAULT_REQUEST_TIMEOUT = 10
PRIMARY_RECOVERY_INTERVAL_SECONDS = 60.0


class PolygonClientError(Exception):
    """Base exception for Polygon client errors."""


class RPCError(PolygonClientError):
    """Raised when every endpoint failed."""


class PolygonClient:
    """Nonce lookups against a primary RPC with optional failover.

    After the primary fails all its attempts it is skipped for a minute
    and the fallback is used directly.

    Example:
        ```python
        client = PolygonClient("https://polygon-rpc.com")
        tx_count = await client.get_transaction_count("0x...")
        await client.aclose()
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        request_timeout: int = DEFAULT_REQUEST_TIMEOUT,
        web3_clients: list[Any] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_url: Primary Polygon RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL.
            max_retries: Attempts per endpoint.
            retry_delay_seconds: Initial delay between attempts (doubles).
            request_timeout: HTTP timeout per RPC request.
            web3_clients: Prebuilt clients (primary first), mainly for tests.
        """
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay_seconds
        if web3_clients is not None:
            self._clients = list(web3_clients)
        else:
            urls = [rpc_url] + ([fallback_rpc_url] if fallback_rpc_url else [])
            self._clients = [self._new_web3_client(url, request_timeout) for url in urls]

        self._primary_healthy = True
        self._last_primary_check = 0.0

    @staticmethod
    def _new_web3_client(rpc_url: str, timeout: int) -> AsyncWeb3[AsyncHTTPProvider]:
        client = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        try:
            client.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except Exception as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", rpc_url, e)
        return client

    def _endpoints(self) -> list[tuple[int, Any]]:
        endpoints = list(enumerate(self._clients))
        if self._primary_healthy or len(endpoints) == 1:
            return endpoints
        now = time.monotonic()
        if now - self._last_primary_check > PRIMARY_RECOVERY_INTERVAL_SECONDS:
            self._last_primary_check = now
            return endpoints
        return endpoints[1:]

    async def _call(self, func_name: str, *args: Any) -> Any:
        last_error: Exception | None = None
        for index, client in self._endpoints():
            delay = self._retry_delay
            for attempt in range(self._max_retries):
                try:
                    result = await getattr(client.eth, func_name)(*args)
                except (Web3Exception, OSError, TimeoutError) as e:
                    last_error = e
                    logger.warning(
                        "RPC %s failed on endpoint %d (attempt %d/%d): %s",
                        func_name,
                        index,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2
                    continue
                if index == 0:
                    self._primary_healthy = True
                return result
            if index == 0:
                self._primary_healthy = False
                self._last_primary_check = time.monotonic()

        raise RPCError(f"RPC call {func_name} failed on all endpoints: {last_error}")

    async def get_transaction_count(self, address: str) -> int:
        """Latest nonce of a wallet.

        Raises:
            RPCError: If every endpoint failed.
            ValueError: If the address is not a valid hex address.
        """
        count = await self._call(
            "get_transaction_count",
            AsyncWeb3.to_checksum_address(address),
        )
        return int(count)

    async def aclose(self) -> None:
        """Close provider sessions."""
        for client in self._clients:
            disconnect = getattr(getattr(client, "provider", None), "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)
