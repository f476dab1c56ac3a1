"""Tests for the Polygon transaction-count client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from web3.exceptions import Web3Exception

from polymarket_signal_tracker.profiler.chain import PolygonClient, RPCError

VALID_ADDRESS = "0x742d35cc6634c0532925a3b844bc9e7595f5eae2"
CHECKSUM_ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f5eaE2"


def fake_web3(get_transaction_count: AsyncMock) -> SimpleNamespace:
    return SimpleNamespace(eth=SimpleNamespace(get_transaction_count=get_transaction_count))


class TestPolygonClient:
    @pytest.mark.asyncio
    async def test_checksums_address(self) -> None:
        primary = AsyncMock(return_value=12)
        client = PolygonClient("http://unused", web3_clients=[fake_web3(primary)])

        assert await client.get_transaction_count(VALID_ADDRESS) == 12
        primary.assert_awaited_once_with(CHECKSUM_ADDRESS)

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        primary = AsyncMock(side_effect=[Web3Exception("flaky"), 7])
        client = PolygonClient("http://unused", max_retries=2, web3_clients=[fake_web3(primary)])

        with patch("polymarket_signal_tracker.profiler.chain.asyncio.sleep", new=AsyncMock()):
            assert await client.get_transaction_count(VALID_ADDRESS) == 7
        assert primary.await_count == 2

    @pytest.mark.asyncio
    async def test_fails_over_to_fallback(self) -> None:
        primary = AsyncMock(side_effect=OSError("down"))
        fallback = AsyncMock(return_value=99)
        client = PolygonClient(
            "http://unused",
            max_retries=2,
            web3_clients=[fake_web3(primary), fake_web3(fallback)],
        )

        with patch("polymarket_signal_tracker.profiler.chain.asyncio.sleep", new=AsyncMock()):
            assert await client.get_transaction_count(VALID_ADDRESS) == 99
            assert primary.await_count == 2

            # Unhealthy primary is skipped on the next call.
            assert await client.get_transaction_count(VALID_ADDRESS) == 99
        assert primary.await_count == 2
        assert fallback.await_count == 2

    @pytest.mark.asyncio
    async def test_all_endpoints_failing(self) -> None:
        primary = AsyncMock(side_effect=TimeoutError())
        client = PolygonClient("http://unused", max_retries=1, web3_clients=[fake_web3(primary)])

        with pytest.raises(RPCError):
            await client.get_transaction_count(VALID_ADDRESS)

    @pytest.mark.asyncio
    async def test_invalid_address(self) -> None:
        client = PolygonClient("http://unused", web3_clients=[fake_web3(AsyncMock())])
        with pytest.raises(ValueError):
            await client.get_transaction_count("not-an-address")

    @pytest.mark.asyncio
    async def test_aclose_disconnects_providers(self) -> None:
        disconnect = AsyncMock()
        web3 = SimpleNamespace(eth=None, provider=SimpleNamespace(disconnect=disconnect))
        client = PolygonClient("http://unused", web3_clients=[web3])

        await client.aclose()

        disconnect.assert_awaited_once()
