"""Tests for the live trade stream handler."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from polymarket_signal_tracker.ingestor.feed_messages import TradesMessage
from polymarket_signal_tracker.ingestor.models import TradeEvent
from polymarket_signal_tracker.ingestor.trade_stream import (
    SUBSCRIBE_MESSAGE,
    ConnectionState,
    ReconnectBackoff,
    TradeStreamConnectionError,
    TradeStreamHandler,
)


def trade_frame(asset: str, timestamp: object = 1767225600) -> str:
    return json.dumps(
        {
            "topic": "activity",
            "type": "trades",
            "payload": {
                "asset": asset,
                "price": "0.5",
                "size": "100",
                "side": "BUY",
                "proxyWallet": "0xWallet",
                "timestamp": timestamp,
            },
        }
    )


class FakeConnection:
    """Minimal stand-in for a websockets client connection.

    Yields its messages, then stays open until closed unless hold_open is
    False, in which case iteration ends as if the server hung up.
    """

    def __init__(self, messages: list[str], *, hold_open: bool = True) -> None:
        self.messages = messages
        self.hold_open = hold_open
        self.sent: list[str] = []
        self.closed = False
        self._closed_event = asyncio.Event()

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._closed_event.set()

    def __aiter__(self):  # type: ignore[no-untyped-def]
        return self._iterate()

    async def _iterate(self):  # type: ignore[no-untyped-def]
        for message in self.messages:
            await asyncio.sleep(0)
            if self.closed:
                return
            yield message
        if self.hold_open:
            await self._closed_event.wait()


class TestReconnectBackoff:
    def test_doubles_until_capped(self) -> None:
        backoff = ReconnectBackoff(1, 5)
        assert [backoff.next_delay() for _ in range(5)] == [1, 2, 4, 5, 5]

    def test_reset(self) -> None:
        backoff = ReconnectBackoff(1, 30)
        backoff.next_delay()
        backoff.next_delay()
        backoff.reset()
        assert backoff.next_delay() == 1


class TestTradeStreamHandler:
    @pytest.mark.asyncio
    async def test_subscribes_and_dispatches_trades(self) -> None:
        received: list[TradeEvent] = []
        connection = FakeConnection(
            [
                json.dumps({"topic": "activity", "type": "orders_matched"}),
                "not json",
                "",
                trade_frame("asset-1"),
                trade_frame("asset-2"),
            ]
        )
        stream: TradeStreamHandler

        async def on_trade(trade: TradeEvent) -> None:
            received.append(trade)
            if len(received) == 2:
                await stream.stop()

        stream = TradeStreamHandler(
            on_trade=on_trade,
            connector=AsyncMock(return_value=connection),
        )

        await asyncio.wait_for(stream.start(), timeout=2)

        assert json.loads(connection.sent[0]) == SUBSCRIBE_MESSAGE
        assert [t.asset_id for t in received] == ["asset-1", "asset-2"]
        assert received[0].wallet_address == "0xwallet"
        assert stream.stats.trades_received == 2
        assert stream.stats.messages_ignored == 1
        assert stream.stats.invalid_messages == 1
        assert connection.closed
        assert stream.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_callback_failure_does_not_drop_connection(self) -> None:
        calls = 0
        stream: TradeStreamHandler

        async def on_trade(trade: TradeEvent) -> None:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("bad trade")
            await stream.stop()

        stream = TradeStreamHandler(
            on_trade=on_trade,
            connector=AsyncMock(return_value=FakeConnection([trade_frame("a"), trade_frame("b")])),
        )

        await asyncio.wait_for(stream.start(), timeout=2)

        assert calls == 2
        assert stream.stats.callback_failures == 1
        assert stream.stats.reconnect_count == 0

    @pytest.mark.asyncio
    async def test_reconnects_after_connect_failure(self) -> None:
        states: list[ConnectionState] = []
        stream: TradeStreamHandler

        async def on_trade(trade: TradeEvent) -> None:
            await stream.stop()

        async def on_state_change(state: ConnectionState) -> None:
            states.append(state)

        connector = AsyncMock(
            side_effect=[OSError("refused"), FakeConnection([trade_frame("a")])]
        )
        stream = TradeStreamHandler(
            on_trade=on_trade,
            on_state_change=on_state_change,
            connector=connector,
            initial_reconnect_delay=0.01,
        )

        await asyncio.wait_for(stream.start(), timeout=2)

        assert connector.await_count == 2
        assert stream.stats.reconnect_count == 1
        assert stream.stats.last_reconnect_delay == 0.01
        assert ConnectionState.RECONNECTING in states
        assert states[-1] == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_server_close_triggers_reconnect(self) -> None:
        stream: TradeStreamHandler
        connections = [FakeConnection([], hold_open=False), FakeConnection([trade_frame("a")])]

        async def on_trade(trade: TradeEvent) -> None:
            await stream.stop()

        stream = TradeStreamHandler(
            on_trade=on_trade,
            connector=AsyncMock(side_effect=connections),
            initial_reconnect_delay=0.01,
        )

        await asyncio.wait_for(stream.start(), timeout=2)

        assert stream.stats.reconnect_count == 1
        assert stream.stats.last_error == "Feed closed by server"

    @pytest.mark.asyncio
    async def test_connect_error_is_wrapped(self) -> None:
        stream = TradeStreamHandler(
            on_trade=AsyncMock(),
            connector=AsyncMock(side_effect=OSError("refused")),
        )
        with pytest.raises(TradeStreamConnectionError):
            await stream._connect()

    @pytest.mark.asyncio
    async def test_cannot_start_twice(self) -> None:
        stream = TradeStreamHandler(
            on_trade=AsyncMock(),
            connector=AsyncMock(return_value=FakeConnection([])),
            initial_reconnect_delay=0.01,
        )
        task = asyncio.create_task(stream.start())
        await asyncio.sleep(0)

        with pytest.raises(RuntimeError):
            await stream.start()

        await stream.stop()
        await asyncio.wait_for(task, timeout=2)

    @pytest.mark.asyncio
    async def test_slow_callback_does_not_block_next_trade(self) -> None:
        release = asyncio.Event()
        order: list[str] = []
        stream: TradeStreamHandler

        async def on_trade(trade: TradeEvent) -> None:
            if trade.asset_id == "slow":
                order.append("slow:start")
                await release.wait()
                order.append("slow:done")
                await stream.stop()
            else:
                order.append("fast")
                release.set()

        stream = TradeStreamHandler(
            on_trade=on_trade,
            connector=AsyncMock(return_value=FakeConnection([trade_frame("slow"), trade_frame("fast")])),
        )

        await asyncio.wait_for(stream.start(), timeout=2)

        assert order == ["slow:start", "fast", "slow:done"]
        assert stream.in_flight == 0

    @pytest.mark.asyncio
    async def test_out_of_range_timestamp_keeps_connection(self) -> None:
        received: list[TradeEvent] = []
        stream: TradeStreamHandler

        async def on_trade(trade: TradeEvent) -> None:
            received.append(trade)
            if len(received) == 2:
                await stream.stop()

        connector = AsyncMock(
            return_value=FakeConnection([trade_frame("bad", timestamp=1e20), trade_frame("good")])
        )
        stream = TradeStreamHandler(on_trade=on_trade, connector=connector)

        await asyncio.wait_for(stream.start(), timeout=2)

        assert sorted(t.asset_id for t in received) == ["bad", "good"]
        assert not next(t for t in received if t.asset_id == "bad").timestamp_from_source
        assert connector.await_count == 1
        assert stream.stats.reconnect_count == 0

    @pytest.mark.asyncio
    async def test_unconvertible_trade_counts_as_invalid(self) -> None:
        on_trade = AsyncMock()
        stream = TradeStreamHandler(on_trade=on_trade, connector=AsyncMock())

        with patch.object(TradesMessage, "to_trade_event", side_effect=ValueError("bad payload")):
            await stream._handle_message(trade_frame("a"))

        assert stream.stats.invalid_messages == 1
        assert stream.stats.trades_received == 0
        assert stream.in_flight == 0
        on_trade.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_callbacks(self) -> None:
        finished: list[str] = []

        async def on_trade(trade: TradeEvent) -> None:
            await asyncio.sleep(0.05)
            finished.append(trade.asset_id)

        stream = TradeStreamHandler(
            on_trade=on_trade,
            connector=AsyncMock(return_value=FakeConnection([trade_frame("a")])),
        )
        task = asyncio.create_task(stream.start())
        while stream.stats.trades_received == 0:
            await asyncio.sleep(0.001)

        await stream.stop()
        await asyncio.wait_for(task, timeout=2)

        assert finished == ["a"]
        assert stream.in_flight == 0

    @pytest.mark.asyncio
    async def test_drain_timeout_cancels_stuck_callbacks(self) -> None:
        cancelled = asyncio.Event()

        async def on_trade(trade: TradeEvent) -> None:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        stream = TradeStreamHandler(
            on_trade=on_trade,
            connector=AsyncMock(return_value=FakeConnection([trade_frame("a")])),
            drain_timeout=0.01,
        )
        task = asyncio.create_task(stream.start())
        while stream.stats.trades_received == 0:
            await asyncio.sleep(0.001)

        await stream.stop()
        await asyncio.wait_for(task, timeout=2)

        assert cancelled.is_set()
        assert stream.in_flight == 0
        assert stream.state == ConnectionState.DISCONNECTED
