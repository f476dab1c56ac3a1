"""WebSocket client for the live trade activity feed."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

import websockets
from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection

from polymarket_signal_tracker.ingestor.feed_messages import TradesMessage, parse_feed_message
from polymarket_signal_tracker.ingestor.models import TradeEvent

logger = logging.getLogger(__name__)

DEFAULT_HOST = "wss://ws-live-data.polymarket.com"
DEFAULT_PING_INTERVAL = 30  # seconds
DEFAULT_MAX_RECONNECT_DELAY = 30  # seconds
DEFAULT_INITIAL_RECONNECT_DELAY = 1  # seconds
DEFAULT_DRAIN_TIMEOUT = 10  # seconds

SUBSCRIBE_MESSAGE = {
    "action": "subscribe",
    "subscriptions": [{"topic": "activity", "type": "trades", "filters": ""}],
}


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class StreamStats:
    trades_received: int = 0
    messages_ignored: int = 0
    invalid_messages: int = 0
    callback_failures: int = 0
    reconnect_count: int = 0
    last_reconnect_delay: float | None = None
    last_message_time: float | None = None
    connected_since: float | None = None
    last_error: str | None = None


class ReconnectBackoff:
    """Exponential backoff capped at a maximum delay."""

    def __init__(self, initial: float, maximum: float) -> None:
        self._initial = initial
        self._maximum = maximum
        self._delay = initial

    def reset(self) -> None:
        self._delay = self._initial

    def next_delay(self) -> float:
        delay = self._delay
        self._delay = min(self._maximum, self._delay * 2)
        return delay


class TradeStreamError(Exception):
    """Base exception for trade stream errors."""


class TradeStreamConnectionError(TradeStreamError):
    """Raised when connection to the WebSocket fails."""


TradeCallback = Callable[[TradeEvent], Coroutine[Any, Any, None]]
StateCallback = Callable[[ConnectionState], Awaitable[None]]
Connector = Callable[[], Awaitable[ClientConnection]]


class TradeStreamHandler:
    """Subscribes to activity/trades and hands each trade to a callback.

    Disconnects are retried with exponential backoff capped at
    max_reconnect_delay; the delay resets only after a successful connect.
    Each trade callback runs as its own task so a slow enrichment never
    holds up the next frame; stop() lets in-flight callbacks finish.

    Example:
        ```python
        stream = TradeStreamHandler(on_trade=worker.process_trade)
        task = asyncio.create_task(stream.start())
        ...
        await stream.stop()
        ```
    """

    def __init__(
        self,
        *,
        on_trade: TradeCallback,
        host: str = DEFAULT_HOST,
        on_state_change: StateCallback | None = None,
        ping_interval: int = DEFAULT_PING_INTERVAL,
        max_reconnect_delay: float = DEFAULT_MAX_RECONNECT_DELAY,
        initial_reconnect_delay: float = DEFAULT_INITIAL_RECONNECT_DELAY,
        connector: Connector | None = None,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> None:
        self._host = host
        self._on_trade = on_trade
        self._on_state_change = on_state_change
        self._ping_interval = ping_interval
        self._max_reconnect_delay = max_reconnect_delay
        self._initial_reconnect_delay = initial_reconnect_delay
        self._connector = connector or self._open_connection
        self._drain_timeout = drain_timeout

        self._state = ConnectionState.DISCONNECTED
        self._stats = StreamStats()
        self._ws: ClientConnection | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stats(self) -> StreamStats:
        return self._stats

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def _set_state(self, new_state: ConnectionState) -> None:
        if self._state != new_state:
            old = self._state
            self._state = new_state
            logger.info("Trade stream state: %s -> %s", old.value, new_state.value)
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:
                    logger.error("Error in state change callback: %s", e)

    async def _open_connection(self) -> ClientConnection:
        return await websockets.connect(
            self._host,
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_interval * 2,
        )

    async def _connect(self) -> ClientConnection:
        await self._set_state(ConnectionState.CONNECTING)
        try:
            ws = await self._connector()
            await ws.send(json.dumps(SUBSCRIBE_MESSAGE))
        except Exception as e:
            self._stats.last_error = str(e)
            raise TradeStreamConnectionError(f"Failed to connect to {self._host}: {e}") from e

        await self._set_state(ConnectionState.CONNECTED)
        self._stats.connected_since = time.time()
        logger.info("Subscribed to activity/trades on %s", self._host)
        return ws

    async def _handle_message(self, message: str | bytes) -> None:
        if not message or (isinstance(message, str) and not message.strip()):
            return
        try:
            parsed = parse_feed_message(message)
        except (ValidationError, ValueError) as e:
            self._stats.invalid_messages += 1
            logger.debug("Dropping invalid feed message: %s", e)
            return

        self._stats.last_message_time = time.time()
        if not isinstance(parsed, TradesMessage):
            self._stats.messages_ignored += 1
            return

        try:
            trade = parsed.to_trade_event()
        except (ValidationError, ValueError, ArithmeticError, OSError) as e:
            self._stats.invalid_messages += 1
            logger.debug("Dropping malformed trade payload: %s", e)
            return

        self._stats.trades_received += 1
        self._dispatch(trade)

    def _dispatch(self, trade: TradeEvent) -> None:
        """Run the callback for one trade without blocking the read loop."""
        task = asyncio.create_task(self._on_trade(trade), name=f"trade:{trade.trade_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._stats.callback_failures += 1
            logger.error("Trade callback failed (%s): %s", task.get_name(), exc)

    async def _drain(self) -> None:
        """Wait for in-flight callbacks, cancelling any still running at the deadline."""
        pending = {t for t in self._tasks if t is not asyncio.current_task()}
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=self._drain_timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d trade callbacks still running at shutdown", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)

    async def _listen(self, ws: ClientConnection) -> None:
        try:
            async for message in ws:
                if not self._running:
                    break
                await self._handle_message(message)
        except websockets.ConnectionClosed as e:
            logger.warning("Trade stream connection closed: %s", e)
            raise

    async def start(self) -> None:
        """Connect and consume until stop() is called."""
        if self._running:
            raise RuntimeError("Trade stream already running")
        self._running = True
        self._stop_event = asyncio.Event()

        backoff = ReconnectBackoff(self._initial_reconnect_delay, self._max_reconnect_delay)
        while self._running and not self._stop_event.is_set():
            try:
                self._ws = await self._connect()
                backoff.reset()
                await self._listen(self._ws)
                if self._running:
                    raise TradeStreamError("Feed closed by server")
            except asyncio.CancelledError:
                for task in list(self._tasks):
                    task.cancel()
                raise
            except Exception as e:
                if not self._running:
                    break
                delay = backoff.next_delay()
                self._stats.reconnect_count += 1
                self._stats.last_reconnect_delay = delay
                self._stats.last_error = str(e)
                await self._set_state(ConnectionState.RECONNECTING)
                logger.warning("Trade stream error: %s; reconnecting in %.1fs", e, delay)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            finally:
                with contextlib.suppress(Exception):
                    if self._ws:
                        await self._ws.close()
                self._ws = None

        self._running = False
        await self._drain()
        await self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._ws:
            with contextlib.suppress(Exception):
                await self._ws.close()
