"""Data models for the ingestor module."""

import contextlib
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal


def parse_source_timestamp(raw: Any) -> datetime | None:
    """Parse epoch seconds, epoch milliseconds or an ISO string into UTC.

    Returns None when the value is missing, malformed or out of range.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        ts = float(raw)
        if ts > 1e12:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(raw, str) and raw:
        if raw.replace(".", "", 1).isdigit():
            return parse_source_timestamp(float(raw))
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
    return None


def parse_timestamp(raw: Any) -> datetime:
    """Like parse_source_timestamp, falling back to the current time."""
    return parse_source_timestamp(raw) or datetime.now(UTC)


def parse_optional_datetime(raw: Any) -> datetime | None:
    if not raw or not isinstance(raw, str):
        return None
    with contextlib.suppress(ValueError):
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return None


def to_decimal(raw: Any) -> Decimal:
    if raw is None or raw == "":
        return Decimal("0")
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return Decimal("0")


def parse_json_list(raw: Any) -> list[Any]:
    """Accept a list or a JSON-encoded list string; anything else is empty."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and raw:
        with contextlib.suppress(ValueError):
            decoded = json.loads(raw)
            if isinstance(decoded, list):
                return decoded
    return []


@dataclass(frozen=True)
class OrderbookLevel:
    """Represents a single price level in an orderbook."""

    price: Decimal
    size: Decimal

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderbookLevel":
        return cls(price=to_decimal(data.get("price")), size=to_decimal(data.get("size")))


@dataclass(frozen=True)
class Orderbook:
    """Order book for one outcome token, best level first on each side."""

    asset_id: str
    bids: tuple[OrderbookLevel, ...]
    asks: tuple[OrderbookLevel, ...]
    market: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_levels(
        cls,
        asset_id: str,
        bids: list[OrderbookLevel],
        asks: list[OrderbookLevel],
        market: str = "",
    ) -> "Orderbook":
        """Sort levels so bids descend and asks ascend from the touch."""
        return cls(
            asset_id=asset_id,
            market=market,
            bids=tuple(sorted(bids, key=lambda lvl: lvl.price, reverse=True)),
            asks=tuple(sorted(asks, key=lambda lvl: lvl.price)),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Orderbook":
        """Create an Orderbook from a REST /book response."""
        return cls.from_levels(
            asset_id=str(data.get("asset_id", "")),
            market=str(data.get("market", "")),
            bids=[OrderbookLevel.from_dict(x) for x in (data.get("bids") or []) if isinstance(x, dict)],
            asks=[OrderbookLevel.from_dict(x) for x in (data.get("asks") or []) if isinstance(x, dict)],
        )

    @classmethod
    def from_clob_orderbook(cls, orderbook: Any) -> "Orderbook":
        """Create an Orderbook from a py-clob-client OrderBookSummary."""
        return cls.from_levels(
            asset_id=str(orderbook.asset_id),
            market=str(orderbook.market or ""),
            bids=[OrderbookLevel(price=to_decimal(b.price), size=to_decimal(b.size)) for b in (orderbook.bids or [])],
            asks=[OrderbookLevel(price=to_decimal(a.price), size=to_decimal(a.size)) for a in (orderbook.asks or [])],
        )

    def levels_for(self, side: Literal["BUY", "SELL"]) -> tuple[OrderbookLevel, ...]:
        """Levels a market order on `side` would consume."""
        return self.asks if side == "BUY" else self.bids

    @property
    def best_bid(self) -> Decimal | None:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Decimal | None:
        return self.asks[0].price if self.asks else None


@dataclass(frozen=True)
class TradeEvent:
    """A single trade from the live activity feed.

    Only asset, price, size and side are needed for filtering; the rest is
    carried through to persistence and emitted events.
    """

    asset_id: str
    price: Decimal
    size: Decimal
    side: Literal["BUY", "SELL"]
    wallet_address: str  # lowercased; empty when the feed omitted it
    timestamp: datetime

    condition_id: str = ""
    transaction_hash: str = ""
    outcome: str = ""
    outcome_index: int = 0
    title: str = ""
    slug: str = ""
    event_slug: str = ""
    icon: str = ""
    trader_name: str = ""
    trader_pseudonym: str = ""
    # False when the feed sent no usable timestamp and `timestamp` is receipt time
    timestamp_from_source: bool = True

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "TradeEvent":
        """Create a TradeEvent from a trade payload.

        Args:
            data: The payload of an activity/trades feed message, or a REST
                trade record using snake_case keys.

        Returns:
            TradeEvent instance.
        """
        side: Literal["BUY", "SELL"] = (
            "SELL" if str(data.get("side") or "BUY").upper() == "SELL" else "BUY"
        )
        wallet = str(data.get("proxyWallet") or data.get("proxy_wallet") or data.get("wallet_address") or "")
        source_ts = parse_source_timestamp(data.get("timestamp"))
        outcome_index_raw = data.get("outcomeIndex", data.get("outcome_index", 0))
        try:
            outcome_index = int(outcome_index_raw or 0)
        except (TypeError, ValueError):
            outcome_index = 0

        return cls(
            asset_id=str(data.get("asset") or data.get("asset_id") or data.get("assetId") or ""),
            price=to_decimal(data.get("price")),
            size=to_decimal(data.get("size")),
            side=side,
            wallet_address=wallet.strip().lower(),
            timestamp=source_ts or datetime.now(UTC),
            condition_id=str(data.get("conditionId") or data.get("condition_id") or ""),
            transaction_hash=str(data.get("transactionHash") or data.get("transaction_hash") or ""),
            outcome=str(data.get("outcome") or ""),
            outcome_index=outcome_index,
            title=str(data.get("title") or ""),
            slug=str(data.get("slug") or ""),
            event_slug=str(data.get("eventSlug") or data.get("event_slug") or ""),
            icon=str(data.get("icon") or ""),
            trader_name=str(data.get("name") or ""),
            trader_pseudonym=str(data.get("pseudonym") or ""),
            timestamp_from_source=source_ts is not None,
        )

    @property
    def notional_value(self) -> Decimal:
        """Return the notional value of the trade (price * size)."""
        return self.price * self.size

    @property
    def trade_id(self) -> str:
        """Stable identifier used as the persisted primary key.

        One transaction can fill several wallets and assets, so the hash
        alone is not unique.
        """
        if self.transaction_hash:
            return f"{self.transaction_hash}:{self.wallet_address}:{self.asset_id}"
        if not self.timestamp_from_source:
            # Payload fields only; receipt time changes on replay.
            return f"{self.asset_id}:{self.wallet_address}:{self.side}:{self.price}:{self.size}"
        ts_ms = int(self.timestamp.timestamp() * 1000)
        return f"{self.asset_id}:{self.wallet_address}:{ts_ms}:{self.price}:{self.size}"

    @property
    def is_buy(self) -> bool:
        return self.side == "BUY"


@dataclass(frozen=True)
class AssetOutcome:
    """Outcome an asset (token) id resolves to."""

    outcome_label: str
    condition_id: str


@dataclass(frozen=True)
class MarketMeta:
    """Metadata for one market (condition)."""

    condition_id: str
    question: str
    outcomes: tuple[str, ...]
    asset_ids: tuple[str, ...]
    image: str | None = None
    category: str | None = None
    sport: str | None = None
    league: str | None = None
    liquidity: float | None = None
    volume_24h: float | None = None
    open_time: datetime | None = None
    close_time: datetime | None = None
    resolution_time: datetime | None = None
    tags: tuple[str, ...] = ()
    slug: str = ""

    def to_context(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "sport": self.sport,
            "league": self.league,
            "liquidity": self.liquidity,
            "volume24h": self.volume_24h,
            "closeTime": self.close_time.isoformat() if self.close_time else None,
            "openTime": self.open_time.isoformat() if self.open_time else None,
            "resolutionTime": self.resolution_time.isoformat() if self.resolution_time else None,
        }
