"""Gamma API client and market metadata parsing."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

import httpx

from polymarket_signal_tracker.ingestor.models import (
    AssetOutcome,
    MarketMeta,
    parse_json_list,
    parse_optional_datetime,
)
from polymarket_signal_tracker.ingestor.retry import with_retry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://gamma-api.polymarket.com"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MARKET_LIMIT = 500
USER_AGENT = "polymarket-signal-tracker/0.1"


class GammaClientError(Exception):
    """Base exception for Gamma API errors."""


@dataclass
class ParsedMarkets:
    """Markets keyed by condition id and assets keyed by token id.

    Both dicts keep the order markets arrived in (highest 24h volume first).
    """

    markets_by_condition: dict[str, MarketMeta] = field(default_factory=dict)
    asset_to_outcome: dict[str, AssetOutcome] = field(default_factory=dict)
    skipped: int = 0

    @property
    def asset_ids(self) -> list[str]:
        return list(self.asset_to_outcome)


def _num_or_none(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _first_non_empty(*values: Any) -> str | None:
    for v in values:
        if v:
            return str(v)
    return None


def parse_market(market: dict[str, Any]) -> tuple[MarketMeta, list[str]] | None:
    """Parse one Gamma market payload.

    Returns:
        (MarketMeta, asset ids) or None when the market lacks a condition id,
        token ids or outcome labels.
    """
    condition_id = market.get("conditionId")
    if not condition_id or not market.get("clobTokenIds") or not market.get("outcomes"):
        return None

    token_ids = [str(t) for t in parse_json_list(market.get("clobTokenIds"))]
    outcomes = [str(o) for o in parse_json_list(market.get("outcomes"))]
    if not token_ids:
        return None

    events = market.get("events") or []
    event: dict[str, Any] = events[0] if isinstance(events, list) and events and isinstance(events[0], dict) else {}

    image = _first_non_empty(
        market.get("twitterCardImage"),
        market.get("image"),
        market.get("icon"),
        event.get("image"),
        event.get("icon"),
    )

    tags_raw = market.get("tags") if isinstance(market.get("tags"), list) else []
    tag_names = tuple(
        str(t.get("name") or t.get("slug"))
        for t in tags_raw
        if isinstance(t, dict) and (t.get("name") or t.get("slug"))
    )

    meta = MarketMeta(
        condition_id=str(condition_id),
        question=str(market.get("question") or ""),
        outcomes=tuple(outcomes),
        asset_ids=tuple(token_ids),
        image=image,
        category=market.get("category") or None,
        sport=event.get("sport") or None,
        league=event.get("league") or None,
        liquidity=_num_or_none(market.get("liquidity")),
        volume_24h=_num_or_none(market.get("volume24hr", market.get("volume24h"))),
        open_time=parse_optional_datetime(market.get("openTime") or market.get("startDate")),
        close_time=parse_optional_datetime(market.get("endDate")),
        resolution_time=parse_optional_datetime(market.get("resolutionTime")),
        tags=tag_names,
        slug=str(market.get("slug") or ""),
    )
    return meta, token_ids


def parse_market_data(markets: list[dict[str, Any]]) -> ParsedMarkets:
    """Build condition and asset indexes from a Gamma markets response.

    Each token id maps to the outcome at the same index, or "Unknown" when
    the outcome list is shorter than the token list.
    """
    parsed = ParsedMarkets()
    for market in markets:
        if not isinstance(market, dict):
            parsed.skipped += 1
            continue
        result = parse_market(market)
        if result is None:
            parsed.skipped += 1
            continue
        meta, token_ids = result
        parsed.markets_by_condition[meta.condition_id] = meta
        for index, asset_id in enumerate(token_ids):
            label = meta.outcomes[index] if index < len(meta.outcomes) else "Unknown"
            parsed.asset_to_outcome[asset_id] = AssetOutcome(
                outcome_label=label or "Unknown",
                condition_id=meta.condition_id,
            )
    return parsed


class GammaClient:
    """Async client for the Gamma markets endpoint.

    Example:
        ```python
        async with GammaClient() as gamma:
            markets = await gamma.fetch_active_markets()
            parsed = parse_market_data(markets)
        ```
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        market_limit: int = DEFAULT_MARKET_LIMIT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._market_limit = market_limit
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )

    async def __aenter__(self) -> "GammaClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @with_retry(max_retries=2, base_delay=1.0, retry_on=(GammaClientError,))
    async def fetch_active_markets(self) -> list[dict[str, Any]]:
        """Fetch open markets ordered by 24h volume, highest first.

        Raises:
            RetryError: If every attempt failed.
        """
        params = {
            "limit": self._market_limit,
            "active": "true",
            "closed": "false",
            "order": "volume24hr",
            "ascending": "false",
        }
        try:
            response = await self._client.get("/markets", params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GammaClientError(f"Failed to fetch markets: {e}") from e

        if isinstance(data, dict):
            data = data.get("data") or data.get("markets") or []
        if not isinstance(data, list):
            raise GammaClientError("Unexpected markets response shape")
        logger.debug("Fetched %d markets from Gamma", len(data))
        return data
