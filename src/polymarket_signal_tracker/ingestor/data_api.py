"""Data API client: wallet positions and the profit leaderboard."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from polymarket_signal_tracker.ingestor.retry import with_retry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://data-api.polymarket.com"
DEFAULT_TIMEOUT = 10.0
USER_AGENT = "polymarket-signal-tracker/0.1"
DEFAULT_LEADERBOARD_LIMIT = 200
LEADERBOARD_PAGE_SIZE = 50  # server-side cap per request


class DataApiError(Exception):
    """Base exception for Data API errors."""


class LeaderboardPeriod(str, Enum):
    """Leaderboard window. Values are the display names stored with snapshots."""

    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    ALL_TIME = "All Time"

    @property
    def query_value(self) -> str:
        return _PERIOD_QUERY[self]


_PERIOD_QUERY = {
    LeaderboardPeriod.DAILY: "DAY",
    LeaderboardPeriod.WEEKLY: "WEEK",
    LeaderboardPeriod.MONTHLY: "MONTH",
    LeaderboardPeriod.ALL_TIME: "ALL",
}


@dataclass(frozen=True)
class LeaderboardEntry:
    """One ranked wallet for one period."""

    period: LeaderboardPeriod
    rank: int
    wallet: str
    display_name: str
    profit: float | None
    volume: float | None

    @classmethod
    def from_dict(cls, period: LeaderboardPeriod, data: dict[str, Any], fallback_rank: int) -> "LeaderboardEntry | None":
        wallet = str(data.get("proxyWallet") or data.get("wallet") or data.get("address") or "").lower()
        if not wallet:
            return None
        try:
            rank = int(data.get("rank") or fallback_rank)
        except (TypeError, ValueError):
            rank = fallback_rank
        return cls(
            period=period,
            rank=rank,
            wallet=wallet,
            display_name=str(data.get("userName") or data.get("name") or data.get("pseudonym") or wallet),
            profit=_float_or_none(data.get("pnl", data.get("amount"))),
            volume=_float_or_none(data.get("vol", data.get("volume"))),
        )


def _float_or_none(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class DataApiClient:
    """Async client for the Polymarket Data API.

    Methods raise RetryError once retries are exhausted; callers decide
    what a failure degrades to.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )

    async def __aenter__(self) -> "DataApiClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_list(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise DataApiError(f"GET {path} failed: {e}") from e
        if not isinstance(data, list):
            raise DataApiError(f"Unexpected response shape from {path}")
        return [item for item in data if isinstance(item, dict)]

    @with_retry(max_retries=2, base_delay=0.5, retry_on=(DataApiError,))
    async def get_positions(self, user: str) -> list[dict[str, Any]]:
        """Open positions for a wallet."""
        return await self._get_list("/positions", {"user": user})

    @with_retry(max_retries=2, base_delay=0.5, retry_on=(DataApiError,))
    async def get_closed_positions(self, user: str) -> list[dict[str, Any]]:
        """Closed positions for a wallet."""
        return await self._get_list("/closed-positions", {"user": user})

    @with_retry(max_retries=2, base_delay=1.0, retry_on=(DataApiError,))
    async def _get_leaderboard_page(
        self,
        period: LeaderboardPeriod,
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        return await self._get_list(
            "/v1/leaderboard",
            {
                "timePeriod": period.query_value,
                "orderBy": "PNL",
                "limit": limit,
                "offset": offset,
            },
        )

    async def get_leaderboard(
        self,
        period: LeaderboardPeriod,
        *,
        limit: int = DEFAULT_LEADERBOARD_LIMIT,
        page_size: int = LEADERBOARD_PAGE_SIZE,
    ) -> list[LeaderboardEntry]:
        """Top wallets by profit for a period, best first.

        The endpoint caps each response, so ranks are fetched page by page
        with `offset` until `limit` rows are read or a short page ends the
        board.

        Args:
            period: Leaderboard window.
            limit: Number of ranked wallets to fetch.
            page_size: Rows requested per call.

        Returns:
            Parsed entries; rows without a wallet are skipped.
        """
        entries = []
        offset = 0
        while offset < limit:
            requested = min(page_size, limit - offset)
            rows = await self._get_leaderboard_page(period, offset, requested)
            for index, row in enumerate(rows, start=offset + 1):
                entry = LeaderboardEntry.from_dict(period, row, fallback_rank=index)
                if entry is not None:
                    entries.append(entry)
            if len(rows) < requested:
                break
            offset += len(rows)
        logger.debug("Fetched %d %s leaderboard entries", len(entries), period.value)
        return entries
