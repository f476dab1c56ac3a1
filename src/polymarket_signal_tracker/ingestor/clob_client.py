"""Order-book access through py-clob-client."""

import logging

from py_clob_client.client import ClobClient as BaseClobClient
from py_clob_client.exceptions import PolyApiException

from polymarket_signal_tracker.ingestor.models import Orderbook
from polymarket_signal_tracker.ingestor.retry import with_retry

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://clob.polymarket.com"
DEFAULT_CHAIN_ID = 137
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 0.5


class ClobClientError(Exception):
    """Base exception for ClobClient errors."""


class ClobClient:
    """Read-only CLOB client used for order-book snapshots.

    Calls are synchronous; async callers should run them with
    ``asyncio.to_thread``. A missing book is not retried.

    Example:
        >>> client = ClobClient()
        >>> orderbook = client.get_orderbook("token_id_here")
    """

    def __init__(
        self,
        *,
        host: str = DEFAULT_HOST,
        chain_id: int = DEFAULT_CHAIN_ID,
        client: BaseClobClient | None = None,
    ) -> None:
        self._host = host
        self._client = client or BaseClobClient(host, chain_id=chain_id)
        logger.info("Initialized ClobClient with host=%s", host)

    @with_retry(
        max_retries=DEFAULT_MAX_RETRIES,
        base_delay=DEFAULT_RETRY_BASE_DELAY,
        retry_on=(ClobClientError,),
    )
    def _fetch_orderbook(self, token_id: str) -> Orderbook:
        try:
            orderbook = self._client.get_order_book(token_id)
        except PolyApiException as e:
            if getattr(e, "status_code", None) == 404:
                return Orderbook(asset_id=token_id, bids=(), asks=())
            raise ClobClientError(f"Failed to fetch orderbook for {token_id}: {e}") from e
        except Exception as e:
            raise ClobClientError(f"Failed to fetch orderbook for {token_id}: {e}") from e
        return Orderbook.from_clob_orderbook(orderbook)

    def get_orderbook(self, token_id: str) -> Orderbook:
        """Fetch the order book for a token, best levels first.

        Args:
            token_id: Outcome token (asset) id.

        Returns:
            Orderbook. An empty book is returned when the token has none.

        Raises:
            RetryError: If every attempt failed.
        """
        return self._fetch_orderbook(token_id)
