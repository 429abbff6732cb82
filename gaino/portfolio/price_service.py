"""
Price service for portfolio tracking.
Serves last-known prices through a time-limited cache in front of the price feed.
"""

import json
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from loguru import logger

from ..api.prices import AsyncPricesAPI
from ..config import PRICE_CACHE_TTL, PRICE_TAB


@dataclass
class CachedPrices:
    """Price map together with the time it was fetched (epoch seconds)"""
    prices: Dict[str, float]
    fetched_at: float


class PriceCacheStorage:
    """Persistence of the last fetched price map in a small JSON file"""

    def __init__(self, file_path: str):
        """
        Initialize price cache storage.

        Args:
            file_path: Path to the price cache JSON file
        """
        self.file_path = file_path
        logger.debug(f"Initialized PriceCacheStorage with file: {file_path}")

    def load(self) -> Optional[CachedPrices]:
        """
        Load the cached price map.

        Returns:
            Cached prices, or None when absent or unreadable
        """
        if not os.path.exists(self.file_path):
            return None

        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)

            prices = {str(symbol): float(price) for symbol, price in data["prices"].items()}
            return CachedPrices(prices=prices, fetched_at=float(data["ts"]))

        except Exception as e:
            logger.warning(f"Failed to parse cached prices: {str(e)}")
            return None

    def save(self, cached: CachedPrices) -> bool:
        """
        Save a price map.

        Returns:
            Whether saving was successful
        """
        try:
            directory = os.path.dirname(self.file_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self.file_path, "w", encoding="utf-8") as f:
                json.dump({"prices": cached.prices, "ts": cached.fetched_at}, f)

            return True

        except Exception as e:
            logger.error(f"Error saving price cache: {str(e)}")
            return False


class PriceCache:
    """
    Read-through cache over the price feed.

    Fresh entries (younger than the TTL) are served without a network call;
    when the feed fails, any cached map is preferred over nothing.
    """

    def __init__(
        self,
        prices_api: AsyncPricesAPI,
        storage: PriceCacheStorage,
        ttl: float = PRICE_CACHE_TTL,
        tab: str = PRICE_TAB,
        clock: Callable[[], float] = time.time
    ):
        self.prices_api = prices_api
        self.storage = storage
        self.ttl = ttl
        self.tab = tab
        self.clock = clock

    async def get_prices(self, force: bool = False) -> Dict[str, float]:
        """
        Get the latest known prices.

        Args:
            force: Skip the fresh-cache shortcut and always try the feed

        Returns:
            Mapping of symbol -> price (stale or empty on failure)
        """
        now = self.clock()
        cached = self.storage.load()

        if not force and cached is not None and (now - cached.fetched_at) < self.ttl:
            logger.debug(f"Serving {len(cached.prices)} cached prices")
            return dict(cached.prices)

        try:
            logger.debug("Fetching prices from feed...")
            payload = await self.prices_api.get_stocks(self.tab)
        except Exception as e:
            if cached is not None:
                logger.warning(f"Price fetch failed; falling back to stale cache: {str(e)}")
                return dict(cached.prices)

            logger.error(f"Price fetch failed and no cache is available: {str(e)}")
            return {}

        self.storage.save(CachedPrices(prices=payload.prices, fetched_at=now))
        logger.debug(f"Successfully cached {len(payload.prices)} prices")
        return dict(payload.prices)
