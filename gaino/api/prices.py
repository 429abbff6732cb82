"""
Asynchronous client for the read-only price feed.
The feed is a generic query-parameterized endpoint returning {tab, asOf, prices}.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from loguru import logger

from ..config import PRICE_TAB, PRICES_TIMEOUT
from .base import AsyncBaseAPI, require_base_url
from .request_utilities import APIError


@dataclass
class PricesPayload:
    """Data model for one price feed response"""
    tab: str
    as_of: str
    prices: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricesPayload":
        """Create from the feed's JSON body, coercing prices to float"""
        raw_prices = data.get("prices")
        if not isinstance(raw_prices, dict):
            raise ValueError("Price payload has no 'prices' mapping")

        prices = {str(symbol): float(price) for symbol, price in raw_prices.items()}
        return cls(
            tab=str(data.get("tab", "")),
            as_of=str(data.get("asOf", "")),
            prices=prices
        )


class AsyncPricesAPI(AsyncBaseAPI):
    """
    Asynchronous client for the price feed endpoint.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: int = PRICES_TIMEOUT):
        """
        Initialize the Prices API client.

        Args:
            base_url: Feed base URL (the deployment root, the client appends "exec")
            timeout: Request timeout in seconds
        """
        super().__init__(base_url=base_url or "", timeout=timeout)
        logger.debug("Initialized AsyncPricesAPI")

    @require_base_url
    async def get_stocks(self, tab: str = PRICE_TAB) -> PricesPayload:
        """
        Get the latest price snapshot for a tab of the feed.

        Args:
            tab: Feed tab to read

        Returns:
            Parsed payload

        Raises:
            APIError: On transport failure or malformed payload
        """
        response = await self.get("exec", params={"tab": tab})

        success, _, error = await self.process_response(response)
        if not success:
            raise APIError(f"Price feed returned an error: {error}", response=response)

        try:
            payload = PricesPayload.from_dict(response)
        except (TypeError, ValueError) as e:
            raise APIError(f"Malformed price payload: {e}", response=response)

        logger.debug(f"Price feed tab={payload.tab} asOf={payload.as_of} ({len(payload.prices)} prices)")
        return payload
