"""
State holder combining the synchronized portfolio and cached prices
into a view-ready projection.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import date as date_cls
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..config import DEFAULT_CLIENT_ID, SAVE_FAILED_MESSAGE
from .calculator import HoldingView, PortfolioCalculator
from .models import Portfolio
from .portfolio_store import PortfolioStore, SaveOutcome
from .price_service import PriceCache


@dataclass(frozen=True)
class PortfolioUiState:
    """Snapshot published to the presentation layer"""
    is_loading: bool = True
    error: Optional[str] = None
    holdings: Tuple[HoldingView, ...] = ()
    raw: Portfolio = field(default_factory=Portfolio)
    last_save_outcome: Optional[SaveOutcome] = None


class PortfolioState:
    """
    Owns the current UI state and serializes loads and mutations.

    Listeners registered with subscribe() receive every published state.
    """

    def __init__(
        self,
        store: PortfolioStore,
        price_cache: PriceCache,
        client_id: str = DEFAULT_CLIENT_ID,
        calculator: Optional[PortfolioCalculator] = None
    ):
        self.store = store
        self.price_cache = price_cache
        self.client_id = client_id
        self.calculator = calculator or PortfolioCalculator()
        self.prices: Dict[str, float] = {}
        self._state = PortfolioUiState()
        self._listeners: List[Callable[[PortfolioUiState], None]] = []
        self._lock = asyncio.Lock()

    @property
    def state(self) -> PortfolioUiState:
        return self._state

    def subscribe(self, listener: Callable[[PortfolioUiState], None]) -> Callable[[], None]:
        """
        Register a listener for published states.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: PortfolioUiState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {str(e)}")

    def _project(self, portfolio: Portfolio, outcome: Optional[SaveOutcome] = None) -> PortfolioUiState:
        return PortfolioUiState(
            is_loading=False,
            error=None,
            holdings=tuple(self.calculator.holding_views(portfolio, self.prices)),
            raw=portfolio,
            last_save_outcome=outcome
        )

    async def load(self, force_prices: bool = False) -> PortfolioUiState:
        """
        Load the portfolio and prices, then publish a fresh projection.

        Args:
            force_prices: Bypass the fresh price cache

        Returns:
            The published state
        """
        self._publish(replace(self._state, is_loading=True, error=None))

        async with self._lock:
            portfolio = await self.store.load()
            self.prices = await self.price_cache.get_prices(force=force_prices)
            self._publish(self._project(portfolio))

        logger.info(f"Loaded portfolio with {len(portfolio.holdings)} holdings")
        return self._state

    async def add_lot(
        self,
        symbol: str,
        qty: float,
        price: float,
        date: Optional[str] = None
    ) -> bool:
        """
        Record a purchase and save the resulting document.

        On failure the previous portfolio stays published with an error message.

        Args:
            symbol: Ticker (surrounding whitespace is ignored)
            qty: Signed quantity
            price: Unit cost
            date: ISO date, today when omitted

        Returns:
            Whether the save succeeded
        """
        symbol = symbol.strip()
        date = date or date_cls.today().isoformat()

        async with self._lock:
            modified_at = datetime.now(timezone.utc).isoformat()
            updated = (
                self._state.raw
                .upsert_lot(symbol, qty, price, date)
                .stamped(modified_at, self.client_id)
            )

            outcome = await self.store.save_with_outcome(updated)
            if outcome is SaveOutcome.SAVED:
                self._publish(self._project(updated, outcome))
                logger.info(f"Added lot {qty} x {symbol} @ {price}")
                return True

            self._publish(replace(self._state, error=SAVE_FAILED_MESSAGE, last_save_outcome=outcome))
            logger.warning(f"Could not add lot for {symbol}: {outcome.value}")
            return False
