"""
Portfolio package.
Provides the document model, the synchronized store, the price cache and the state holder.
"""

from .calculator import HoldingView, PortfolioCalculator
from .models import Holding, Lot, Portfolio, PortfolioParseError
from .portfolio_store import PortfolioStore, SaveOutcome
from .price_service import PriceCache, PriceCacheStorage
from .state import PortfolioState, PortfolioUiState

__all__ = [
    "Holding",
    "HoldingView",
    "Lot",
    "Portfolio",
    "PortfolioCalculator",
    "PortfolioParseError",
    "PortfolioState",
    "PortfolioStore",
    "PortfolioUiState",
    "PriceCache",
    "PriceCacheStorage",
    "SaveOutcome",
]
