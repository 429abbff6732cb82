"""
Calculator for portfolio statistics.
Projects holdings and last-known prices into per-position and portfolio-wide P&L.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from .models import Portfolio


@dataclass(frozen=True)
class HoldingView:
    """View-ready figures for one holding"""
    symbol: str
    qty: float
    avg_cost: float
    last_price: float
    pnl_abs: float
    pnl_pct: float


class PortfolioCalculator:
    """Calculator for portfolio statistics"""

    def holding_views(self, portfolio: Portfolio, prices: Mapping[str, float]) -> List[HoldingView]:
        """
        Compute per-holding figures in holding order.

        Args:
            portfolio: Portfolio to analyze
            prices: Mapping of symbol -> last price; missing symbols count as 0.0

        Returns:
            One HoldingView per holding
        """
        views = []
        for holding in portfolio.holdings:
            last = prices.get(holding.symbol, 0.0)
            views.append(HoldingView(
                symbol=holding.symbol,
                qty=holding.total_qty(),
                avg_cost=holding.avg_cost(),
                last_price=last,
                pnl_abs=holding.pnl_abs(last),
                pnl_pct=holding.pnl_pct(last)
            ))
        return views

    def calculate_portfolio_summary(self, portfolio: Portfolio, prices: Mapping[str, float]) -> Dict[str, Any]:
        """
        Calculate portfolio summary statistics.

        Returns:
            Dictionary with invested, current value, gain/loss and holding count
        """
        invested = sum(holding.invested() for holding in portfolio.holdings)
        current = sum(
            holding.current_value(prices.get(holding.symbol, 0.0)) for holding in portfolio.holdings
        )
        gain_loss = current - invested

        return {
            "invested": invested,
            "current_value": current,
            "gain_loss": gain_loss,
            "gain_loss_percent": (gain_loss / invested) * 100 if invested > 0 else 0.0,
            "holding_count": len(portfolio.holdings),
            "display_currency": portfolio.display_currency,
        }
