"""
Data models for portfolio tracking.
Defines the portfolio document, its holdings and lots, and the derived P&L figures.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from ..config import DEFAULT_CLIENT_ID, DEFAULT_CURRENCY, DEFAULT_KIND, SCHEMA_VERSION


class PortfolioParseError(ValueError):
    """Raised when content does not describe a portfolio document"""
    pass


def _require(data: Dict[str, Any], key: str, what: str) -> Any:
    if key not in data or data[key] is None:
        raise PortfolioParseError(f"{what} is missing required field '{key}'")
    return data[key]


def _number(value: Any, what: str) -> float:
    # bool is an int subclass but never a valid quantity or price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PortfolioParseError(f"{what} must be a number, got {value!r}")
    try:
        return float(value)
    except OverflowError:
        raise PortfolioParseError(f"{what} is out of range for a float")


def _string(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise PortfolioParseError(f"{what} must be a string, got {value!r}")
    return value


def _sequence(value: Any, what: str) -> list:
    if not isinstance(value, list):
        raise PortfolioParseError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise PortfolioParseError(f"{what} must be an object, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Lot:
    """One purchase record: quantity, unit price and ISO date (yyyy-MM-dd)"""
    qty: float
    price: float
    date: str

    @property
    def cost(self) -> float:
        return self.qty * self.price

    def to_dict(self) -> Dict[str, Any]:
        return {"qty": self.qty, "price": self.price, "date": self.date}

    @classmethod
    def from_dict(cls, data: Any) -> "Lot":
        data = _object(data, "Lot")
        return cls(
            qty=_number(_require(data, "qty", "Lot"), "Lot.qty"),
            price=_number(_require(data, "price", "Lot"), "Lot.price"),
            date=_string(_require(data, "date", "Lot"), "Lot.date"),
        )


@dataclass(frozen=True)
class Holding:
    """All lots of one symbol"""
    id: str
    symbol: str
    kind: str = DEFAULT_KIND
    currency: str = DEFAULT_CURRENCY
    lots: Tuple[Lot, ...] = ()

    def total_qty(self) -> float:
        """Sum of lot quantities"""
        return sum(lot.qty for lot in self.lots)

    def invested(self) -> float:
        """Sum of qty x price over all lots"""
        return sum(lot.cost for lot in self.lots)

    def avg_cost(self) -> float:
        """Average unit cost; 0.0 when the total quantity is not positive"""
        qty = self.total_qty()
        if qty > 0:
            return self.invested() / qty
        return 0.0

    def current_value(self, last_price: float) -> float:
        return self.total_qty() * last_price

    def pnl_abs(self, last_price: float) -> float:
        """Absolute gain/loss at the given price"""
        return self.current_value(last_price) - self.invested()

    def pnl_pct(self, last_price: float) -> float:
        """Gain/loss as a percentage of invested capital; 0.0 when nothing is invested"""
        invested = self.invested()
        if invested > 0:
            return (self.pnl_abs(last_price) / invested) * 100
        return 0.0

    def with_lot(self, lot: Lot) -> "Holding":
        return replace(self, lots=self.lots + (lot,))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "symbol": self.symbol,
            "currency": self.currency,
            "lots": [lot.to_dict() for lot in self.lots],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Holding":
        data = _object(data, "Holding")
        return cls(
            id=_string(_require(data, "id", "Holding"), "Holding.id"),
            symbol=_string(_require(data, "symbol", "Holding"), "Holding.symbol"),
            kind=_string(data.get("kind", DEFAULT_KIND), "Holding.kind"),
            currency=_string(data.get("currency", DEFAULT_CURRENCY), "Holding.currency"),
            lots=tuple(Lot.from_dict(lot) for lot in _sequence(data.get("lots", []), "Holding.lots")),
        )


@dataclass(frozen=True)
class Portfolio:
    """
    The synchronized portfolio document.

    Instances are immutable; every mutation returns a new Portfolio.
    Holdings keep the order in which their first lot was added.
    """
    version: int = SCHEMA_VERSION
    display_currency: str = DEFAULT_CURRENCY
    holdings: Tuple[Holding, ...] = ()
    last_modified_at: Optional[str] = None
    last_modified_by_client: str = DEFAULT_CLIENT_ID

    def find_holding(self, symbol: str) -> Optional[Holding]:
        for holding in self.holdings:
            if holding.symbol == symbol:
                return holding
        return None

    def upsert_lot(self, symbol: str, qty: float, price: float, date: str) -> "Portfolio":
        """
        Append a lot to the holding for symbol, creating the holding if needed.

        Args:
            symbol: Ticker, matched exactly
            qty: Signed quantity
            price: Unit cost
            date: ISO calendar date

        Returns:
            A new Portfolio; this one is left untouched
        """
        lot = Lot(qty=float(qty), price=float(price), date=date)

        holdings = list(self.holdings)
        for index, holding in enumerate(holdings):
            if holding.symbol == symbol:
                holdings[index] = holding.with_lot(lot)
                break
        else:
            holdings.append(Holding(id=symbol, symbol=symbol, lots=(lot,)))

        return replace(self, holdings=tuple(holdings))

    def stamped(self, modified_at: str, client_id: str) -> "Portfolio":
        """Return a copy carrying new modification metadata"""
        return replace(self, last_modified_at=modified_at, last_modified_by_client=client_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the document's JSON shape; a null modification time is omitted"""
        data: Dict[str, Any] = {
            "version": self.version,
            "displayCurrency": self.display_currency,
            "holdings": [holding.to_dict() for holding in self.holdings],
        }
        if self.last_modified_at is not None:
            data["lastModifiedAt"] = self.last_modified_at
        data["lastModifiedByClient"] = self.last_modified_by_client
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Portfolio":
        """
        Create from a decoded JSON document.

        Missing or unknown fields fall back to defaults; fields of the wrong type
        raise PortfolioParseError.
        """
        data = _object(data, "Portfolio")

        version = data.get("version", SCHEMA_VERSION)
        if isinstance(version, bool) or not isinstance(version, int):
            raise PortfolioParseError(f"Portfolio.version must be an integer, got {version!r}")

        last_modified_at = data.get("lastModifiedAt")
        if last_modified_at is not None:
            last_modified_at = _string(last_modified_at, "Portfolio.lastModifiedAt")

        holdings = _sequence(data.get("holdings", []), "Portfolio.holdings")

        return cls(
            version=version,
            display_currency=_string(data.get("displayCurrency", DEFAULT_CURRENCY), "Portfolio.displayCurrency"),
            holdings=tuple(Holding.from_dict(holding) for holding in holdings),
            last_modified_at=last_modified_at,
            last_modified_by_client=_string(
                data.get("lastModifiedByClient", DEFAULT_CLIENT_ID), "Portfolio.lastModifiedByClient"
            ),
        )
