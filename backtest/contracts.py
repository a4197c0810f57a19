"""Contracts shared by the registry, the stream and the portfolio.

This module defines **value objects, error types and the data provider
interface**. It contains no replay or accounting logic; those live in
`market_data`, `stream` and `portfolio`.
"""

import abc
import datetime as _dt
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


# ----------------------------
# Errors
# ----------------------------


class BacktestError(Exception):
    """Base class for errors raised by the backtester."""


class InvalidOrder(BacktestError, ValueError):
    """An order request failed validation. Nothing was mutated."""


class UnsupportedChannel(BacktestError, ValueError):
    """A subscription label is not a minute-aggregate channel."""


class UnknownSymbol(BacktestError, KeyError):
    """A price was requested for a symbol that was never registered."""

    def __init__(self, symbol):
        super(UnknownSymbol, self).__init__(symbol)
        self.symbol = symbol

    def __str__(self):
        return "unknown symbol: %s" % self.symbol


class UnorderedBars(BacktestError, ValueError):
    """Bars handed to the registry are not strictly ascending by timestamp."""


# ----------------------------
# Market data value objects
# ----------------------------


class Bar(NamedTuple):
    """A one-minute OHLCV bar.

    Notes:
    - `timestamp` MUST be timezone-aware (UTC recommended).
    - Prices are floats (USD).
    - `volume` is shares.
    """

    symbol: str
    timestamp: _dt.datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


class BarEvent(NamedTuple):
    """A bar revealed by the registry at one tick."""

    symbol: str
    bar: Bar


# ----------------------------
# Orders / ledger value objects
# ----------------------------


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"


class OrderOutcome(str, Enum):
    """Terminal state of an order that passed validation."""

    FILLED = "filled"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_POSITION = "insufficient_position"


class OrderResult(NamedTuple):
    """What happened to one order.

    Rejections are reported here (and logged) rather than raised.
    """

    symbol: str
    side: str
    qty: int
    price: float
    outcome: OrderOutcome
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == OrderOutcome.FILLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side,
            "qty": self.qty,
            "price": self.price,
            "outcome": self.outcome.value,
            "reason": self.reason,
        }


class Position(object):
    """Shares held in one symbol. Quantity is never negative."""

    __slots__ = ("symbol", "quantity")

    def __init__(self, symbol: str, quantity: int = 0) -> None:
        self.symbol = symbol
        self.quantity = quantity

    def __repr__(self):
        return "Position(symbol=%r, quantity=%r)" % (self.symbol, self.quantity)


class Stats(NamedTuple):
    """Summary of a backtest run."""

    start_value: float
    end_value: float
    roi: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "startValue": self.start_value,
            "endValue": self.end_value,
            "roi": self.roi,
        }


# ----------------------------
# Data provider contract
# ----------------------------


class BarDataProvider(abc.ABC):
    """Source of historical bars for the replay stream.

    Implementations live in `data_source`. The stream calls `get_bars` once per
    subscribed symbol, possibly from worker threads, so implementations must not
    share mutable state across calls without their own locking.
    """

    @abc.abstractmethod
    def get_bars(
        self,
        symbol: str,
        start: Any,
        end: Any,
        timeframe: str = "1Min",
    ) -> List[Bar]:
        """Return bars for `symbol` between `start` and `end`.

        The result is sorted ascending by timestamp and may be empty when the
        provider has no data for the range.
        """


def order_side(value: Optional[Any]) -> Optional[OrderSide]:
    """Coerce 'buy'/'sell' (or an OrderSide) to OrderSide; None if invalid."""
    if isinstance(value, OrderSide):
        return value
    if not isinstance(value, str):
        return None
    try:
        return OrderSide(value)
    except ValueError:
        return None
