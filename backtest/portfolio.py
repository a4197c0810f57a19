"""In-memory cash and position ledger.

Orders execute immediately and completely at the current replay price, or not
at all. The ledger reads prices through a `PriceView` and never advances the
clock itself.
"""

import logging
import numbers
from typing import Dict, List, Optional

from .contracts import (
    InvalidOrder,
    OrderOutcome,
    OrderResult,
    OrderSide,
    OrderType,
    Position,
    Stats,
    order_side,
)


class Portfolio(object):
    """Cash plus the positions taken with it.

    This ledger tracks:
    - cash
    - positions (one per symbol, quantity > 0)
    - every order that passed validation

    It does NOT model slippage, fees or partial fills.
    """

    def __init__(self, start_value, prices, logger=None):
        self._cash = float(start_value)
        self._start_value = float(start_value)
        self._positions = {}  # type: Dict[str, Position]
        self._prices = prices
        self._history = []  # type: List[OrderResult]
        self._l = logger or logging.getLogger(__name__)

    # ---- basic accessors ----

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def start_value(self) -> float:
        return self._start_value

    @property
    def order_history(self) -> List[OrderResult]:
        return list(self._history)

    def list_positions(self) -> List[Position]:
        return list(self._positions.values())

    def get_position(self, symbol) -> Optional[Position]:
        return self._positions.get(symbol)

    def find_or_create_position(self, symbol) -> Position:
        pos = self._positions.get(symbol)
        if pos is None:
            pos = Position(symbol)
            self._positions[symbol] = pos
        return pos

    # ---- orders ----

    def create_order(self, symbol=None, qty=None, side=None, type=OrderType.MARKET.value,
                     time_in_force="day", **kwargs) -> OrderResult:
        """Execute a market order at the current price.

        Raises InvalidOrder for malformed requests. Orders the ledger cannot
        afford (or cover) are logged and returned with a rejecting outcome.
        """
        side = self._validate(symbol, qty, side, type, kwargs)
        qty = int(qty)
        price = float(self._prices.price_of(symbol))
        notional = qty * price

        if side == OrderSide.SELL:
            pos = self._positions.get(symbol)
            held = pos.quantity if pos is not None else 0
            if held < qty:
                return self._reject(
                    symbol, side, qty, price, OrderOutcome.INSUFFICIENT_POSITION,
                    "attempted to sell %d %s but only %d held" % (qty, symbol, held))
            self._cash += notional
            pos.quantity -= qty
            if pos.quantity == 0:
                del self._positions[symbol]
        else:
            if self._cash < notional:
                return self._reject(
                    symbol, side, qty, price, OrderOutcome.INSUFFICIENT_FUNDS,
                    "order not executed, not enough cash: need %.2f, have %.2f"
                    % (notional, self._cash))
            pos = self.find_or_create_position(symbol)
            self._cash -= notional
            pos.quantity += qty

        result = OrderResult(symbol, side.value, qty, price, OrderOutcome.FILLED)
        self._history.append(result)
        self._l.debug("filled %s %d %s @ %.4f cash=%.2f", side.value, qty, symbol, price, self._cash)
        return result

    def _validate(self, symbol, qty, side, type, extra):
        if extra:
            raise InvalidOrder("Unsupported order fields: %s" % ", ".join(sorted(extra)))
        if not symbol:
            raise InvalidOrder("No symbol provided for order.")
        if isinstance(qty, bool) or not isinstance(qty, numbers.Integral) or qty < 1:
            raise InvalidOrder("Quantity must be an integer >= 1 to create an order.")
        s = order_side(side)
        if s is None:
            raise InvalidOrder("Side not provided correctly. Must be buy or sell.")
        if str(getattr(type, "value", type)) != OrderType.MARKET.value:
            raise InvalidOrder("Only market orders are supported, got type=%r." % (type,))
        return s

    def _reject(self, symbol, side, qty, price, outcome, reason):
        self._l.warning(reason)
        result = OrderResult(symbol, side.value, qty, price, outcome, reason)
        self._history.append(result)
        return result

    # ---- valuation ----

    def get_value(self) -> float:
        """Cash plus every position marked at its current price."""
        value = self._cash
        for sym, pos in self._positions.items():
            value += pos.quantity * float(self._prices.price_of(sym))
        return value

    def get_stats(self) -> Stats:
        end_value = self.get_value()
        roi = end_value / self._start_value - 1
        return Stats(start_value=self._start_value, end_value=end_value, roi=roi)
