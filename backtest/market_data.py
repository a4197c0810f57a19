"""Per-symbol bar sequences and the simulated clock.

`MarketData` owns every registered series. The stream advances the clock with
`advance_tick()`; the portfolio only ever sees a `PriceView`.
"""

import logging
from typing import Dict, List, Sequence

from .contracts import Bar, BarEvent, UnknownSymbol, UnorderedBars

logger = logging.getLogger(__name__)


class SecurityTimeSeries(object):
    """Bars for one symbol plus the price revealed so far."""

    __slots__ = ("symbol", "bars", "price")

    def __init__(self, symbol, bars):
        self.symbol = symbol
        self.bars = bars
        self.price = 0.0

    def __len__(self):
        return len(self.bars)

    def __repr__(self):
        return "SecurityTimeSeries(symbol=%r, bars=%d, price=%r)" % (
            self.symbol, len(self.bars), self.price)


def _check_ascending(symbol, bars):
    for i in range(1, len(bars)):
        if bars[i].timestamp <= bars[i - 1].timestamp:
            raise UnorderedBars(
                "bars for %s are not strictly ascending at index %d: %s <= %s" % (
                    symbol, i, bars[i].timestamp, bars[i - 1].timestamp))


class MarketData(object):
    """Registry of securities and the tick counter driving replay.

    A tick is one index position across all registered bar sequences: at tick
    `t` every symbol with at least `t + 1` bars reveals `bars[t]`.
    """

    def __init__(self):
        self._securities = {}  # type: Dict[str, SecurityTimeSeries]
        self._tick = 0
        self._max_tick = 0

    # ---- registration ----

    def register_series(self, symbol: str, bars: Sequence[Bar]) -> SecurityTimeSeries:
        if self._tick > 0:
            raise RuntimeError("cannot register %s after replay has started (tick=%d)"
                               % (symbol, self._tick))
        bars = list(bars)
        _check_ascending(symbol, bars)

        series = SecurityTimeSeries(symbol, bars)
        if symbol in self._securities:
            logger.info("replacing series for %s", symbol)
        self._securities[symbol] = series
        self._max_tick = max(len(s) for s in self._securities.values())
        logger.debug("registered %s with %d bars (max_tick=%d)", symbol, len(bars), self._max_tick)
        return series

    # ---- clock ----

    @property
    def tick(self) -> int:
        return self._tick

    @property
    def max_tick(self) -> int:
        return self._max_tick

    def has_next(self) -> bool:
        return self._tick < self._max_tick

    def advance_tick(self) -> List[BarEvent]:
        """Reveal the bars at the current tick, then move the clock forward."""
        events = []
        t = self._tick
        for symbol, series in self._securities.items():
            if t < len(series.bars):
                bar = series.bars[t]
                series.price = float(bar.close)
                events.append(BarEvent(symbol, bar))
        self._tick = t + 1
        return events

    # ---- prices ----

    @property
    def symbols(self) -> List[str]:
        return list(self._securities.keys())

    def __contains__(self, symbol):
        return symbol in self._securities

    def series(self, symbol: str) -> SecurityTimeSeries:
        try:
            return self._securities[symbol]
        except KeyError:
            raise UnknownSymbol(symbol) from None

    def price_of(self, symbol: str) -> float:
        return self.series(symbol).price

    def price_view(self) -> "PriceView":
        return PriceView(self)


class PriceView(object):
    """Read-only window onto a `MarketData` registry's current prices."""

    __slots__ = ("_market_data",)

    def __init__(self, market_data):
        self._market_data = market_data

    @property
    def symbols(self):
        return self._market_data.symbols

    def __contains__(self, symbol):
        return symbol in self._market_data

    def price_of(self, symbol):
        return self._market_data.price_of(symbol)
