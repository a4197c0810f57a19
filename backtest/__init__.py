
"""Minute-bar backtesting: replay historical bars and trade against them."""

from .contracts import (
    Bar,
    BarDataProvider,
    BarEvent,
    BacktestError,
    InvalidOrder,
    OrderOutcome,
    OrderResult,
    OrderSide,
    Position,
    Stats,
    UnknownSymbol,
    UnorderedBars,
    UnsupportedChannel,
)
from .market_data import MarketData, PriceView, SecurityTimeSeries
from .portfolio import Portfolio
from .stream import SimulatedStream, parse_channel
from .backtest import Backtest
