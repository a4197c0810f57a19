# tests/conftest.py
import datetime as dt

import pytest

from backtest.contracts import Bar, BarDataProvider
from backtest.market_data import MarketData
from backtest.portfolio import Portfolio

T0 = dt.datetime(2020, 7, 1, 13, 30, tzinfo=dt.timezone.utc)


def _make_bars(symbol, closes, start=T0):
    return [
        Bar(symbol, start + dt.timedelta(minutes=i), float(c), float(c), float(c), float(c), 100.0)
        for i, c in enumerate(closes)
    ]


class FakeProvider(BarDataProvider):
    """Serves canned bars and records every request."""

    def __init__(self, data=None, errors=None):
        self.data = data or {}
        self.errors = errors or {}
        self.calls = []

    def get_bars(self, symbol, start, end, timeframe="1Min"):
        self.calls.append((symbol, start, end, timeframe))
        if symbol in self.errors:
            raise self.errors[symbol]
        return list(self.data.get(symbol, []))


@pytest.fixture
def make_bars():
    return _make_bars


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def market_data():
    return MarketData()


@pytest.fixture
def priced_market(make_bars):
    """Registry where AAPL trades at 50 (first tick revealed), then 60."""
    md = MarketData()
    md.register_series("AAPL", make_bars("AAPL", [50, 60]))
    md.register_series("SPY", make_bars("SPY", [300]))
    md.advance_tick()
    return md


@pytest.fixture
def portfolio(priced_market):
    return Portfolio(100000, priced_market.price_view())
