"""High level entry point wiring the registry, the stream and the portfolio.

Shaped like the Alpaca client a strategy would use live: bars arrive through
`data_stream`, orders go through `create_order`.
"""

import pandas as pd

from .market_data import MarketData
from .portfolio import Portfolio
from .stream import SimulatedStream


class Backtest(object):
    def __init__(self, provider=None, start_value=100000, start_date=None, end_date=None,
                 timeframe="1Min"):
        if provider is None:
            raise ValueError("Missing data provider")
        if start_date is None:
            raise ValueError("You must provide a start date")
        if end_date is None:
            raise ValueError("You must provide an end date")
        if pd.Timestamp(start_date) > pd.Timestamp(end_date):
            raise ValueError("start date %s is after end date %s" % (start_date, end_date))

        self._market_data = MarketData()
        self._portfolio = Portfolio(start_value, self._market_data.price_view())
        self.data_stream = SimulatedStream(provider, self._market_data, start_date, end_date,
                                           timeframe=timeframe)

    @classmethod
    def from_config(cls, config, provider):
        return cls(
            provider=provider,
            start_value=config.start_value,
            start_date=config.start_date,
            end_date=config.end_date,
            timeframe=config.timeframe,
        )

    @property
    def market_data(self):
        return self._market_data

    @property
    def portfolio(self):
        return self._portfolio

    @property
    def cash(self):
        return self._portfolio.cash

    def create_order(self, **order):
        """Place a market order, see `Portfolio.create_order`."""
        return self._portfolio.create_order(**order)

    def list_positions(self):
        return self._portfolio.list_positions()

    def get_value(self):
        return self._portfolio.get_value()

    def get_stats(self):
        """Start value, current value and return on investment."""
        return self._portfolio.get_stats()
