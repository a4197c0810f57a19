"""
Backtest configuration container.

All monetary values are in USD. Credentials are not part of this object: the
caller builds a data provider explicitly and hands it to `Backtest`.
"""

import pandas as pd

from .data_source import DEFAULT_TZ


class BacktestConfig(object):
    """Settings for one backtest run."""

    def __init__(
        self,
        start_date=None,
        end_date=None,
        start_value=100000.0,
        timeframe="1Min",
        tz=DEFAULT_TZ,
    ):
        if start_date is None:
            raise ValueError("You must provide a start date")
        if end_date is None:
            raise ValueError("You must provide an end date")

        self.start_date = pd.Timestamp(start_date)
        self.end_date = pd.Timestamp(end_date)
        if self.start_date > self.end_date:
            raise ValueError("start date %s is after end date %s" % (
                self.start_date.date(), self.end_date.date()))

        self.start_value = float(start_value)
        if self.start_value <= 0:
            raise ValueError("start value must be positive, got %r" % start_value)

        self.timeframe = str(timeframe)
        self.tz = str(tz)

    @classmethod
    def from_args(cls, args):
        return cls(
            start_date=args.start,
            end_date=args.end,
            start_value=args.start_value,
            timeframe=args.timeframe,
            tz=args.tz,
        )

    def to_dict(self):
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "start_value": self.start_value,
            "timeframe": self.timeframe,
            "tz": self.tz,
        }
