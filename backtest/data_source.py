"""Historical bar providers.

Every provider implements `BarDataProvider.get_bars(symbol, start, end,
timeframe)` and returns a list of `Bar`. Three sources are supported:

- Alpaca market data (`alpaca_trade_api.REST.get_bars`)
- Twelve Data `time_series` REST endpoint
- local CSV / Parquet files, one per symbol

Expected canonical frame schema (used internally before conversion to bars):
- index: timezone-aware pandas DatetimeIndex
- columns: ["symbol","open","high","low","close","volume"]
"""

import datetime as _dt
import logging
import os

import alpaca_trade_api as alpaca
import pandas as pd
import pytz
import requests
from alpaca_trade_api.rest import TimeFrame

from .contracts import Bar, BarDataProvider

logger = logging.getLogger(__name__)

DEFAULT_TZ = "America/New_York"
SESSION_OPEN = _dt.time(9, 30)
SESSION_CLOSE = _dt.time(15, 59, 59)


def _ensure_tz(df, tz):
    if df.index.tz is None:
        return df.tz_localize(tz)
    return df.tz_convert(tz)


def normalize_bars(df, symbol, tz=DEFAULT_TZ):
    """Normalize a DataFrame to the canonical schema.

    Accepts common column variations (case-insensitive).
    """
    if df is None or len(df) == 0:
        raise ValueError("empty bars dataframe")

    # Standardize column names
    cols = {c.lower(): c for c in df.columns}
    def pick(name):
        if name in df.columns:
            return name
        if name.lower() in cols:
            return cols[name.lower()]
        return None

    open_c = pick("open")
    high_c = pick("high")
    low_c = pick("low")
    close_c = pick("close")
    vol_c = pick("volume")

    if close_c is None:
        raise ValueError("bars must include a close column")

    # Ensure datetime index
    if not isinstance(df.index, pd.DatetimeIndex):
        tcol = pick("timestamp") or pick("time") or pick("datetime") or pick("date")
        if tcol is None:
            raise ValueError("bars must have a DatetimeIndex or a timestamp column")
        df = df.set_index(pd.to_datetime(df[tcol]))
    df = df.sort_index()
    df.index = pd.DatetimeIndex(df.index)
    df = _ensure_tz(df, tz)

    out = pd.DataFrame(index=df.index)
    out["symbol"] = symbol
    out["open"] = df[open_c].astype(float) if open_c is not None else df[close_c].astype(float)
    out["high"] = df[high_c].astype(float) if high_c is not None else out["open"]
    out["low"] = df[low_c].astype(float) if low_c is not None else out["open"]
    out["close"] = df[close_c].astype(float)
    out["volume"] = df[vol_c].astype(float) if vol_c is not None else 0.0

    return out


def bars_from_frame(df):
    """Convert a canonical frame into a list of `Bar`, in index order."""
    bars = []
    for ts, row in df.iterrows():
        bars.append(Bar(
            symbol=row["symbol"],
            timestamp=ts.to_pydatetime(),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row["volume"]),
        ))
    return bars


def session_bounds(start, end, tz=DEFAULT_TZ):
    """Regular-session window [09:30 on start, 15:59:59 on end] in UTC."""
    zone = pytz.timezone(tz)
    start_day = pd.Timestamp(start).date()
    end_day = pd.Timestamp(end).date()
    start_ts = zone.localize(_dt.datetime.combine(start_day, SESSION_OPEN))
    end_ts = zone.localize(_dt.datetime.combine(end_day, SESSION_CLOSE))
    return start_ts.astimezone(pytz.utc), end_ts.astimezone(pytz.utc)


class AlpacaDataProvider(BarDataProvider):
    """Minute bars from the Alpaca market data API.

    Pass a ready `alpaca_trade_api.REST` as `api`, or credentials to build one.
    With neither, `REST` falls back to the APCA_* environment variables.
    """

    TIMEFRAMES = {
        "1Min": TimeFrame.Minute,
        "1Hour": TimeFrame.Hour,
        "1Day": TimeFrame.Day,
    }

    def __init__(self, api=None, key_id=None, secret_key=None, base_url=None,
                 feed=None, tz=DEFAULT_TZ):
        if api is None:
            api = alpaca.REST(key_id=key_id, secret_key=secret_key, base_url=base_url)
        self._api = api
        self._feed = feed
        self._tz = tz

    def get_bars(self, symbol, start, end, timeframe="1Min"):
        if timeframe not in self.TIMEFRAMES:
            raise ValueError("unsupported timeframe for alpaca: %s" % timeframe)
        start_ts, end_ts = session_bounds(start, end, tz=self._tz)
        kwargs = dict(adjustment="raw")
        if self._feed is not None:
            kwargs["feed"] = self._feed
        df = self._api.get_bars(symbol, self.TIMEFRAMES[timeframe],
                                start_ts.isoformat(), end_ts.isoformat(), **kwargs).df
        if df is None or len(df) == 0:
            return []
        return bars_from_frame(normalize_bars(df, symbol=symbol, tz=self._tz))


class TwelveDataProvider(BarDataProvider):
    """Bars from the Twelve Data `time_series` endpoint."""

    URL = "https://api.twelvedata.com/time_series"
    INTERVALS = {
        "1Min": "1min",
        "5Min": "5min",
        "15Min": "15min",
        "1Hour": "1h",
        "1Day": "1day",
    }

    def __init__(self, api_key, session=None, timeout=30.0, tz=DEFAULT_TZ):
        if not api_key:
            raise ValueError("twelvedata api_key is required")
        self._api_key = api_key
        self._session = session or requests.Session()
        self._timeout = timeout
        self._tz = tz

    def get_bars(self, symbol, start, end, timeframe="1Min"):
        if timeframe not in self.INTERVALS:
            raise ValueError("unsupported timeframe for twelvedata: %s" % timeframe)
        fmt = "%Y-%m-%d %H:%M:%S"
        params = {
            "symbol": symbol,
            "apikey": self._api_key,
            "interval": self.INTERVALS[timeframe],
            "start_date": pd.Timestamp(start).strftime(fmt),
            "end_date": pd.Timestamp(end).strftime(fmt),
            "timezone": self._tz,
        }
        resp = self._session.get(self.URL, params=params, timeout=self._timeout)
        resp.raise_for_status()
        body = resp.json()

        if body.get("status") == "error":
            message = str(body.get("message", ""))
            # Twelve Data reports an empty range as an error body.
            if "no data" in message.lower():
                return []
            raise ValueError("twelvedata error for %s: %s" % (symbol, message))

        values = body.get("values") or []
        if not values:
            return []
        df = pd.DataFrame(values)
        return bars_from_frame(normalize_bars(df, symbol=symbol, tz=self._tz))


class HistoricalBarDataSource(BarDataProvider):
    """Load bars from a local file per symbol.

    Supported formats:
    - CSV
    - Parquet (requires pyarrow installed)

    The user supplies a mapping symbol -> filepath.
    """

    def __init__(self, symbol_to_path, tz=DEFAULT_TZ):
        self._paths = dict(symbol_to_path or {})
        self._tz = tz

    @property
    def tz(self):
        return self._tz

    def load(self, symbol):
        if symbol not in self._paths:
            raise KeyError("no path configured for symbol: %s" % symbol)
        path = self._paths[symbol]
        if not os.path.exists(path):
            raise IOError("bars file not found: %s" % path)

        if path.lower().endswith(".csv"):
            df = pd.read_csv(path)
        elif path.lower().endswith(".parquet"):
            df = pd.read_parquet(path)
        else:
            raise ValueError("unsupported bars file type: %s" % path)

        return normalize_bars(df, symbol=symbol, tz=self._tz)

    def _as_ts(self, value):
        ts = pd.Timestamp(value)
        if ts.tzinfo is None:
            ts = ts.tz_localize(self._tz)
        return ts

    def get_frame(self, symbol, start=None, end=None):
        """Return canonical bars for [start, end).

        A date-only `end` (midnight) includes that whole day.
        """
        df = self.load(symbol)
        if start is not None:
            df = df[df.index >= self._as_ts(start)]
        if end is not None:
            end_ts = self._as_ts(end)
            if end_ts == end_ts.normalize():
                end_ts = end_ts + pd.Timedelta("1day")
            df = df[df.index < end_ts]
        return df

    def get_bars(self, symbol, start=None, end=None, timeframe="1Min"):
        if timeframe != "1Min":
            raise ValueError("file bars are replayed as stored; timeframe must be 1Min")
        return bars_from_frame(self.get_frame(symbol, start=start, end=end))
