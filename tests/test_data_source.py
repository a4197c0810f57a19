import datetime as dt

import pandas as pd
import pytest
import pytz
from alpaca_trade_api.rest import TimeFrame

from backtest.contracts import Bar
from backtest.data_source import (
    AlpacaDataProvider,
    HistoricalBarDataSource,
    TwelveDataProvider,
    bars_from_frame,
    normalize_bars,
    session_bounds,
)

NY = pytz.timezone("America/New_York")


def _raw_frame():
    return pd.DataFrame({
        "Timestamp": ["2020-07-01 09:31:00", "2020-07-01 09:30:00"],
        "Open": [10.0, 9.0],
        "High": [11.0, 9.5],
        "Low": [9.5, 8.5],
        "Close": [10.5, 9.2],
        "Volume": [200, 100],
    })


def test_normalize_bars_canonical_schema():
    out = normalize_bars(_raw_frame(), "AAPL")

    assert list(out.columns) == ["symbol", "open", "high", "low", "close", "volume"]
    assert str(out.index.tz) == "America/New_York"
    assert out.index.is_monotonic_increasing
    assert out["close"].tolist() == [9.2, 10.5]
    assert (out["symbol"] == "AAPL").all()


def test_normalize_bars_fills_missing_columns():
    df = pd.DataFrame({"time": ["2020-07-01 09:30:00"], "close": ["12.5"]})
    out = normalize_bars(df, "SPY")

    row = out.iloc[0]
    assert row["open"] == row["high"] == row["low"] == 12.5
    assert row["volume"] == 0.0


def test_normalize_bars_converts_aware_index():
    idx = pd.DatetimeIndex([pd.Timestamp("2020-07-01 13:30", tz="UTC")])
    out = normalize_bars(pd.DataFrame({"close": [1.0]}, index=idx), "SPY")
    assert out.index[0].hour == 9


@pytest.mark.parametrize(
    "df, message",
    [
        (pd.DataFrame(), "empty"),
        (pd.DataFrame({"timestamp": ["2020-07-01"], "open": [1.0]}), "close"),
        (pd.DataFrame({"close": [1.0]}), "timestamp"),
    ],
)
def test_normalize_bars_rejects_bad_frames(df, message):
    with pytest.raises(ValueError, match=message):
        normalize_bars(df, "SPY")


def test_bars_from_frame():
    bars = bars_from_frame(normalize_bars(_raw_frame(), "AAPL"))

    assert len(bars) == 2
    first = bars[0]
    assert isinstance(first, Bar)
    assert first.symbol == "AAPL"
    assert first.timestamp == NY.localize(dt.datetime(2020, 7, 1, 9, 30))
    assert (first.open, first.high, first.low, first.close, first.volume) == (9.0, 9.5, 8.5, 9.2, 100.0)


def test_session_bounds_in_utc():
    start, end = session_bounds("2020-07-01", "2020-07-02")
    assert start == dt.datetime(2020, 7, 1, 13, 30, tzinfo=pytz.utc)
    assert end == dt.datetime(2020, 7, 2, 19, 59, 59, tzinfo=pytz.utc)


def test_session_bounds_follow_dst():
    start, _ = session_bounds("2020-01-02", "2020-01-02")
    assert start.hour == 14


class _FakeBarsResult:
    def __init__(self, df):
        self.df = df


class _FakeAlpacaREST:
    def __init__(self, df):
        self._df = df
        self.calls = []

    def get_bars(self, symbol, timeframe, start, end, **kwargs):
        self.calls.append((symbol, timeframe, start, end, kwargs))
        return _FakeBarsResult(self._df)


def _alpaca_frame():
    idx = pd.DatetimeIndex(
        [pd.Timestamp("2020-07-01 13:30", tz="UTC"), pd.Timestamp("2020-07-01 13:31", tz="UTC")],
        name="timestamp",
    )
    return pd.DataFrame({
        "open": [1.0, 2.0], "high": [1.5, 2.5], "low": [0.5, 1.5], "close": [1.2, 2.2],
        "volume": [10, 20], "trade_count": [3, 4], "vwap": [1.1, 2.1],
    }, index=idx)


def test_alpaca_provider_requests_the_session_window():
    api = _FakeAlpacaREST(_alpaca_frame())
    provider = AlpacaDataProvider(api=api, feed="iex")

    bars = provider.get_bars("AAPL", "2020-07-01", "2020-07-01")

    symbol, timeframe, start, end, kwargs = api.calls[0]
    assert symbol == "AAPL"
    assert timeframe == TimeFrame.Minute
    assert start == "2020-07-01T13:30:00+00:00"
    assert end == "2020-07-01T19:59:59+00:00"
    assert kwargs == {"adjustment": "raw", "feed": "iex"}
    assert [b.close for b in bars] == [1.2, 2.2]
    assert bars[0].symbol == "AAPL"


def test_alpaca_provider_empty_result():
    provider = AlpacaDataProvider(api=_FakeAlpacaREST(pd.DataFrame()))
    assert provider.get_bars("AAPL", "2020-07-01", "2020-07-01") == []


def test_alpaca_provider_rejects_unknown_timeframe():
    provider = AlpacaDataProvider(api=_FakeAlpacaREST(_alpaca_frame()))
    with pytest.raises(ValueError):
        provider.get_bars("AAPL", "2020-07-01", "2020-07-01", timeframe="3Min")


class _FakeResponse:
    def __init__(self, body):
        self._body = body

    def raise_for_status(self):
        pass

    def json(self):
        return self._body


class _FakeSession:
    def __init__(self, body):
        self._body = body
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        return _FakeResponse(self._body)


def test_twelvedata_provider_parses_values_ascending():
    body = {
        "status": "ok",
        "values": [
            {"datetime": "2020-07-01 09:31:00", "open": "2", "high": "2.5", "low": "1.5",
             "close": "2.2", "volume": "20"},
            {"datetime": "2020-07-01 09:30:00", "open": "1", "high": "1.5", "low": "0.5",
             "close": "1.2", "volume": "10"},
        ],
    }
    session = _FakeSession(body)
    provider = TwelveDataProvider("secret", session=session, timeout=5)

    bars = provider.get_bars("AAPL", "2020-07-01", "2020-07-02")

    url, params, timeout = session.calls[0]
    assert url == TwelveDataProvider.URL
    assert params["interval"] == "1min"
    assert params["start_date"] == "2020-07-01 00:00:00"
    assert params["end_date"] == "2020-07-02 00:00:00"
    assert timeout == 5
    assert [b.close for b in bars] == [1.2, 2.2]
    assert bars[0].timestamp == NY.localize(dt.datetime(2020, 7, 1, 9, 30))


def test_twelvedata_provider_no_data_is_empty():
    body = {"status": "error", "code": 400, "message": "No data is available on the specified dates."}
    provider = TwelveDataProvider("secret", session=_FakeSession(body))
    assert provider.get_bars("AAPL", "2020-07-01", "2020-07-02") == []


def test_twelvedata_provider_raises_on_api_error():
    body = {"status": "error", "code": 401, "message": "Invalid API key"}
    provider = TwelveDataProvider("secret", session=_FakeSession(body))
    with pytest.raises(ValueError, match="Invalid API key"):
        provider.get_bars("AAPL", "2020-07-01", "2020-07-02")


def test_twelvedata_provider_requires_key():
    with pytest.raises(ValueError):
        TwelveDataProvider("")


@pytest.fixture
def csv_source(tmp_path):
    path = tmp_path / "aapl.csv"
    pd.DataFrame({
        "timestamp": ["2020-06-30 15:59:00", "2020-07-01 09:30:00", "2020-07-01 09:31:00",
                      "2020-07-02 09:30:00"],
        "open": [1, 2, 3, 4], "high": [1, 2, 3, 4], "low": [1, 2, 3, 4],
        "close": [1.0, 2.0, 3.0, 4.0], "volume": [5, 5, 5, 5],
    }).to_csv(path, index=False)
    return HistoricalBarDataSource({"AAPL": str(path), "MSFT": str(tmp_path / "missing.csv")})


def test_file_source_filters_by_date(csv_source):
    bars = csv_source.get_bars("AAPL", "2020-07-01", "2020-07-01")
    assert [b.close for b in bars] == [2.0, 3.0]


def test_file_source_end_with_time_is_exclusive(csv_source):
    frame = csv_source.get_frame("AAPL", start="2020-07-01", end="2020-07-01 09:31")
    assert frame["close"].tolist() == [2.0]


def test_file_source_errors(csv_source, tmp_path):
    with pytest.raises(KeyError):
        csv_source.get_bars("SPY", "2020-07-01", "2020-07-01")
    with pytest.raises(IOError):
        csv_source.get_bars("MSFT", "2020-07-01", "2020-07-01")

    txt = tmp_path / "bars.txt"
    txt.write_text("x")
    with pytest.raises(ValueError):
        HistoricalBarDataSource({"X": str(txt)}).get_bars("X", "2020-07-01", "2020-07-01")
