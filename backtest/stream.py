"""Simulated market data stream.

`SimulatedStream` mirrors the callback surface of Alpaca's streaming client
(connect / disconnect / error hooks plus a minute-bar handler) but replays
historical bars from a `MarketData` registry instead of a socket.

Sequencing
----------
1) `load_data()` fetches every subscribed symbol from the provider
   (concurrently) and registers the series once all requests have settled.
2) `run_simulation()` advances the registry one tick at a time and calls the
   bar handler for each revealed bar, in turn, before the next tick.

The handler runs synchronously: orders it places see the prices of the tick
being delivered, and a slow handler stalls the replay rather than dropping
bars.
"""

import asyncio
import logging
import re
from typing import Callable, List, Optional, Sequence

from .contracts import BarDataProvider, UnorderedBars, UnsupportedChannel

logger = logging.getLogger(__name__)

_CHANNEL_RE = re.compile(r"^(?:alpacadatav1/)?AM\.(\S+)$")


def parse_channel(label):
    """Return the symbol of a minute-aggregate channel label.

    Accepted forms: "AM.<SYMBOL>" and "alpacadatav1/AM.<SYMBOL>".
    """
    m = _CHANNEL_RE.match(label) if isinstance(label, str) else None
    if m is None:
        raise UnsupportedChannel(
            "Only minute aggregates are supported at this time. Got channel: %r" % (label,))
    return m.group(1)


def channel_of(symbol):
    return "AM.%s" % symbol


class SimulatedStream(object):
    """Replay engine driving bar callbacks from a registry."""

    def __init__(self, provider: BarDataProvider, market_data, start, end, timeframe="1Min"):
        self._provider = provider
        self._market_data = market_data
        self._start = start
        self._end = end
        self._timeframe = timeframe

        self.connect_callback = None  # type: Optional[Callable[[], None]]
        self.disconnect_callback = None  # type: Optional[Callable[[], None]]
        self.error_callback = None  # type: Optional[Callable[[BaseException], None]]
        self.bar_callback = None  # type: Optional[Callable]
        self.channels = []  # type: List[str]

    # ---- registration ----

    def on_connect(self, callback):
        self.connect_callback = callback
        return callback

    def on_disconnect(self, callback):
        self.disconnect_callback = callback
        return callback

    def on_error(self, callback):
        """Called with the exception when loading or replay fails."""
        self.error_callback = callback
        return callback

    def on_stock_bar(self, callback):
        """Set the handler called as `callback(channel, bar)` for every bar."""
        self.bar_callback = callback
        return callback

    def subscribe_for_bars(self, channels: Sequence[str]):
        self.channels = list(channels)

    def subscribe_bars(self, handler, *symbols):
        """Alpaca-style shortcut: set the handler and subscribe AM.<SYMBOL>."""
        self.on_stock_bar(handler)
        self.channels.extend(channel_of(s) for s in symbols)

    # ---- data loading ----

    def _fetch(self, symbol):
        try:
            bars = self._provider.get_bars(symbol, self._start, self._end, timeframe=self._timeframe)
        except Exception as e:
            logger.warning("failed to fetch bars for %s; skipping symbol: %s", symbol, e)
            return []
        return sorted(bars or [], key=lambda b: b.timestamp)

    async def load_data(self, channels=None):
        """Fetch and register bars for every subscribed channel.

        All labels are validated before any provider call. Returns the symbols
        that were registered; symbols with no data are logged and skipped.
        """
        if channels is None:
            channels = self.channels
        symbols = []
        for label in channels:
            symbol = parse_channel(label)
            if symbol not in symbols:
                symbols.append(symbol)

        loop = asyncio.get_running_loop()
        results = await asyncio.gather(*[
            loop.run_in_executor(None, self._fetch, symbol) for symbol in symbols
        ])

        loaded = []
        for symbol, bars in zip(symbols, results):
            if not bars:
                logger.warning("no bars returned for %s between %s and %s; skipping symbol",
                               symbol, self._start, self._end)
                continue
            try:
                self._market_data.register_series(symbol, bars)
            except UnorderedBars as e:
                logger.warning("rejected bars for %s; skipping symbol: %s", symbol, e)
                continue
            loaded.append(symbol)
        logger.info("loaded %d/%d symbols, %d ticks to replay",
                    len(loaded), len(symbols), self._market_data.max_tick)
        return loaded

    # ---- replay ----

    def run_simulation(self):
        """Replay every remaining tick through the bar handler.

        Returns the number of ticks replayed (0 when no handler is set).
        """
        if self.bar_callback is None:
            return 0

        ticks = 0
        while self._market_data.has_next():
            for event in self._market_data.advance_tick():
                self.bar_callback(channel_of(event.symbol), event.bar)
            ticks += 1
        logger.info("replay finished after %d ticks", ticks)
        return ticks

    async def connect(self):
        """Simulate a connection: load the data, replay it, then disconnect."""
        if self.connect_callback is not None:
            self.connect_callback()
        try:
            await self.load_data()
            self.run_simulation()
        except Exception as e:
            logger.error("stream failed: %s", e)
            if self.error_callback is not None:
                self.error_callback(e)
            raise
        finally:
            if self.disconnect_callback is not None:
                self.disconnect_callback()

    def run(self):
        """Blocking entry point, like `alpaca_trade_api.Stream.run()`."""
        asyncio.run(self.connect())
