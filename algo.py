"""Reference strategies for replay runs.

Each algo trades a single symbol. `research.py` routes every replayed bar to
the algo for its symbol; the algo places market orders on the shared
`Backtest` and reads its position back from the portfolio.
"""

import logging

import pandas as pd

logger = logging.getLogger()


class BuyAndHoldAlgo:
    """Spend `lot` dollars on the first bar, then hold to the end."""

    def __init__(self, backtest, symbol, lot):
        self._backtest = backtest
        self._symbol = symbol
        self._lot = lot
        self._done = False
        self._l = logger.getChild(self._symbol)

    def on_bar(self, bar):
        if self._done:
            return
        self._done = True
        qty = int(self._lot / bar.close) if bar.close > 0 else 0
        if qty < 1:
            self._l.info(f'lot {self._lot} too small for price {bar.close}; not buying')
            return
        result = self._backtest.create_order(symbol=self._symbol, qty=qty, side='buy')
        self._l.info(f'submitted buy {result}')


class MovingAverageCrossAlgo:
    """Buy when the close crosses above its moving average, sell on the cross below."""

    def __init__(self, backtest, symbol, lot, window=20):
        self._backtest = backtest
        self._symbol = symbol
        self._lot = lot
        self._window = int(window)
        self._bars = None
        self._state = 'TO_BUY'
        self._l = logger.getChild(self._symbol)

    @property
    def state(self):
        return self._state

    def _crossing(self):
        mavg = self._bars.close.rolling(self._window).mean().values
        closes = self._bars.close.values
        return closes[-2:], mavg[-2:]

    def _calc_buy_signal(self):
        closes, mavg = self._crossing()
        if closes[0] < mavg[0] and closes[1] > mavg[1]:
            self._l.info(
                f'buy signal: closes[-2] {closes[0]} < mavg[-2] {mavg[0]} '
                f'closes[-1] {closes[1]} > mavg[-1] {mavg[1]}')
            return True
        return False

    def _calc_sell_signal(self):
        closes, mavg = self._crossing()
        if closes[0] > mavg[0] and closes[1] < mavg[1]:
            self._l.info(
                f'sell signal: closes[-2] {closes[0]} > mavg[-2] {mavg[0]} '
                f'closes[-1] {closes[1]} < mavg[-1] {mavg[1]}')
            return True
        return False

    def on_bar(self, bar):
        row = pd.DataFrame({
            'open': bar.open,
            'high': bar.high,
            'low': bar.low,
            'close': bar.close,
            'volume': bar.volume,
        }, index=[pd.Timestamp(bar.timestamp)])
        self._bars = row if self._bars is None else pd.concat([self._bars, row])

        self._l.debug(
            f'received bar start: {pd.Timestamp(bar.timestamp)}, close: {bar.close}, len(bars): {len(self._bars)}')
        if len(self._bars) <= self._window:
            return

        if self._state == 'TO_BUY' and self._calc_buy_signal():
            self._submit_buy(bar.close)
        elif self._state == 'TO_SELL' and self._calc_sell_signal():
            self._submit_sell()

    def _submit_buy(self, price):
        amount = int(self._lot / price) if price > 0 else 0
        if amount < 1:
            self._l.info(f'lot {self._lot} too small for price {price}; skipping buy')
            return
        result = self._backtest.create_order(symbol=self._symbol, qty=amount, side='buy')
        if not result.ok:
            self._l.info(f'skipping buy: {result.reason}')
            return
        self._l.info(f'submitted buy {result}')
        self._transition('TO_SELL')

    def _submit_sell(self):
        position = self._backtest.portfolio.get_position(self._symbol)
        if position is None:
            self._l.warning(f'state {self._state} but no position held')
            self._transition('TO_BUY')
            return
        result = self._backtest.create_order(symbol=self._symbol, qty=position.quantity, side='sell')
        self._l.info(f'submitted sell {result}')
        if result.ok:
            self._transition('TO_BUY')

    def _transition(self, new_state):
        self._l.info(f'transition from {self._state} to {new_state}')
        self._state = new_state


# name -> (class, keyword options it accepts)
ALGOS = {
    'buy_and_hold': (BuyAndHoldAlgo, ()),
    'ma_cross': (MovingAverageCrossAlgo, ('window',)),
}


def make_algo(name, backtest, symbol, lot, **options):
    if name not in ALGOS:
        raise ValueError(f'unknown strategy: {name}')
    cls, accepted = ALGOS[name]
    kwargs = {k: v for k, v in options.items() if k in accepted and v is not None}
    return cls(backtest, symbol, lot, **kwargs)
