
"""Research CLI entrypoint.

Usage
-----
python research.py replay --symbols AAPL MSFT --start 2020-07-01 --end 2020-07-02
python research.py replay --provider csv --symbols AAPL --bars AAPL=aapl.csv --start ... --end ...

Every run writes its config, stats, equity curve, order log and console log
under <outdir>/replay/<run_id>/.
"""

import argparse
import logging
import os
import sys
import time

from algo import ALGOS, make_algo
from backtest.backtest import Backtest
from backtest.config import BacktestConfig
from backtest.data_source import (
    DEFAULT_TZ,
    AlpacaDataProvider,
    HistoricalBarDataSource,
    TwelveDataProvider,
)
from backtest.metrics import EquityCurve, summarize
from backtest.report import ensure_dir, write_equity_curve_csv, write_json, write_orders_csv

logger = logging.getLogger()

LOG_FORMAT = '%(asctime)s:%(filename)s:%(lineno)d:%(levelname)s:%(name)s:%(message)s'


def _parse_kv_list(items):
    out = {}
    for it in items or []:
        if "=" not in it:
            raise ValueError("expected KEY=VALUE, got: %s" % it)
        k, v = it.split("=", 1)
        out[k.strip()] = v.strip()
    return out


def setup_logging(out, level=logging.INFO):
    logging.basicConfig(level=level, format=LOG_FORMAT)
    fh = logging.FileHandler(os.path.join(out, 'console.log'))
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(fh)
    return fh


def build_provider(args):
    if args.provider == "alpaca":
        return AlpacaDataProvider(key_id=args.key_id, secret_key=args.secret_key,
                                  base_url=args.base_url, feed=args.feed, tz=args.tz)
    if args.provider == "twelvedata":
        return TwelveDataProvider(args.twelvedata_key, tz=args.tz)
    if not args.bars:
        raise ValueError("--bars SYMBOL=path is required with --provider csv")
    return HistoricalBarDataSource(_parse_kv_list(args.bars), tz=args.tz)


def run_replay(args, out):
    cfg = BacktestConfig.from_args(args)
    backtest = Backtest.from_config(cfg, build_provider(args))
    fleet = {}
    for symbol in args.symbols:
        fleet[symbol] = make_algo(args.strategy, backtest, symbol, lot=args.lot, window=args.window)
    curve = EquityCurve()

    def on_bars(channel, bar):
        if bar.symbol in fleet:
            fleet[bar.symbol].on_bar(bar)
        curve.record(bar.timestamp, backtest.get_value(), backtest.cash)

    stream = backtest.data_stream
    stream.subscribe_bars(on_bars, *args.symbols)
    stream.on_connect(lambda: logger.info('replay connected: %s', ' '.join(args.symbols)))
    stream.on_disconnect(lambda: logger.info('replay disconnected'))
    stream.run()

    orders = backtest.portfolio.order_history
    summary = summarize(backtest.get_stats(), curve=curve, orders=orders)
    write_json(os.path.join(out, "stats.json"), summary)
    write_equity_curve_csv(os.path.join(out, "equity_curve.csv"), curve.points())
    write_orders_csv(os.path.join(out, "orders.csv"), orders)
    logger.info('start value %.2f end value %.2f roi %.4f',
                summary['startValue'], summary['endValue'], summary['roi'])
    return summary


def build_parser():
    p = argparse.ArgumentParser(description="Minute-bar backtesting tools")
    sub = p.add_subparsers(dest="cmd")

    rp = sub.add_parser("replay", help="Replay historical minute bars through a strategy")
    rp.add_argument("--symbols", nargs="+", required=True)
    rp.add_argument("--start", required=True, help="start date, e.g. 2020-07-01")
    rp.add_argument("--end", required=True, help="end date (inclusive)")
    rp.add_argument("--provider", choices=["alpaca", "twelvedata", "csv"], default="alpaca")
    rp.add_argument("--bars", nargs="+", help="symbol=path.csv for each symbol (csv provider)")
    rp.add_argument("--start-value", type=float, default=100000.0)
    rp.add_argument("--timeframe", default="1Min")
    rp.add_argument("--tz", default=DEFAULT_TZ)
    rp.add_argument("--strategy", choices=sorted(ALGOS), default="buy_and_hold")
    rp.add_argument("--lot", type=float, default=2000)
    rp.add_argument("--window", type=int, default=20,
                    help="Moving average window (ma_cross strategy).")
    rp.add_argument("--outdir", default="outputs")

    rp.add_argument("--key-id", default=os.environ.get("APCA_API_KEY_ID"))
    rp.add_argument("--secret-key", default=os.environ.get("APCA_API_SECRET_KEY"))
    rp.add_argument("--base-url", default=os.environ.get("APCA_API_BASE_URL"))
    rp.add_argument("--feed", default=None, help="Alpaca data feed: iex or sip")
    rp.add_argument("--twelvedata-key", default=os.environ.get("TWELVEDATA_API_KEY"))
    return p


def main(argv=None):
    p = build_parser()
    args = p.parse_args(argv)
    if args.cmd != "replay":
        p.print_help()
        return 2

    run_id = time.strftime("%Y%m%d_%H%M%S")
    out = os.path.join(args.outdir, args.cmd, run_id)
    ensure_dir(out)
    setup_logging(out)

    # Persist run config for reproducibility (credentials excluded)
    config = {k: v for k, v in vars(args).items()
              if k not in ("key_id", "secret_key", "twelvedata_key")}
    write_json(os.path.join(out, "run_config.json"), config)

    run_replay(args, out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
