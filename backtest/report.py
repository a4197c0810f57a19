
"""Output writers for backtest results.

Outputs are deterministic and human-reviewable (JSON/CSV).
"""

import json
import os

import pandas as pd


def ensure_dir(path):
    if not os.path.exists(path):
        os.makedirs(path)


def write_json(path, obj):
    with open(path, "w") as f:
        json.dump(obj, f, indent=2, sort_keys=True, default=str)


def write_orders_csv(path, orders):
    """Write order results to CSV (one row per order, rejected ones included)."""
    rows = [o.to_dict() for o in orders]
    df = pd.DataFrame(rows, columns=["symbol", "side", "qty", "price", "outcome", "reason"])
    df.to_csv(path, index=False)


def write_equity_curve_csv(path, equity_points):
    """Write equity curve points to CSV.

    equity_points: iterable of dicts: {timestamp, equity, cash}
    """
    df = pd.DataFrame(list(equity_points), columns=["timestamp", "equity", "cash"])
    df.to_csv(path, index=False)
