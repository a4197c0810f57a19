
"""Metrics over a finished (or running) backtest.

Pure functions over the equity curve and the portfolio's order history, plus
a small recorder the bar handler can feed during replay.
"""

from typing import Any, Dict, Iterable, List, Optional

from .contracts import OrderOutcome


class EquityCurve(object):
    """Portfolio value sampled during replay.

    One point per timestamp: recording the same timestamp again (several
    symbols revealed in one tick) replaces the previous point.
    """

    def __init__(self):
        self._points = []

    def record(self, timestamp, equity, cash=None):
        point = {"timestamp": timestamp, "equity": float(equity),
                 "cash": float(cash) if cash is not None else None}
        if self._points and self._points[-1]["timestamp"] == timestamp:
            self._points[-1] = point
        else:
            self._points.append(point)

    def points(self) -> List[Dict[str, Any]]:
        return list(self._points)

    def values(self) -> List[float]:
        return [p["equity"] for p in self._points]

    def __len__(self):
        return len(self._points)


def _peaks(equity_series):
    """Yield (running peak, value) pairs."""
    peak = None
    for x in equity_series:
        peak = x if peak is None else max(peak, x)
        yield peak, x


def max_drawdown(equity_series):
    """Largest fall from a running peak, in currency units."""
    return max((peak - x for peak, x in _peaks(equity_series)), default=0.0)


def max_drawdown_pct(equity_series):
    """Max drawdown as a fraction of the running peak."""
    return max(((peak - x) / peak for peak, x in _peaks(equity_series) if peak > 0), default=0.0)


def order_counts(orders):
    counts = {o.value: 0 for o in OrderOutcome}
    for r in orders:
        counts[r.outcome.value] += 1
    return counts


def summarize(stats, curve: Optional[EquityCurve] = None, orders: Optional[Iterable] = None):
    out = dict(stats.to_dict())
    if curve is not None:
        values = curve.values()
        out["max_drawdown"] = max_drawdown(values)
        out["max_drawdown_pct"] = max_drawdown_pct(values)
        out["samples"] = len(values)
    if orders is not None:
        out["orders"] = order_counts(orders)
    return out
