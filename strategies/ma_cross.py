from __future__ import annotations

from collections import deque

import pandas as pd

from engine.models import Candle, TrendDirection
from strategies.base import Strategy


class MovingAverageCrossStrategy(Strategy):
    """LONG when the fast close average crosses above the slow one, SHORT on the cross down."""

    def __init__(self, fast_ma: int = 12, slow_ma: int = 26) -> None:
        if fast_ma >= slow_ma:
            raise ValueError("fast_ma must be shorter than slow_ma")
        self.fast_ma = fast_ma
        self.slow_ma = slow_ma
        self.lookback_candles = slow_ma + 1
        self._closes: dict[str, deque[float]] = {}

    async def check_trend(self, pair: str, candle: Candle) -> TrendDirection:
        closes = self._closes.setdefault(pair, deque(maxlen=self.lookback_candles))
        closes.append(candle.close)
        if len(closes) < self.lookback_candles:
            return TrendDirection.NONE

        series = pd.Series(list(closes), dtype="float64")
        fast = series.rolling(self.fast_ma).mean()
        slow = series.rolling(self.slow_ma).mean()
        prev_fast, prev_slow = fast.iloc[-2], slow.iloc[-2]
        last_fast, last_slow = fast.iloc[-1], slow.iloc[-1]
        if pd.isna(prev_slow) or pd.isna(last_slow):
            return TrendDirection.NONE

        if prev_fast <= prev_slow and last_fast > last_slow:
            return TrendDirection.LONG
        if prev_fast >= prev_slow and last_fast < last_slow:
            return TrendDirection.SHORT
        return TrendDirection.NONE
