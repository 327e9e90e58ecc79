from __future__ import annotations

from abc import ABC, abstractmethod

from engine.models import Candle, TrendDirection


class Strategy(ABC):
    lookback_candles: int = 1

    @abstractmethod
    async def check_trend(self, pair: str, candle: Candle) -> TrendDirection:
        raise NotImplementedError
