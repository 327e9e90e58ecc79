from __future__ import annotations

import time
from typing import Callable

from loguru import logger

from adapters.base import ExchangeAdapter
from data.store import BaseStore
from engine.models import CandlePeriod
from services.scheduler import backfill_window
from strategies.base import Strategy


class BackfillRunner:
    """Warms up lookback-dependent strategies with recent closed candles. Never trades."""

    def __init__(
        self,
        exchange: ExchangeAdapter,
        strategy: Strategy,
        store: BaseStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.exchange = exchange
        self.strategy = strategy
        self.store = store
        self.clock = clock

    async def run(self, pair: str, period: CandlePeriod, scan_id: int) -> int:
        start, end = backfill_window(self.clock(), period, self.strategy.lookback_candles)
        candles = await self.exchange.get_candles(pair, period, start, end)
        for candle in candles:
            await self.strategy.check_trend(pair, candle)
            self.store.save_candle(pair, candle, scan_id)
        logger.info("Backfilled {} candles for {} between {} and {}", len(candles), pair, start, end)
        return len(candles)
