from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger

from adapters.base import ExchangeAdapter
from data.store import BaseStore
from engine.backfill import BackfillRunner
from engine.balance import UserBalance
from engine.executor import OrderExecutor
from engine.models import Candle, CandlePeriod, TrendDirection
from engine.monitor import OrderMonitorError
from engine.state import EngineStateStore, LoopState
from services.scheduler import (
    format_ts,
    last_closed_candle_start,
    period_seconds,
    seconds_until_next_boundary,
    wait_or_stop,
)
from strategies.base import Strategy


Waiter = Callable[[asyncio.Event, float], Awaitable[bool]]


class TradingLoop:
    def __init__(
        self,
        exchange: ExchangeAdapter,
        strategy: Strategy,
        store: BaseStore,
        executor: OrderExecutor,
        balance: UserBalance,
        state_store: EngineStateStore | None = None,
        clock: Callable[[], float] = time.time,
        waiter: Waiter = wait_or_stop,
    ) -> None:
        self.exchange = exchange
        self.strategy = strategy
        self.store = store
        self.executor = executor
        self.balance = balance
        self.state_store = state_store
        self.clock = clock
        self.waiter = waiter
        self.backfill = BackfillRunner(exchange, strategy, store, clock=clock)

    async def run(
        self,
        pair: str,
        period: CandlePeriod,
        stop_event: asyncio.Event,
        state: LoopState | None = None,
    ) -> LoopState:
        """Trade ``pair`` on ``period`` candles until ``stop_event`` is set.

        ``state`` carries the run-state across supervised restarts; it is
        mutated in place and returned.
        """
        state = state if state is not None else LoopState()
        seconds = period_seconds(period)
        state.last_since = last_closed_candle_start(self.clock(), period)
        if state.scan_id is None:
            state.scan_id = self.store.get_latest_scan_id()

        self.executor.start(stop_event)
        self.executor.resume_monitoring()

        if self.strategy.lookback_candles > 1 and not state.backfilled and not stop_event.is_set():
            await self.backfill.run(pair, period, state.scan_id)
            state.backfilled = True

        while not stop_event.is_set():
            self.executor.raise_for_monitor()
            started = time.monotonic()
            candles = await self.exchange.get_candles(pair, period, state.last_since, state.last_since + seconds)
            if len(candles) == 1:
                await self._process(pair, candles[0], state, started)
            else:
                logger.info(
                    "DateTs: {}; Trend: [NO TRADES]; Close price: [NO TRADES]; Candles: {}; Elapsed time: {} ms",
                    format_ts(state.last_since),
                    len(candles),
                    int((time.monotonic() - started) * 1000),
                )
            state.iterations += 1

            delay = seconds_until_next_boundary(self.clock(), period)
            await self.waiter(stop_event, delay)
            state.last_since += seconds

        await self._shutdown(state)
        return state

    async def _process(self, pair: str, candle: Candle, state: LoopState, started: float) -> None:
        state.current_candle = candle
        if not state.first_price_set:
            self.balance.first_price = candle
            state.first_price_set = True

        trend = await self.strategy.check_trend(pair, candle)
        self.store.save_candle(pair, candle, state.scan_id)
        if trend is not TrendDirection.NONE:
            state.last_trend = trend
        if self.state_store:
            self.state_store.update(last_candle_ts=candle.ts, last_trend=state.last_trend.value)

        logger.info(
            "DateTs: {}; Trend: [{}]; Close price: {}; Volume: {}; Elapsed time: {} ms",
            format_ts(candle.ts),
            trend.value,
            candle.close,
            candle.volume,
            int((time.monotonic() - started) * 1000),
        )
        await self._dispatch(trend, candle)

    async def _dispatch(self, trend: TrendDirection, candle: Candle) -> None:
        if trend is TrendDirection.LONG:
            await self.executor.buy(candle)
        elif trend is TrendDirection.SHORT:
            await self.executor.sell(candle)

    async def _shutdown(self, state: LoopState) -> None:
        monitor_error: OrderMonitorError | None = None
        try:
            await self.executor.join_monitor()
        except OrderMonitorError as exc:
            logger.exception("Order monitor failed before shutdown: {}", exc)
            monitor_error = exc

        if state.current_candle is not None:
            self.balance.last_price = state.current_candle
            # a cancelled sell leaves a position held under a SHORT trend
            if state.last_trend is TrendDirection.LONG or self.balance.position.buy_price is not None:
                logger.info("Closing long position on shutdown at {}", format_ts(state.current_candle.ts))
                await self.executor.sell(state.current_candle)

        await self.executor.join_monitor()
        if monitor_error:
            raise monitor_error

    async def replay(self, pair: str, candles: list[Candle]) -> None:
        """Run ``candles`` through the strategy and executor, without persisting them."""
        for candle in candles:
            trend = await self.strategy.check_trend(pair, candle)
            await self._dispatch(trend, candle)
