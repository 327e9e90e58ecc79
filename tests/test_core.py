import asyncio

import pytest
from loguru import logger

from engine.models import CandlePeriod, TradeType, TrendDirection
from engine.monitor import OrderMonitorError

NOW = 1_700_000_130  # 30s into a 5 minute candle
LAST_CLOSED = 1_699_999_800
PERIOD = 300


def _run(loop, stop=None):
    async def scenario():
        return await loop.run("BTCUSDT", CandlePeriod.FIVE_MINUTES, stop or asyncio.Event())

    return asyncio.run(scenario())


def test_long_signal_buys_and_shutdown_cancels_pending_order(
    build_loop, exchange, notifier, strategy_factory, waiter_factory, candle_factory, store
):
    candle = candle_factory(LAST_CLOSED, close=100.0)
    exchange.candle_batches = [[candle]]
    waiter = waiter_factory(1)
    loop, executor, balance = build_loop(strategy_factory([TrendDirection.LONG]), NOW, realtime=True, waiter=waiter)

    state = _run(loop)

    assert exchange.candle_requests[0] == (LAST_CLOSED, LAST_CLOSED + PERIOD)
    assert waiter.delays == [270]
    assert exchange.created[0][0] is TradeType.BUY
    assert "Price: $101.0" in notifier.sent[0][1]
    # still-open buy at shutdown is cancelled rather than sold
    assert exchange.cancelled == ["order-1"]
    assert state.last_trend is TrendDirection.LONG
    assert balance.first_price == candle
    assert balance.last_price == candle
    assert store.list_candles("BTCUSDT") == [candle]


def test_gap_windows_take_no_action_and_advance(
    build_loop, exchange, notifier, strategy_factory, waiter_factory, candle_factory
):
    exchange.candle_batches = [[candle_factory(LAST_CLOSED), candle_factory(LAST_CLOSED + 60)], []]
    strategy = strategy_factory([TrendDirection.LONG])
    loop, executor, balance = build_loop(strategy, NOW, waiter=waiter_factory(2))

    messages = []
    handler_id = logger.add(messages.append, format="{message}")
    try:
        state = _run(loop)
    finally:
        logger.remove(handler_id)

    assert exchange.candle_requests == [
        (LAST_CLOSED, LAST_CLOSED + PERIOD),
        (LAST_CLOSED + PERIOD, LAST_CLOSED + 2 * PERIOD),
    ]
    assert state.last_since == LAST_CLOSED + 2 * PERIOD
    assert strategy.seen == []
    assert exchange.created == []
    assert notifier.sent == []
    assert sum("NO TRADES" in m for m in messages) == 2


def test_shutdown_liquidates_open_long(build_loop, exchange, notifier, strategy_factory, waiter_factory, candle_factory):
    first = candle_factory(LAST_CLOSED, close=100.0)
    second = candle_factory(LAST_CLOSED + PERIOD, close=120.0)
    exchange.candle_batches = [[first], [second]]
    strategy = strategy_factory([TrendDirection.LONG, TrendDirection.NONE])
    loop, executor, balance = build_loop(strategy, NOW, waiter=waiter_factory(2))

    state = _run(loop)

    assert state.last_trend is TrendDirection.LONG
    assert balance.position.trading_count == 1
    assert balance.position.buy_price is None
    assert balance.last_price == second
    assert "Profit: $200.0" in notifier.sent[-1][1]


def test_short_signal_sells(build_loop, exchange, notifier, strategy_factory, waiter_factory, candle_factory):
    exchange.candle_batches = [[candle_factory(LAST_CLOSED, close=100.0)], [candle_factory(LAST_CLOSED + PERIOD, close=90.0)]]
    strategy = strategy_factory([TrendDirection.LONG, TrendDirection.SHORT])
    loop, executor, balance = build_loop(strategy, NOW, waiter=waiter_factory(2))

    state = _run(loop)

    assert state.last_trend is TrendDirection.SHORT
    assert balance.position.trading_count == 1
    assert balance.balance == 900.0
    assert len(notifier.sent) == 2


def test_backfill_runs_once_before_trading(
    build_loop, exchange, notifier, strategy_factory, waiter_factory, candle_factory, store
):
    history = [candle_factory(LAST_CLOSED - PERIOD * i) for i in (3, 2, 1)]
    exchange.candle_batches = [history, []]
    strategy = strategy_factory([TrendDirection.LONG] * 3, lookback_candles=3)
    loop, executor, balance = build_loop(strategy, NOW, waiter=waiter_factory(1))

    state = _run(loop)

    assert exchange.candle_requests[0] == (LAST_CLOSED - 3 * PERIOD, LAST_CLOSED)
    assert exchange.candle_requests[1] == (LAST_CLOSED, LAST_CLOSED + PERIOD)
    assert strategy.seen == history
    assert len(store.list_candles("BTCUSDT")) == 3
    assert state.backfilled
    assert balance.position.buy_price is None
    assert notifier.sent == []


def test_monitor_failure_stops_loop(build_loop, exchange, strategy_factory, waiter_factory, candle_factory):
    exchange.order_error = RuntimeError("order lookup failed")
    exchange.candle_batches = [[candle_factory(LAST_CLOSED)], []]
    strategy = strategy_factory([TrendDirection.LONG])
    loop, executor, balance = build_loop(
        strategy, NOW, realtime=True, waiter=waiter_factory(5, pause=0.05), poll_interval=0.01
    )

    with pytest.raises(OrderMonitorError, match="order lookup failed"):
        _run(loop)
    assert len(exchange.candle_requests) == 1


def test_stopped_before_start_only_shuts_down(build_loop, exchange, strategy_factory):
    loop, executor, balance = build_loop(strategy_factory(lookback_candles=5), NOW)
    stop = asyncio.Event()
    stop.set()

    state = _run(loop, stop)

    assert exchange.candle_requests == []
    assert state.iterations == 0
    assert not state.backfilled
