from __future__ import annotations

import asyncio

import pytest

from adapters.base import ExchangeAdapter, FeePolicy, ReportedRatePolicy
from data.store import SQLiteStore
from engine.balance import UserBalance
from engine.core import TradingLoop
from engine.executor import OrderExecutor
from engine.models import Candle, CandlePeriod, OrderDetail, Ticker, TradeType, TrendDirection
from services.notifier import Notifier
from strategies.base import Strategy


class FakeExchange(ExchangeAdapter):
    name = "fake"

    def __init__(self, fee_policy: FeePolicy | None = None) -> None:
        self.candle_batches: list[list[Candle]] = []
        self.candle_requests: list[tuple[int, int]] = []
        self.ticker = Ticker(best_ask=101.0, best_bid=99.0)
        self.created: list[tuple[TradeType, str, float, float]] = []
        self.cancelled: list[str] = []
        self.order_details: list[OrderDetail | None] = []
        self.order_error: Exception | None = None
        self.order_lookups = 0
        self._fee_policy = fee_policy or ReportedRatePolicy()

    @property
    def fee_policy(self) -> FeePolicy:
        return self._fee_policy

    async def get_candles(self, pair: str, period: CandlePeriod, since: int, until: int) -> list[Candle]:
        self.candle_requests.append((since, until))
        if self.candle_batches:
            return self.candle_batches.pop(0)
        return []

    async def get_ticker(self, pair: str) -> Ticker:
        return self.ticker

    async def create_order(self, side: TradeType, pair: str, price: float, quantity: float) -> str:
        self.created.append((side, pair, price, quantity))
        return f"order-{len(self.created)}"

    async def cancel_order(self, pair: str, order_id: str) -> None:
        self.cancelled.append(order_id)

    async def get_order(self, pair: str, order_id: str) -> OrderDetail | None:
        self.order_lookups += 1
        if self.order_error:
            raise self.order_error
        if self.order_details:
            return self.order_details.pop(0)
        return None


class ScriptedStrategy(Strategy):
    def __init__(self, trends: list[TrendDirection] | None = None, lookback_candles: int = 1) -> None:
        self.trends = list(trends or [])
        self.lookback_candles = lookback_candles
        self.seen: list[Candle] = []

    async def check_trend(self, pair: str, candle: Candle) -> TrendDirection:
        self.seen.append(candle)
        if self.trends:
            return self.trends.pop(0)
        return TrendDirection.NONE


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_notification(self, subject: str, body: str) -> None:
        self.sent.append((subject, body))


class ScriptedWaiter:
    """Stands in for the boundary sleep; sets the stop event after ``iterations`` calls."""

    def __init__(self, iterations: int, pause: float = 0.0) -> None:
        self.iterations = iterations
        self.pause = pause
        self.delays: list[float] = []

    async def __call__(self, stop_event: asyncio.Event, timeout: float) -> bool:
        self.delays.append(timeout)
        await asyncio.sleep(self.pause)
        if len(self.delays) >= self.iterations:
            stop_event.set()
        return stop_event.is_set()


def make_candle(ts: int, close: float = 100.0, pair: str = "BTCUSDT") -> Candle:
    return Candle(pair=pair, ts=ts, close=close, open=close, high=close, low=close, volume=1.0)


@pytest.fixture
def candle_factory():
    return make_candle


@pytest.fixture
def exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store(tmp_path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "candles.db"))


@pytest.fixture
def strategy_factory():
    return ScriptedStrategy


@pytest.fixture
def waiter_factory():
    return ScriptedWaiter


@pytest.fixture
def fake_exchange_factory():
    return FakeExchange


@pytest.fixture
def build_executor(exchange, notifier):
    def _build(realtime: bool = False, poll_interval: float = 0.01, balance: float = 1000.0):
        user_balance = UserBalance(balance, realtime_trading=realtime)
        executor = OrderExecutor(
            exchange,
            user_balance,
            notifier,
            "BTCUSDT",
            email_subject="Trading {}",
            poll_interval=poll_interval,
        )
        return executor, user_balance

    return _build


@pytest.fixture
def build_loop(exchange, store, build_executor):
    def _build(strategy: Strategy, now: float, realtime: bool = False, waiter=None, poll_interval: float = 0.01):
        executor, balance = build_executor(realtime=realtime, poll_interval=poll_interval)
        loop = TradingLoop(
            exchange,
            strategy,
            store,
            executor,
            balance,
            clock=lambda: now,
            waiter=waiter or ScriptedWaiter(1),
        )
        return loop, executor, balance

    return _build
