from __future__ import annotations

import pandas as pd

from adapters.base import ExchangeAdapter, ExchangeError
from engine.balance import UserBalance
from engine.core import TradingLoop
from engine.executor import OrderExecutor
from engine.models import Candle, CandlePeriod, OrderDetail, Ticker, TradeType
from services.notifier import Notifier
from strategies.base import Strategy


class CsvMarketData(ExchangeAdapter):
    """Read-only exchange serving candles loaded from a CSV file."""

    name = "csv"

    def __init__(self, candles: list[Candle]) -> None:
        self.candles = candles

    async def get_candles(self, pair: str, period: CandlePeriod, since: int, until: int) -> list[Candle]:
        return [c for c in self.candles if c.pair == pair and since <= c.ts < until]

    async def get_ticker(self, pair: str) -> Ticker:
        last = self.candles[-1]
        return Ticker(best_ask=last.close, best_bid=last.close)

    async def create_order(self, side: TradeType, pair: str, price: float, quantity: float) -> str:
        raise ExchangeError("backtests do not place orders")

    async def cancel_order(self, pair: str, order_id: str) -> None:
        raise ExchangeError("backtests do not place orders")

    async def get_order(self, pair: str, order_id: str) -> OrderDetail | None:
        return None


def load_candles(csv_path: str, pair: str) -> list[Candle]:
    df = pd.read_csv(csv_path).sort_values("timestamp")
    return [
        Candle(
            pair=pair,
            ts=int(row["timestamp"]),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row.get("volume", 0)),
        )
        for _, row in df.iterrows()
    ]


async def run_backtest(csv_path: str, pair: str, strategy: Strategy, initial_balance: float = 1000.0) -> UserBalance:
    candles = load_candles(csv_path, pair)
    exchange = CsvMarketData(candles)
    balance = UserBalance(initial_balance, realtime_trading=False)
    executor = OrderExecutor(exchange, balance, Notifier(), pair, email_subject="Backtest {}")
    loop = TradingLoop(exchange, strategy, store=None, executor=executor, balance=balance)
    if candles:
        balance.first_price = candles[0]
        balance.last_price = candles[-1]
    await loop.replay(pair, candles)
    return balance
