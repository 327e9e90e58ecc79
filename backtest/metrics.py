from __future__ import annotations

from dataclasses import dataclass

from engine.balance import UserBalance


@dataclass
class BacktestMetrics:
    total_trades: int
    total_profit: float
    total_percentage: float
    open_position: bool


def compute_metrics(balance: UserBalance) -> BacktestMetrics:
    return BacktestMetrics(
        total_trades=balance.position.trading_count,
        total_profit=balance.total_profit,
        total_percentage=balance.total_percentage,
        open_position=balance.position.buy_price is not None,
    )
