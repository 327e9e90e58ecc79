from __future__ import annotations

from dataclasses import dataclass

from engine.models import Candle, Profit, TradeType


@dataclass
class PositionState:
    has_open_order: bool = False
    open_order_id: str | None = None
    open_order_side: TradeType | None = None
    buy_price: float | None = None
    buy_ts: int | None = None
    rate: float = 0.0
    trading_count: int = 0
    realtime_trading: bool = False


class UserBalance:
    """Quote-currency balance for one pair; ``rate`` is the quantity bought."""

    def __init__(self, initial_balance: float, realtime_trading: bool = False) -> None:
        self.initial_balance = initial_balance
        self.balance = initial_balance
        self.position = PositionState(realtime_trading=realtime_trading)
        self.first_price: Candle | None = None
        self.last_price: Candle | None = None
        self._invested = 0.0
        self._pre_sell: tuple | None = None

    @property
    def total_profit(self) -> float:
        return round(self.balance - self.initial_balance, 8)

    @property
    def total_percentage(self) -> float:
        if not self.initial_balance:
            return 0.0
        return round(self.total_profit / self.initial_balance * 100.0, 2)

    def set_buy_price(self, price: float, ts: int) -> None:
        self.position.buy_price = price
        self.position.buy_ts = ts
        self.position.rate = round(self.balance / price, 8) if price else 0.0
        self._invested = round(self.position.rate * price, 8)

    def get_profit(self, sell_price: float, sell_ts: int) -> Profit:
        pos = self.position
        if pos.buy_price is None:
            return Profit(profit=0.0, trading_minutes=0)
        profit = round(pos.rate * sell_price - self._invested, 8)
        self.balance = round(self.balance + profit, 8)
        buy_ts = pos.buy_ts if pos.buy_ts is not None else sell_ts
        minutes = max(0, (sell_ts - buy_ts) // 60)
        pos.buy_price = None
        pos.buy_ts = None
        return Profit(profit=profit, trading_minutes=minutes)

    def checkpoint(self) -> None:
        """Remember the held position so a sell that never fills can be undone."""
        pos = self.position
        self._pre_sell = (pos.buy_price, pos.buy_ts, pos.trading_count, self.balance, self._invested)

    def restore_checkpoint(self) -> bool:
        if self._pre_sell is None:
            return False
        pos = self.position
        pos.buy_price, pos.buy_ts, pos.trading_count, self.balance, self._invested = self._pre_sell
        self._pre_sell = None
        return True

    def trading_summary(self) -> str:
        lines = [
            f"Trading count: {self.position.trading_count}",
            f"Balance: ${self.balance}",
            f"Total profit: ${self.total_profit}",
            f"Total percentage: {self.total_percentage}%",
        ]
        if self.first_price and self.last_price and self.first_price.close:
            hold_pct = round((self.last_price.close - self.first_price.close) / self.first_price.close * 100.0, 2)
            lines.append(
                f"Buy and hold: ${self.first_price.close} -> ${self.last_price.close} ({hold_pct}%)"
            )
        return "\n".join(lines)
