from __future__ import annotations

import random
import time

from loguru import logger

from adapters.base import ExchangeAdapter, FeeDeductedPolicy, FeePolicy
from engine.models import Candle, CandlePeriod, OrderDetail, Ticker, TradeType


class PaperAdapter(ExchangeAdapter):
    """Market data from ``data_provider``; orders are filled locally after ``fill_after_polls`` lookups."""

    name = "paper"

    def __init__(
        self,
        data_provider: ExchangeAdapter,
        slippage_bps: float = 2.0,
        fee_bps: float = 10.0,
        fill_after_polls: int = 1,
    ) -> None:
        self.data_provider = data_provider
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self.fill_after_polls = fill_after_polls
        self._orders: dict[str, dict] = {}
        self.cancelled: list[str] = []

    @property
    def fee_policy(self) -> FeePolicy:
        return FeeDeductedPolicy()

    async def get_candles(self, pair: str, period: CandlePeriod, since: int, until: int) -> list[Candle]:
        return await self.data_provider.get_candles(pair, period, since, until)

    async def get_ticker(self, pair: str) -> Ticker:
        ticker = await self.data_provider.get_ticker(pair)
        slip = self.slippage_bps / 10000.0 * random.uniform(0.5, 1.5)
        return Ticker(best_ask=ticker.best_ask * (1 + slip), best_bid=ticker.best_bid * (1 - slip))

    async def create_order(self, side: TradeType, pair: str, price: float, quantity: float) -> str:
        order_id = f"paper-{int(time.time() * 1000)}-{len(self._orders)}"
        self._orders[order_id] = {"side": side, "pair": pair, "price": price, "quantity": quantity, "polls": 0}
        logger.info("Paper {} order {}: {} @ {}", side.value, order_id, quantity, price)
        return order_id

    async def cancel_order(self, pair: str, order_id: str) -> None:
        self._orders.pop(order_id, None)
        self.cancelled.append(order_id)

    async def get_order(self, pair: str, order_id: str) -> OrderDetail | None:
        order = self._orders.get(order_id)
        if not order:
            return None
        order["polls"] += 1
        if order["polls"] < self.fill_after_polls:
            return None
        return OrderDetail(order_id=order_id, rate=order["quantity"], fee=self.fee_bps / 10000.0)
