from __future__ import annotations

from abc import ABC, abstractmethod

from engine.models import Candle, CandlePeriod, OrderDetail, Ticker, TradeType


class ExchangeError(RuntimeError):
    pass


class FeePolicy(ABC):
    @abstractmethod
    def adjust_rate(self, nominal_rate: float, detail: OrderDetail) -> float:
        raise NotImplementedError


class ReportedRatePolicy(FeePolicy):
    """The exchange reports the quantity actually received."""

    def adjust_rate(self, nominal_rate: float, detail: OrderDetail) -> float:
        return detail.rate


class FeeDeductedPolicy(FeePolicy):
    """The exchange reports a fee fraction taken out of the bought quantity."""

    def adjust_rate(self, nominal_rate: float, detail: OrderDetail) -> float:
        return nominal_rate - round(nominal_rate * detail.fee, 8)


class ExchangeAdapter(ABC):
    name: str = "exchange"

    @property
    def fee_policy(self) -> FeePolicy:
        return ReportedRatePolicy()

    @abstractmethod
    async def get_candles(self, pair: str, period: CandlePeriod, since: int, until: int) -> list[Candle]:
        """Candles whose start timestamp lies in ``[since, until)``."""
        raise NotImplementedError

    @abstractmethod
    async def get_ticker(self, pair: str) -> Ticker:
        raise NotImplementedError

    @abstractmethod
    async def create_order(self, side: TradeType, pair: str, price: float, quantity: float) -> str:
        raise NotImplementedError

    @abstractmethod
    async def cancel_order(self, pair: str, order_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_order(self, pair: str, order_id: str) -> OrderDetail | None:
        """Fill detail, or None while the order is still pending."""
        raise NotImplementedError
