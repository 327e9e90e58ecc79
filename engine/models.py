from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class CandlePeriod(IntEnum):
    ONE_MINUTE = 1
    FIVE_MINUTES = 5
    FIFTEEN_MINUTES = 15
    THIRTY_MINUTES = 30
    ONE_HOUR = 60
    TWO_HOURS = 120
    FOUR_HOURS = 240
    ONE_DAY = 1440


class TrendDirection(Enum):
    NONE = "none"
    LONG = "long"
    SHORT = "short"


class TradeType(Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class Candle:
    pair: str
    ts: int
    close: float
    open: float | None = None
    high: float | None = None
    low: float | None = None
    volume: float | None = None


@dataclass
class Ticker:
    best_ask: float
    best_bid: float


@dataclass
class OrderDetail:
    order_id: str
    rate: float
    fee: float = 0.0


@dataclass
class Profit:
    profit: float
    trading_minutes: int
