from __future__ import annotations

from dataclasses import dataclass

from data.store import BaseStore
from engine.models import Candle, TrendDirection


@dataclass
class LoopState:
    last_since: int = 0
    scan_id: int | None = None
    current_candle: Candle | None = None
    last_trend: TrendDirection = TrendDirection.NONE
    first_price_set: bool = False
    backfilled: bool = False
    iterations: int = 0


class EngineStateStore:
    def __init__(self, store: BaseStore, pair: str) -> None:
        self.store = store
        self.pair = pair

    def update(self, **kwargs) -> None:
        self.store.set_engine_state(self.pair, **kwargs)
