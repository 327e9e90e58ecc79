from __future__ import annotations

import asyncio
import time

from loguru import logger

from adapters.base import ExchangeAdapter
from adapters.binance_spot import BinanceSpotAdapter
from adapters.paper import PaperAdapter
from adapters.poloniex import PoloniexAdapter
from data.store import BaseStore
from engine.balance import UserBalance
from engine.core import TradingLoop
from engine.executor import OrderExecutor
from engine.state import EngineStateStore, LoopState
from services.config_service import TradingConfig, TraderSettings
from services.crypto import exchange_credentials
from services.notifier import Notifier
from services.scheduler import wait_or_stop
from strategies.base import Strategy
from strategies.ma_cross import MovingAverageCrossStrategy


class TraderOrchestrator:
    """Wires the collaborators together and keeps the trading loop alive.

    Exchange failures escape the loop; they are logged, recorded in the engine
    state and notified (at most once a minute), then the loop restarts after a
    back-off with its run-state intact.
    """

    def __init__(
        self,
        settings: TraderSettings,
        store: BaseStore,
        notifier: Notifier,
        exchange: ExchangeAdapter | None = None,
        strategy: Strategy | None = None,
    ) -> None:
        self.settings = settings
        self.config: TradingConfig = settings.trading_config()
        self.store = store
        self.notifier = notifier
        self.exchange = exchange or self._build_adapter()
        self.strategy = strategy or MovingAverageCrossStrategy(self.config.fast_ma, self.config.slow_ma)
        self.balance = UserBalance(self.config.initial_balance, realtime_trading=self.config.realtime_trading)
        self.state_store = EngineStateStore(store, self.config.pair)
        self.executor = OrderExecutor(
            self.exchange,
            self.balance,
            notifier,
            self.config.pair,
            email_subject=self.config.email_subject,
            poll_interval=self.config.order_poll_seconds,
        )
        self.loop = TradingLoop(
            self.exchange,
            self.strategy,
            store,
            self.executor,
            self.balance,
            state_store=self.state_store,
        )
        self.state = LoopState()
        self._last_error_notify_ts = 0

    def _build_adapter(self) -> ExchangeAdapter:
        api_key, api_secret = exchange_credentials(self.settings)
        if self.config.exchange == "binance":
            return BinanceSpotAdapter(api_key, api_secret)
        if self.config.exchange == "poloniex":
            return PoloniexAdapter(api_key, api_secret)
        if self.config.exchange == "paper":
            return PaperAdapter(BinanceSpotAdapter("", ""))
        raise ValueError(f"Unknown exchange: {self.config.exchange}")

    async def run(self, stop_event: asyncio.Event) -> LoopState:
        logger.info(
            "Trading {} on {}m candles via {} (realtime={})",
            self.config.pair,
            int(self.config.period),
            self.exchange.name,
            self.config.realtime_trading,
        )
        # once stopped, the loop is re-entered a single time so it can flatten the position
        final_attempt = False
        while True:
            try:
                await self.loop.run(self.config.pair, self.config.period, stop_event, state=self.state)
                break
            except Exception as exc:
                logger.exception("Trading loop error: {}", exc)
                self.state_store.update(last_error=str(exc))
                await self._notify_error(exc)
                if final_attempt:
                    break
                final_attempt = await wait_or_stop(stop_event, self.config.restart_backoff_seconds)
        logger.info("Trading stopped.\n{}", self.balance.trading_summary())
        return self.state

    async def _notify_error(self, exc: Exception) -> None:
        now = int(time.time())
        if now - self._last_error_notify_ts <= 60:
            return
        self._last_error_notify_ts = now
        await self.notifier.send_notification(
            self.executor.subject, f"Trading loop error, restarting in {self.config.restart_backoff_seconds}s: {exc}"
        )
