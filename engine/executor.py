from __future__ import annotations

import asyncio

from loguru import logger

from adapters.base import ExchangeAdapter
from engine.balance import UserBalance
from engine.models import Candle, TradeType
from engine.monitor import OrderFillMonitor, OrderMonitorError
from services.notifier import Notifier
from services.scheduler import format_ts


class OrderExecutor:
    """Buys and sells one pair, keeping at most one order open.

    ``sell`` doubles as the abort path: with an order still open it cancels that
    order instead of closing a position, so not every sell is a round trip.
    """

    def __init__(
        self,
        exchange: ExchangeAdapter,
        balance: UserBalance,
        notifier: Notifier,
        pair: str,
        email_subject: str = "{}",
        poll_interval: float = 20.0,
    ) -> None:
        self.exchange = exchange
        self.balance = balance
        self.notifier = notifier
        self.pair = pair
        self.subject = email_subject.format(pair)
        self.monitor = OrderFillMonitor(exchange, balance, notifier, self.subject, poll_interval)
        self._stop_event = asyncio.Event()
        self._monitor_task: asyncio.Task | None = None

    def start(self, stop_event: asyncio.Event) -> None:
        self._stop_event = stop_event

    async def buy(self, candle: Candle | None) -> None:
        if candle is None:
            return
        pos = self.balance.position
        if pos.has_open_order:
            logger.info("Skip buy: order {} still open", pos.open_order_id)
            return
        if pos.buy_price is not None:
            logger.info("Skip buy: already holding since {}", format_ts(pos.buy_ts or candle.ts))
            return

        if pos.realtime_trading:
            buy_price = (await self.exchange.get_ticker(self.pair)).best_ask
        else:
            buy_price = candle.close
        self.balance.set_buy_price(buy_price, candle.ts)

        order_id = None
        if pos.realtime_trading:
            order_id = await self.exchange.create_order(TradeType.BUY, self.pair, buy_price, pos.rate)
            self._open(order_id, TradeType.BUY)

        msg = f"Buy crypto currency. Date: {format_ts(candle.ts)}; Price: ${buy_price}; Rate: {pos.rate}; OrderNumber: {order_id}"
        logger.info(msg)
        await self.notifier.send_notification(self.subject, msg)

    async def sell(self, candle: Candle | None) -> None:
        if candle is None:
            return
        pos = self.balance.position
        if pos.has_open_order:
            await self._cancel_open_order()
            return
        if pos.buy_price is None:
            logger.info("Skip sell: no open position")
            return

        if pos.realtime_trading:
            sell_price = (await self.exchange.get_ticker(self.pair)).best_bid
            self.balance.checkpoint()
        else:
            sell_price = candle.close
        pos.trading_count += 1

        order_id = None
        if pos.realtime_trading:
            order_id = await self.exchange.create_order(TradeType.SELL, self.pair, sell_price, pos.rate)
            self._open(order_id, TradeType.SELL)

        profit = self.balance.get_profit(sell_price, candle.ts)
        msg = (
            f"Sell crypto currency. Date: {format_ts(candle.ts)}; Price: ${sell_price}; Rate: {pos.rate}; OrderNumber: {order_id}\n"
            f"Profit: ${profit.profit}\n"
            f"Trading time in hours: {round(profit.trading_minutes / 60.0, 2)}\n"
            "\n" + self.balance.trading_summary()
        )
        logger.info(msg)
        await self.notifier.send_notification(self.subject, msg)

    def _open(self, order_id: str, side: TradeType) -> None:
        pos = self.balance.position
        pos.open_order_id = order_id
        pos.open_order_side = side
        pos.has_open_order = True
        self._start_monitor(order_id, side)

    async def _cancel_open_order(self) -> None:
        pos = self.balance.position
        order_id, side = pos.open_order_id, pos.open_order_side
        await self.exchange.cancel_order(self.pair, order_id)
        await self._stop_monitor()
        pos.has_open_order = False
        pos.open_order_id = None
        pos.open_order_side = None
        if side is TradeType.BUY:
            pos.buy_price = None
            pos.buy_ts = None
            pos.rate = 0.0
        elif side is TradeType.SELL and self.balance.restore_checkpoint():
            logger.info("Sell {} not filled; still holding since {}", order_id, format_ts(pos.buy_ts or 0))
        msg = f"Open order cancelled. OrderNumber: {order_id}; Side: {side.value if side else 'n/a'}"
        logger.warning(msg)
        await self.notifier.send_notification(self.subject, msg)

    def _start_monitor(self, order_id: str, side: TradeType) -> None:
        if self._monitor_task and not self._monitor_task.done():
            logger.warning("Order monitor already running; watching {} as well", order_id)
        self._monitor_task = asyncio.create_task(
            self.monitor.watch(self.pair, order_id, side, self._stop_event),
            name=f"order-monitor-{order_id}",
        )

    def resume_monitoring(self) -> None:
        pos = self.balance.position
        if not pos.has_open_order or not pos.open_order_id:
            return
        if self._monitor_task and not self._monitor_task.done():
            return
        logger.info("Resuming watch of open order {}", pos.open_order_id)
        self._start_monitor(pos.open_order_id, pos.open_order_side or TradeType.BUY)

    def raise_for_monitor(self) -> None:
        task = self._monitor_task
        if not task or not task.done() or task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._monitor_task = None
            raise OrderMonitorError(f"Order monitor failed: {exc}") from exc

    async def join_monitor(self) -> None:
        task = self._monitor_task
        if not task:
            return
        try:
            await asyncio.wait({task})
        finally:
            self._monitor_task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            raise OrderMonitorError(f"Order monitor failed: {exc}") from exc

    async def _stop_monitor(self) -> None:
        task = self._monitor_task
        if not task or task.done():
            return
        task.cancel()
        await asyncio.wait({task})
        self._monitor_task = None
