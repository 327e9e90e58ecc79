from __future__ import annotations

import asyncio
from dataclasses import asdict
from enum import Enum

from loguru import logger

from adapters.base import ExchangeAdapter
from engine.balance import UserBalance
from engine.models import TradeType
from services.notifier import Notifier
from services.scheduler import wait_or_stop


class MonitorState(Enum):
    WATCHING = "watching"
    FILLED = "filled"
    ABORTED = "aborted"


class OrderMonitorError(RuntimeError):
    pass


class OrderFillMonitor:
    """Polls one open order until the exchange reports it filled or the run stops.

    A ``None`` order detail means the order is still pending; there is no retry
    limit. Stopping leaves ``has_open_order`` set so the shutdown path can deal
    with the order explicitly.
    """

    def __init__(
        self,
        exchange: ExchangeAdapter,
        balance: UserBalance,
        notifier: Notifier,
        subject: str,
        poll_interval: float = 20.0,
    ) -> None:
        self.exchange = exchange
        self.balance = balance
        self.notifier = notifier
        self.subject = subject
        self.poll_interval = poll_interval
        self.state = MonitorState.WATCHING

    async def watch(self, pair: str, order_id: str, side: TradeType, stop_event: asyncio.Event) -> MonitorState:
        pos = self.balance.position
        self.state = MonitorState.WATCHING
        while pos.has_open_order and pos.open_order_id == order_id:
            if await wait_or_stop(stop_event, self.poll_interval):
                logger.info("Stopped watching order {}", order_id)
                self.state = MonitorState.ABORTED
                return self.state

            detail = await self.exchange.get_order(pair, order_id)
            if detail is None:
                continue

            logger.info("Open order invoked. OrderNumber: {}; OrderDetails: {}", order_id, asdict(detail))
            if side is TradeType.BUY:
                pos.rate = self.exchange.fee_policy.adjust_rate(pos.rate, detail)
                logger.info("Real rate: {}", pos.rate)
            pos.has_open_order = False
            pos.open_order_id = None
            pos.open_order_side = None
            self.state = MonitorState.FILLED
            await self.notifier.send_notification(
                self.subject,
                f"{side.value} order filled. OrderNumber: {order_id}; Rate: {pos.rate}; Fee: {detail.fee}",
            )
            return self.state

        # the order was cancelled or replaced under us
        self.state = MonitorState.ABORTED
        return self.state
