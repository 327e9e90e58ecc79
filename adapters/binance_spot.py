from __future__ import annotations

import asyncio
from decimal import Decimal

from binance.client import Client
from binance.exceptions import BinanceAPIException
from loguru import logger

from adapters.base import ExchangeAdapter, ExchangeError
from engine.models import Candle, CandlePeriod, OrderDetail, Ticker, TradeType


_INTERVAL_MAP = {
    CandlePeriod.ONE_MINUTE: Client.KLINE_INTERVAL_1MINUTE,
    CandlePeriod.FIVE_MINUTES: Client.KLINE_INTERVAL_5MINUTE,
    CandlePeriod.FIFTEEN_MINUTES: Client.KLINE_INTERVAL_15MINUTE,
    CandlePeriod.THIRTY_MINUTES: Client.KLINE_INTERVAL_30MINUTE,
    CandlePeriod.ONE_HOUR: Client.KLINE_INTERVAL_1HOUR,
    CandlePeriod.TWO_HOURS: Client.KLINE_INTERVAL_2HOUR,
    CandlePeriod.FOUR_HOURS: Client.KLINE_INTERVAL_4HOUR,
    CandlePeriod.ONE_DAY: Client.KLINE_INTERVAL_1DAY,
}


class BinanceSpotAdapter(ExchangeAdapter):
    name = "binance"

    def __init__(self, api_key: str = "", api_secret: str = "") -> None:
        self.client = Client(api_key, api_secret)
        self._precision_cache: dict[str, dict[str, Decimal]] = {}
        self._has_keys = bool(api_key and api_secret)

    async def get_candles(self, pair: str, period: CandlePeriod, since: int, until: int) -> list[Candle]:
        interval = _INTERVAL_MAP.get(period)
        if not interval:
            raise ValueError(f"Unsupported candle period: {period}")
        try:
            klines = await asyncio.to_thread(
                self.client.get_klines,
                symbol=pair,
                interval=interval,
                startTime=since * 1000,
                endTime=until * 1000 - 1,
                limit=1000,
            )
        except BinanceAPIException as exc:
            raise ExchangeError(f"Binance klines failed: {exc.message}") from exc
        candles = []
        for k in klines:
            ts = int(k[0] / 1000)
            if not since <= ts < until:
                continue
            candles.append(
                Candle(
                    pair=pair,
                    ts=ts,
                    open=float(k[1]),
                    high=float(k[2]),
                    low=float(k[3]),
                    close=float(k[4]),
                    volume=float(k[5]),
                )
            )
        return candles

    async def get_ticker(self, pair: str) -> Ticker:
        try:
            book = await asyncio.to_thread(self.client.get_orderbook_ticker, symbol=pair)
        except BinanceAPIException as exc:
            raise ExchangeError(f"Binance ticker failed: {exc.message}") from exc
        return Ticker(best_ask=float(book["askPrice"]), best_bid=float(book["bidPrice"]))

    async def create_order(self, side: TradeType, pair: str, price: float, quantity: float) -> str:
        if not self._has_keys:
            raise ExchangeError("Binance API keys missing for live order")
        qty = self._round(pair, quantity, "step")
        limit_price = self._round(pair, price, "tick")
        binance_side = Client.SIDE_BUY if side is TradeType.BUY else Client.SIDE_SELL
        try:
            resp = await asyncio.to_thread(
                self.client.create_order,
                symbol=pair,
                side=binance_side,
                type=Client.ORDER_TYPE_LIMIT,
                timeInForce=Client.TIME_IN_FORCE_GTC,
                quantity=str(qty),
                price=str(limit_price),
            )
        except BinanceAPIException as exc:
            raise ExchangeError(f"Binance order failed: {exc.message}") from exc
        order_id = str(resp.get("orderId"))
        logger.info("Binance {} order {} placed: {} @ {}", side.value, order_id, qty, limit_price)
        return order_id

    async def cancel_order(self, pair: str, order_id: str) -> None:
        try:
            await asyncio.to_thread(self.client.cancel_order, symbol=pair, orderId=int(order_id))
        except BinanceAPIException as exc:
            raise ExchangeError(f"Binance cancel failed: {exc.message}") from exc

    async def get_order(self, pair: str, order_id: str) -> OrderDetail | None:
        try:
            resp = await asyncio.to_thread(self.client.get_order, symbol=pair, orderId=int(order_id))
        except BinanceAPIException as exc:
            raise ExchangeError(f"Binance order lookup failed: {exc.message}") from exc
        if resp.get("status") != Client.ORDER_STATUS_FILLED:
            return None
        return OrderDetail(order_id=order_id, rate=float(resp["executedQty"]), fee=0.0)

    def _round(self, pair: str, value: float, key: str) -> float:
        info = self._precision_cache.get(pair)
        if not info:
            info = self._load_precision(pair)
            self._precision_cache[pair] = info
        step = info[key]
        rounded = (Decimal(str(value)) // step) * step
        return float(rounded)

    def _load_precision(self, pair: str) -> dict[str, Decimal]:
        info = self.client.get_symbol_info(pair)
        if not info:
            raise ExchangeError(f"Symbol not found: {pair}")
        lot_filter = next(f for f in info["filters"] if f["filterType"] == "LOT_SIZE")
        price_filter = next(f for f in info["filters"] if f["filterType"] == "PRICE_FILTER")
        return {"step": Decimal(lot_filter["stepSize"]), "tick": Decimal(price_filter["tickSize"])}
