from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from adapters.base import ExchangeAdapter, ExchangeError, FeeDeductedPolicy, FeePolicy
from engine.models import Candle, CandlePeriod, OrderDetail, Ticker, TradeType


_INTERVAL_MAP = {
    CandlePeriod.ONE_MINUTE: "MINUTE_1",
    CandlePeriod.FIVE_MINUTES: "MINUTE_5",
    CandlePeriod.FIFTEEN_MINUTES: "MINUTE_15",
    CandlePeriod.THIRTY_MINUTES: "MINUTE_30",
    CandlePeriod.ONE_HOUR: "HOUR_1",
    CandlePeriod.TWO_HOURS: "HOUR_2",
    CandlePeriod.FOUR_HOURS: "HOUR_4",
    CandlePeriod.ONE_DAY: "DAY_1",
}


def sign_request(secret: str, method: str, path: str, params: dict[str, Any]) -> str:
    payload = "&".join(f"{k}={params[k]}" for k in sorted(params))
    message = f"{method}\n{path}\n{payload}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


class PoloniexAdapter(ExchangeAdapter):
    """Poloniex spot REST API. Buy fills are reported net of a fee fraction."""

    name = "poloniex"

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        base_url: str = "https://api.poloniex.com",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def fee_policy(self) -> FeePolicy:
        return FeeDeductedPolicy()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self._transport, timeout=15.0)

    def _signed_headers(self, method: str, path: str, params: dict[str, Any], body: str | None = None) -> dict[str, str]:
        if not (self.api_key and self.api_secret):
            raise ExchangeError("Poloniex API keys missing for private call")
        ts = str(int(time.time() * 1000))
        to_sign = dict(params)
        if body:
            to_sign["requestBody"] = body
        to_sign["signTimestamp"] = ts
        return {
            "key": self.api_key,
            "signatureMethod": "hmacSHA256",
            "signatureVersion": "2",
            "signTimestamp": ts,
            "signature": sign_request(self.api_secret, method, path, to_sign),
        }

    async def _request(self, method: str, path: str, params: dict[str, Any] | None = None, body: dict | None = None, signed: bool = False) -> Any:
        params = dict(params or {})
        content = json.dumps(body) if body is not None else None
        headers = {"Content-Type": "application/json"}
        if signed:
            headers.update(self._signed_headers(method, path, params, content))
        try:
            async with self._client() as client:
                resp = await client.request(method, path, params=params or None, content=content, headers=headers)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExchangeError(f"Poloniex {method} {path} failed: {exc}") from exc
        if not resp.content:
            return None
        return resp.json()

    async def get_candles(self, pair: str, period: CandlePeriod, since: int, until: int) -> list[Candle]:
        interval = _INTERVAL_MAP.get(period)
        if not interval:
            raise ValueError(f"Unsupported candle period: {period}")
        params = {"interval": interval, "startTime": since * 1000, "endTime": until * 1000 - 1}
        rows = await self._request("GET", f"/markets/{pair}/candles", params=params)
        candles = []
        # [low, high, open, close, amount, quantity, ..., ts, weightedAverage, interval, startTime, closeTime]
        for row in rows or []:
            ts = int(int(row[12]) / 1000)
            if not since <= ts < until:
                continue
            candles.append(
                Candle(
                    pair=pair,
                    ts=ts,
                    low=float(row[0]),
                    high=float(row[1]),
                    open=float(row[2]),
                    close=float(row[3]),
                    volume=float(row[5]),
                )
            )
        return candles

    async def get_ticker(self, pair: str) -> Ticker:
        book = await self._request("GET", f"/markets/{pair}/orderBook", params={"limit": 5})
        # flat [price, qty, price, qty, ...]
        return Ticker(best_ask=float(book["asks"][0]), best_bid=float(book["bids"][0]))

    async def create_order(self, side: TradeType, pair: str, price: float, quantity: float) -> str:
        body = {
            "symbol": pair,
            "side": side.value,
            "type": "LIMIT",
            "price": f"{price:.8f}",
            "quantity": f"{quantity:.8f}",
        }
        resp = await self._request("POST", "/orders", body=body, signed=True)
        return str(resp["id"])

    async def cancel_order(self, pair: str, order_id: str) -> None:
        await self._request("DELETE", f"/orders/{order_id}", signed=True)

    async def get_order(self, pair: str, order_id: str) -> OrderDetail | None:
        order = await self._request("GET", f"/orders/{order_id}", signed=True)
        if not order or order.get("state") != "FILLED":
            return None
        fills = await self._request("GET", f"/orders/{order_id}/trades", signed=True) or []
        quantity = sum(float(f["quantity"]) for f in fills) or float(order.get("filledQuantity", 0.0))
        fee_amount = sum(float(f.get("feeAmount", 0.0)) for f in fills)
        fee = fee_amount / quantity if quantity else 0.0
        return OrderDetail(order_id=order_id, rate=quantity, fee=fee)
