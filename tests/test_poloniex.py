import asyncio
import json

import httpx

from adapters.base import FeeDeductedPolicy
from adapters.poloniex import PoloniexAdapter, sign_request
from engine.models import CandlePeriod, TradeType


def _candle_row(start_ms, close):
    return ["99", "102", "100", str(close), "1000", "10", "0", "0", 5, start_ms, "101", "MINUTE_5", start_ms, start_ms + 299_999]


def test_candles_are_filtered_to_window():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[_candle_row(600_000, 101), _candle_row(900_000, 103)])

    adapter = PoloniexAdapter(transport=httpx.MockTransport(handler))
    candles = asyncio.run(adapter.get_candles("BTC_USDT", CandlePeriod.FIVE_MINUTES, 600, 900))

    assert seen["path"] == "/markets/BTC_USDT/candles"
    assert seen["params"] == {"interval": "MINUTE_5", "startTime": "600000", "endTime": "899999"}
    assert len(candles) == 1
    assert candles[0].ts == 600
    assert candles[0].close == 101.0
    assert candles[0].open == 100.0


def test_order_calls_are_signed_and_fee_is_fractional():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(200, json={"id": "42", "clientOrderId": ""})
        if request.url.path == "/orders/42":
            return httpx.Response(200, json={"id": "42", "state": "FILLED", "filledQuantity": "2"})
        return httpx.Response(200, json=[{"quantity": "2", "feeAmount": "0.005"}])

    adapter = PoloniexAdapter("key", "secret", transport=httpx.MockTransport(handler))

    async def scenario():
        order_id = await adapter.create_order(TradeType.BUY, "BTC_USDT", 100.0, 2.0)
        detail = await adapter.get_order("BTC_USDT", order_id)
        return order_id, detail

    order_id, detail = asyncio.run(scenario())
    assert order_id == "42"
    assert detail.rate == 2.0
    assert detail.fee == 0.0025
    assert isinstance(adapter.fee_policy, FeeDeductedPolicy)

    post = requests[0]
    body = json.loads(post.content)
    assert body["side"] == "BUY"
    assert post.headers["key"] == "key"
    expected = sign_request(
        "secret",
        "POST",
        "/orders",
        {"requestBody": post.content.decode("utf-8"), "signTimestamp": post.headers["signTimestamp"]},
    )
    assert post.headers["signature"] == expected


def test_pending_order_has_no_detail():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "42", "state": "NEW"})

    adapter = PoloniexAdapter("key", "secret", transport=httpx.MockTransport(handler))
    assert asyncio.run(adapter.get_order("BTC_USDT", "42")) is None
