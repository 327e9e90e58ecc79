from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from engine.models import CandlePeriod


def period_seconds(period: CandlePeriod) -> int:
    return int(period) * 60


def last_closed_candle_start(now: float, period: CandlePeriod) -> int:
    """Start of the newest candle whose period has fully elapsed at ``now``."""
    seconds = period_seconds(period)
    ts = int(now)
    return ts - ts % seconds - seconds


def seconds_until_next_boundary(now: float, period: CandlePeriod) -> int:
    seconds = period_seconds(period)
    return seconds - int(now) % seconds


def backfill_window(now: float, period: CandlePeriod, lookback_candles: int) -> tuple[int, int]:
    end = last_closed_candle_start(now, period)
    return end - lookback_candles * period_seconds(period), end


async def wait_or_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to ``timeout`` seconds; returns True if ``stop_event`` fired first."""
    if stop_event.is_set():
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, timeout))
    except asyncio.TimeoutError:
        return False
    return True


def format_ts(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
