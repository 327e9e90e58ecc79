from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Any

import psycopg
from psycopg.rows import dict_row

from engine.models import Candle


_STATE_COLUMNS = {"last_candle_ts", "last_trend", "last_error", "updated_at"}


class BaseStore:
    def save_candle(self, pair: str, candle: Candle, scan_id: int) -> bool:
        """Returns False when the candle was already stored under ``scan_id``."""
        raise NotImplementedError

    def get_latest_scan_id(self) -> int:
        raise NotImplementedError

    def list_candles(self, pair: str, scan_id: int | None = None) -> list[Candle]:
        raise NotImplementedError

    def set_engine_state(self, pair: str, **kwargs: Any) -> None:
        raise NotImplementedError

    def get_engine_state(self, pair: str) -> dict[str, Any]:
        raise NotImplementedError


def _check_state_columns(kwargs: dict[str, Any]) -> None:
    unknown = set(kwargs) - _STATE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown engine state fields: {sorted(unknown)}")


def _row_to_candle(row: Any) -> Candle:
    return Candle(
        pair=row["pair"],
        ts=int(row["ts"]),
        close=float(row["close"]),
        open=row["open"],
        high=row["high"],
        low=row["low"],
        volume=row["volume"],
    )


class SQLiteStore(BaseStore):
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).with_name("schema.sql")
        with self._connect() as conn:
            conn.executescript(schema_path.read_text())

    def save_candle(self, pair: str, candle: Candle, scan_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO candles (pair, scan_id, ts, open, high, low, close, volume, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (pair, scan_id, candle.ts, candle.open, candle.high, candle.low, candle.close, candle.volume, int(time.time())),
            )
            return cur.rowcount > 0

    def get_latest_scan_id(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT MAX(scan_id) AS scan_id FROM candles").fetchone()
            return int(row["scan_id"]) if row and row["scan_id"] is not None else 1

    def list_candles(self, pair: str, scan_id: int | None = None) -> list[Candle]:
        with self._connect() as conn:
            if scan_id is None:
                rows = conn.execute("SELECT * FROM candles WHERE pair=? ORDER BY ts", (pair,)).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM candles WHERE pair=? AND scan_id=? ORDER BY ts",
                    (pair, scan_id),
                ).fetchall()
            return [_row_to_candle(r) for r in rows]

    def set_engine_state(self, pair: str, **kwargs: Any) -> None:
        _check_state_columns(kwargs)
        kwargs.setdefault("updated_at", int(time.time()))
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO engine_state (pair, updated_at) VALUES (?, ?)",
                (pair, kwargs["updated_at"]),
            )
            conn.execute(
                f"UPDATE engine_state SET {', '.join([f'{k}=?' for k in kwargs.keys()])} WHERE pair=?",
                list(kwargs.values()) + [pair],
            )

    def get_engine_state(self, pair: str) -> dict[str, Any]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM engine_state WHERE pair=?", (pair,)).fetchone()
            return dict(row) if row else {}


class PostgresStore(BaseStore):
    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self._ensure_schema()

    def _connect(self):
        return psycopg.connect(self.dsn, row_factory=dict_row)

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).with_name("schema_pg.sql")
        with self._connect() as conn:
            statements = [s.strip() for s in schema_path.read_text().split(";") if s.strip()]
            for stmt in statements:
                conn.execute(stmt)

    def save_candle(self, pair: str, candle: Candle, scan_id: int) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO candles (pair, scan_id, ts, open, high, low, close, volume, created_at) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s) ON CONFLICT (pair, scan_id, ts) DO NOTHING",
                (pair, scan_id, candle.ts, candle.open, candle.high, candle.low, candle.close, candle.volume, int(time.time())),
            )
            return cur.rowcount > 0

    def get_latest_scan_id(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT MAX(scan_id) AS scan_id FROM candles").fetchone()
            return int(row["scan_id"]) if row and row["scan_id"] is not None else 1

    def list_candles(self, pair: str, scan_id: int | None = None) -> list[Candle]:
        with self._connect() as conn:
            if scan_id is None:
                rows = conn.execute("SELECT * FROM candles WHERE pair=%s ORDER BY ts", (pair,)).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM candles WHERE pair=%s AND scan_id=%s ORDER BY ts",
                    (pair, scan_id),
                ).fetchall()
            return [_row_to_candle(r) for r in rows]

    def set_engine_state(self, pair: str, **kwargs: Any) -> None:
        _check_state_columns(kwargs)
        kwargs.setdefault("updated_at", int(time.time()))
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO engine_state (pair, updated_at) VALUES (%s, %s) ON CONFLICT DO NOTHING",
                (pair, kwargs["updated_at"]),
            )
            conn.execute(
                f"UPDATE engine_state SET {', '.join([f'{k}=%s' for k in kwargs.keys()])} WHERE pair=%s",
                list(kwargs.values()) + [pair],
            )

    def get_engine_state(self, pair: str) -> dict[str, Any]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT pair, last_candle_ts, last_trend, last_error, updated_at FROM engine_state WHERE pair=%s",
                (pair,),
            ).fetchone()
            return dict(row) if row else {}


def create_store(database_url: str | None, sqlite_path: str) -> BaseStore:
    if database_url:
        return PostgresStore(database_url)
    return SQLiteStore(sqlite_path)
