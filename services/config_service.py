from __future__ import annotations

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from engine.models import CandlePeriod


class TraderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    TRADING_PAIR: str = "BTCUSDT"
    CANDLE_PERIOD: int = 5
    EMAIL_SUBJECT: str = "Crypto trading {}"
    ENABLE_REALTIME_TRADING: bool = False
    EXCHANGE: str = "binance"
    EXCHANGE_API_KEY: str = ""
    EXCHANGE_API_SECRET: str = ""
    CREDENTIAL_ENCRYPTION_KEY: str = ""
    INITIAL_BALANCE: float = 1000.0
    FAST_MA: int = 12
    SLOW_MA: int = 26
    ORDER_POLL_SECONDS: float = 20.0
    RESTART_BACKOFF_SECONDS: float = 30.0
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    DATABASE_PATH: str = "./trader.db"
    DATABASE_URL: str = ""
    LOG_LEVEL: str = "INFO"

    def trading_config(self) -> TradingConfig:
        return TradingConfig(
            pair=self.TRADING_PAIR,
            period=self.CANDLE_PERIOD,
            email_subject=self.EMAIL_SUBJECT,
            realtime_trading=self.ENABLE_REALTIME_TRADING,
            exchange=self.EXCHANGE,
            initial_balance=self.INITIAL_BALANCE,
            fast_ma=self.FAST_MA,
            slow_ma=self.SLOW_MA,
            order_poll_seconds=self.ORDER_POLL_SECONDS,
            restart_backoff_seconds=self.RESTART_BACKOFF_SECONDS,
        )


class TradingConfig(BaseModel):
    pair: str
    period: CandlePeriod
    email_subject: str
    realtime_trading: bool
    exchange: str
    initial_balance: float
    fast_ma: int
    slow_ma: int
    order_poll_seconds: float
    restart_backoff_seconds: float

    @field_validator("exchange")
    @classmethod
    def _known_exchange(cls, value: str) -> str:
        value = value.lower()
        if value not in {"binance", "poloniex", "paper"}:
            raise ValueError(f"Unknown exchange: {value}")
        return value

    @field_validator("pair")
    @classmethod
    def _pair_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Trading pair is required")
        return value.strip().upper()
