import pytest
from cryptography.fernet import Fernet
from pydantic import ValidationError

from engine.models import CandlePeriod
from services.config_service import TraderSettings
from services.crypto import exchange_credentials


def test_trading_config_from_settings():
    settings = TraderSettings(TRADING_PAIR=" btc_usdt ", CANDLE_PERIOD=15, EXCHANGE="Paper")
    config = settings.trading_config()
    assert config.pair == "BTC_USDT"
    assert config.period is CandlePeriod.FIFTEEN_MINUTES
    assert config.exchange == "paper"
    assert config.email_subject.format(config.pair) == "Crypto trading BTC_USDT"


def test_trading_config_rejects_unknown_period():
    with pytest.raises(ValidationError):
        TraderSettings(CANDLE_PERIOD=7).trading_config()


def test_trading_config_rejects_unknown_exchange():
    with pytest.raises(ValidationError):
        TraderSettings(EXCHANGE="kraken").trading_config()


def test_encrypted_api_secret_is_decrypted():
    key = Fernet.generate_key().decode("utf-8")
    token = Fernet(key.encode("utf-8")).encrypt(b"s3cret").decode("utf-8")
    settings = TraderSettings(EXCHANGE_API_KEY="k", EXCHANGE_API_SECRET=token, CREDENTIAL_ENCRYPTION_KEY=key)
    assert exchange_credentials(settings) == ("k", "s3cret")


def test_plain_api_secret_passes_through():
    settings = TraderSettings(EXCHANGE_API_KEY="k", EXCHANGE_API_SECRET="plain", CREDENTIAL_ENCRYPTION_KEY="")
    assert exchange_credentials(settings) == ("k", "plain")
