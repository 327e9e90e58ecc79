from __future__ import annotations

import base64

from cryptography.fernet import Fernet

from services.config_service import TraderSettings


def build_fernet(key: str | None) -> Fernet | None:
    if not key:
        return None
    raw = key.encode("utf-8")
    if len(raw) == 32:
        raw = base64.urlsafe_b64encode(raw)
    return Fernet(raw)


def exchange_credentials(settings: TraderSettings) -> tuple[str, str]:
    """API key and secret; the secret is a Fernet token when an encryption key is set."""
    fernet = build_fernet(settings.CREDENTIAL_ENCRYPTION_KEY)
    secret = settings.EXCHANGE_API_SECRET
    if fernet and secret:
        secret = fernet.decrypt(secret.encode("utf-8")).decode("utf-8")
    return settings.EXCHANGE_API_KEY, secret
