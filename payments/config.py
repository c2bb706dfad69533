from dataclasses import dataclass

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class GatewayConfig:
    merchant_id: str
    secret_key: str
    api_url: str
    callback_url: str
    response_url: str | None = None
    currency: str = 'GEL'
    version: str = '1.0.1'
    timeout: float = 30

    @classmethod
    def from_settings(cls):
        """
        Builds the gateway configuration from Django settings, which load the
        merchant id and secret from the environment.
        """
        config = cls(
            merchant_id=str(settings.FLITT_MERCHANT_ID or ''),
            secret_key=settings.FLITT_SECRET_KEY or '',
            api_url=settings.FLITT_API_URL or '',
            callback_url=settings.PAYMENT_CALLBACK_URL or '',
            response_url=settings.PAYMENT_RESPONSE_URL or None,
            currency=settings.PAYMENT_CURRENCY,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
        )
        if not all([config.merchant_id, config.secret_key, config.api_url, config.callback_url]):
            raise ImproperlyConfigured("Flitt payment settings are not configured properly.")
        return config

    def __repr__(self):
        # Keep the secret out of logs and tracebacks.
        return (
            f"GatewayConfig(merchant_id={self.merchant_id!r}, api_url={self.api_url!r}, "
            f"callback_url={self.callback_url!r}, currency={self.currency!r})"
        )
