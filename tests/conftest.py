import pytest

from .fakes import SECRET, InMemoryOrderRepository, make_order


@pytest.fixture(autouse=True)
def payment_settings(settings):
    settings.FLITT_MERCHANT_ID = '1549901'
    settings.FLITT_SECRET_KEY = SECRET
    settings.FLITT_API_URL = 'https://pay.flitt.com/api/checkout/url'
    settings.PAYMENT_CALLBACK_URL = 'https://shop.example/api/payment/callback/'
    settings.PAYMENT_RESPONSE_URL = 'https://shop.example/payment/success'
    settings.PAYMENT_CURRENCY = 'GEL'
    settings.PAYMENT_GATEWAY_TIMEOUT = 5
    settings.CLEANUP_SECRET_TOKEN = 'cleanup-token'
    settings.ORDER_PAYMENT_TIMEOUT_MINUTES = 30
    settings.ORDER_CLEANUP_BATCH_SIZE = 100
    return settings


@pytest.fixture
def repository():
    return InMemoryOrderRepository(
        orders={'O1': make_order()},
        products={'P1': {'name': 'Mug', 'stock': 5}},
    )
