import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-change-me')
DEBUG = _env_bool('DEBUG')
ALLOWED_HOSTS = [host for host in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if host]

INSTALLED_APPS = [
    'orders',
    'payments',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'storefront_backend.urls'
WSGI_APPLICATION = 'storefront_backend.wsgi.application'

# Orders and products live in Firestore; Django itself keeps no tables.
DATABASES = {}

USE_TZ = True
TIME_ZONE = 'UTC'

# --- Flitt payment gateway ---
FLITT_MERCHANT_ID = os.getenv('FLITT_MERCHANT_ID')
FLITT_SECRET_KEY = os.getenv('FLITT_SECRET_KEY')
FLITT_API_URL = os.getenv('FLITT_API_URL', 'https://pay.flitt.com/api/checkout/url')
PAYMENT_CALLBACK_URL = os.getenv('PAYMENT_CALLBACK_URL')
PAYMENT_RESPONSE_URL = os.getenv('PAYMENT_RESPONSE_URL')
PAYMENT_CURRENCY = os.getenv('PAYMENT_CURRENCY', 'GEL')
PAYMENT_GATEWAY_TIMEOUT = float(os.getenv('PAYMENT_GATEWAY_TIMEOUT', '30'))

# --- Firestore ---
FIRESTORE_TIMEOUT = float(os.getenv('FIRESTORE_TIMEOUT', '10'))

# --- Expired order cleanup ---
ORDER_PAYMENT_TIMEOUT_MINUTES = int(os.getenv('ORDER_PAYMENT_TIMEOUT_MINUTES', '30'))
ORDER_CLEANUP_BATCH_SIZE = int(os.getenv('ORDER_CLEANUP_BATCH_SIZE', '100'))
CLEANUP_SECRET_TOKEN = os.getenv('CLEANUP_SECRET_TOKEN')
# Headers set by the scheduler platform, matched as (header, value).
CLEANUP_SCHEDULER_HEADERS = [
    ('vercel-cron', '1'),
    ('X-Vercel-Cron', '1'),
    ('X-Appengine-Cron', 'true'),
]

# --- Email ---
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = _env_bool('EMAIL_USE_TLS', True)
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'orders@lifestore.ge')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s - %(levelname)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv('LOG_LEVEL', 'INFO'),
    },
}
