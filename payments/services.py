import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import requests

from orders.exceptions import InvalidRequest, PaymentGatewayError
from . import signature

logger = logging.getLogger(__name__)

_DESCRIPTION_DISALLOWED = re.compile(r'[^a-zA-Z0-9 -]')


def to_minor_units(amount):
    """
    Converts an amount in major units (2.00 GEL) to the gateway's integer
    minor units (200 tetri), rounding half up.
    """
    if isinstance(amount, bool):
        raise InvalidRequest(f"Invalid amount: {amount!r}")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidRequest(f"Amount must be a positive number, got {amount!r}")
    minor_units = int((value * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    if minor_units <= 0:
        raise InvalidRequest(f"Amount {amount!r} is below the smallest currency unit")
    return minor_units


def clean_description(description, order_id):
    """The gateway only accepts letters, digits, spaces and dashes in order_desc."""
    text = description or f"Order {order_id}"
    return _DESCRIPTION_DISALLOWED.sub('', text).strip() or f"Order {order_id}"


@dataclass(frozen=True)
class PaymentSession:
    checkout_url: str
    payment_id: str | None


# --- Flitt Service ---

class FlittService:
    """
    A service class for creating checkout sessions with the Flitt API.
    """
    def __init__(self, config):
        self.config = config
        logger.info(f"Initializing FlittService for merchant {config.merchant_id}")

    def build_request_params(self, order_id, amount, currency=None, customer_email=None, description=None):
        """
        Builds the canonical parameter set for a checkout request.

        This is the only place request parameters are assembled; the signature
        is always computed over exactly these fields.
        """
        if order_id is None or str(order_id).strip() == '':
            raise InvalidRequest("Missing required field: orderId")
        if amount is None or amount == '':
            raise InvalidRequest("Missing required field: amount")
        for field, value in (("currency", currency), ("customerEmail", customer_email), ("description", description)):
            if value is not None and not isinstance(value, str):
                raise InvalidRequest(f"Field {field} must be a string")

        order_id = str(order_id).strip()
        params = {
            "version": self.config.version,
            "order_id": order_id,
            "merchant_id": self.config.merchant_id,
            "order_desc": clean_description(description, order_id),
            "amount": to_minor_units(amount),
            "currency": (currency or self.config.currency).upper(),
            "server_callback_url": self.config.callback_url,
        }
        if self.config.response_url:
            params["response_url"] = self.config.response_url
        if customer_email and customer_email.strip():
            params["sender_email"] = customer_email.strip()
        return params

    def create_payment(self, order_id, amount, currency=None, customer_email=None, description=None):
        """
        Creates a checkout session and returns the gateway's checkout URL and
        payment id. Does not retry and does not touch the order document.
        """
        params = self.build_request_params(order_id, amount, currency, customer_email, description)
        request_body = {
            "request": {
                **params,
                "signature": signature.sign(params, self.config.secret_key),
            }
        }

        logger.info(
            f"Creating Flitt payment for order {params['order_id']}: "
            f"{params['amount']} {params['currency']} (minor units)"
        )

        try:
            response = requests.post(
                self.config.api_url,
                json=request_body,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Flitt API timed out for order {params['order_id']}: {e}")
            raise PaymentGatewayError("Payment gateway timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Flitt API request failed for order {params['order_id']}: {e}")
            raise PaymentGatewayError("Payment gateway is unavailable") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Flitt API returned a non-JSON body ({response.status_code}): {response.text}")
            raise PaymentGatewayError(f"Unexpected response from payment gateway (HTTP {response.status_code})") from e

        response_body = data.get('response') if isinstance(data, dict) else None
        if not isinstance(response_body, dict):
            logger.error(f"Flitt API returned an unexpected payload: {data}")
            raise PaymentGatewayError("Unexpected response from payment gateway", details=data)

        if response_body.get('response_status') == 'success' and response_body.get('checkout_url'):
            logger.info(f"Flitt payment created for order {params['order_id']}: {response_body.get('payment_id')}")
            return PaymentSession(
                checkout_url=response_body['checkout_url'],
                payment_id=response_body.get('payment_id'),
            )

        logger.error(f"Flitt payment failed for order {params['order_id']}: {response_body}")
        raise PaymentGatewayError(
            response_body.get('error_message') or "Payment creation failed",
            error_code=response_body.get('error_code'),
            details=response_body,
        )
