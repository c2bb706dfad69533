"""
Flitt request/callback signatures.

The signing string is the secret followed by every non-empty field value,
ordered by field name and joined with "|". The signature is the lowercase hex
SHA-1 of that string's UTF-8 bytes. Payment creation and callback
verification both go through `sign`, so amounts and keys serialize the same
way on both legs.
"""
import hashlib
import hmac
import logging
import math
from decimal import Decimal

logger = logging.getLogger(__name__)

SIGNATURE_FIELD = 'signature'
DELIMITER = '|'
# Meta-fields that never take part in the signing string.
EXCLUDED_FIELDS = frozenset({SIGNATURE_FIELD, 'response_signature_string'})


def format_value(value):
    """
    Renders a field value the way it appears in the signing string.

    Integral numbers render without a fractional part, so 100, 100.0 and
    Decimal('100.00') all sign as "100".
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Cannot sign non-finite number {value!r}")
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Cannot sign non-finite number {value!r}")
        if value == value.to_integral_value():
            return str(int(value))
        return format(value.normalize(), 'f')
    raise TypeError(f"Cannot sign value of type {type(value).__name__}")


def build_signing_string(params, secret):
    fields = {str(key): value for key, value in params.items()}
    values = []
    for key in sorted(fields):
        if key in EXCLUDED_FIELDS:
            continue
        value = fields[key]
        if value is None:
            continue
        rendered = format_value(value)
        if rendered == '':
            continue
        values.append(rendered)
    return DELIMITER.join([secret, *values])


def sign(params, secret):
    signing_string = build_signing_string(params, secret)
    return hashlib.sha1(signing_string.encode('utf-8')).hexdigest()


def verify(payload, secret):
    """
    Checks `payload['signature']` against the signature recomputed from the
    rest of the payload. Returns False for any malformed input instead of
    raising.
    """
    try:
        supplied = payload.get(SIGNATURE_FIELD)
        if not isinstance(supplied, str) or not supplied:
            return False
        expected = sign(payload, secret)
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Could not compute signature for payload: {e}")
        return False
    return hmac.compare_digest(expected.encode('ascii'), supplied.encode('utf-8'))
