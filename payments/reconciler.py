"""
Reconciles asynchronous Flitt payment callbacks with order documents.

The gateway redelivers any callback it does not see acknowledged, so every
reachable outcome below is acknowledged. Order state is only ever written
after the payload's signature checks out, and only through the repository's
compare-and-set transition.
"""
import enum
import json
import logging
from dataclasses import dataclass

from django.http.multipartparser import MultiPartParserError

from orders.exceptions import InvalidRequest, NotFound
from orders.models import Transition
from orders.services import send_payment_confirmation
from . import signature
from .services import to_minor_units

logger = logging.getLogger(__name__)

APPROVED_ORDER_STATUS = 'approved'
SUCCESS_RESPONSE_STATUS = 'success'


class CallbackResult(enum.Enum):
    APPLIED_PAID = 'applied_paid'
    APPLIED_FAILED = 'applied_failed'
    DUPLICATE = 'duplicate'
    SIGNATURE_INVALID = 'signature_invalid'
    MISSING_ORDER_ID = 'missing_order_id'
    NOT_FOUND = 'not_found'
    ERROR = 'error'


@dataclass(frozen=True)
class CallbackOutcome:
    result: CallbackResult
    order_id: str | None = None

    @property
    def status_code(self):
        return 400 if self.result is CallbackResult.MISSING_ORDER_ID else 200


def extract_payload(request):
    """
    Collects callback fields from the query string and the body.

    Flitt posts JSON (optionally wrapped in a {"response": {...}} envelope) or
    form data, which Django parses for urlencoded and multipart bodies. Body
    fields win over query parameters. Raises InvalidRequest when the body
    cannot be parsed.
    """
    payload = {key: value for key, value in request.GET.items()}
    body = request.body
    if not body:
        return payload

    content_type = (request.content_type or '').lower()
    if 'json' in content_type or body.lstrip()[:1] in (b'{', b'['):
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidRequest(f"Callback body is not valid JSON: {e}") from e
        if isinstance(data, dict) and isinstance(data.get('response'), dict):
            data = data['response']
        if not isinstance(data, dict):
            raise InvalidRequest("Callback body must be a JSON object")
        payload.update(data)
        return payload

    try:
        payload.update(request.POST.dict())
    except (MultiPartParserError, UnicodeDecodeError) as e:
        raise InvalidRequest(f"Callback body is not valid form data: {e}") from e
    return payload


class CallbackReconciler:
    """
    Applies a verified gateway callback to its order exactly once.
    """
    def __init__(self, repository, secret_key, notifier=send_payment_confirmation):
        self.repository = repository
        self.secret_key = secret_key
        self.notifier = notifier

    def handle_callback(self, payload):
        """
        Processes one callback payload and reports what happened. Never
        raises: processing errors are logged and reported as ERROR so the
        transport can still acknowledge the delivery.
        """
        if not signature.verify(payload, self.secret_key):
            logger.warning(
                f"Rejected payment callback with invalid signature (possible forgery). "
                f"order_id={payload.get('order_id') if isinstance(payload, dict) else None!r}"
            )
            return CallbackOutcome(CallbackResult.SIGNATURE_INVALID)

        order_id = payload.get('order_id')
        if order_id is None or str(order_id).strip() == '':
            logger.error("Verified payment callback is missing order_id.")
            return CallbackOutcome(CallbackResult.MISSING_ORDER_ID)
        order_id = str(order_id).strip()

        try:
            return self._reconcile(order_id, payload)
        except Exception as e:
            logger.exception(f"Failed to reconcile payment callback for order {order_id}: {e}")
            return CallbackOutcome(CallbackResult.ERROR, order_id)

    def _reconcile(self, order_id, payload):
        order_status = payload.get('order_status')
        response_status = payload.get('response_status')
        payment_id = payload.get('payment_id')
        approved = order_status == APPROVED_ORDER_STATUS and response_status == SUCCESS_RESPONSE_STATUS

        logger.info(
            f"Payment callback for order {order_id}: order_status={order_status}, "
            f"response_status={response_status}, payment_id={payment_id}"
        )

        order = self.repository.find(order_id)
        if order is None:
            logger.warning(f"Payment callback references unknown order {order_id}.")
            return CallbackOutcome(CallbackResult.NOT_FOUND, order_id)

        if order.is_terminal:
            logger.info(f"Order {order_id} is already {order.payment_status}; ignoring redelivered callback.")
            return CallbackOutcome(CallbackResult.DUPLICATE, order_id)

        if approved:
            self._check_amount(order, payload)

        fields = {}
        if payment_id not in (None, ''):
            fields['paymentId'] = str(payment_id)

        if approved:
            transition = Transition.PAY
        else:
            transition = Transition.FAIL
            fields['cancellationReason'] = (
                f"Payment {order_status or 'not approved'} "
                f"(response_status: {response_status or 'unknown'})"
            )

        try:
            applied = self.repository.transition(order.id, transition, fields)
        except NotFound:
            logger.warning(f"Order {order_id} disappeared before its payment could be recorded.")
            return CallbackOutcome(CallbackResult.NOT_FOUND, order_id)

        if not applied:
            logger.info(f"Order {order_id} left pending concurrently; callback not applied.")
            return CallbackOutcome(CallbackResult.DUPLICATE, order_id)

        if approved:
            logger.info(f"Order {order_id} marked as PAID (payment {payment_id}).")
            if self.notifier:
                self.notifier(order)
            return CallbackOutcome(CallbackResult.APPLIED_PAID, order_id)

        logger.info(f"Order {order_id} marked as FAILED: {fields['cancellationReason']}")
        return CallbackOutcome(CallbackResult.APPLIED_FAILED, order_id)

    def _check_amount(self, order, payload):
        amount = payload.get('amount')
        if amount in (None, '') or order.total_amount is None:
            return
        try:
            expected = to_minor_units(order.total_amount)
            received = int(str(amount))
        except (InvalidRequest, ValueError):
            logger.warning(f"Could not compare callback amount {amount!r} for order {order.order_number}.")
            return
        if expected != received:
            logger.warning(
                f"Callback amount {received} does not match order {order.order_number} "
                f"total {expected} (minor units)."
            )
