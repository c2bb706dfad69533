from django.http import JsonResponse, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods
from django.core.exceptions import ImproperlyConfigured
import json
import logging

from orders.exceptions import InvalidRequest, PaymentGatewayError, PersistenceError
from orders.repository import FirestoreOrderRepository
from .config import GatewayConfig
from .reconciler import CallbackReconciler, extract_payload
from .services import FlittService

logger = logging.getLogger(__name__)


@csrf_exempt
def create_payment(request):
    """
    Starts a Flitt checkout for an order and returns the checkout URL.
    """
    if request.method != 'POST':
        return JsonResponse({'success': False, 'error': 'Method not allowed'}, status=405)

    try:
        data = json.loads(request.body)
        if not isinstance(data, dict):
            raise InvalidRequest("Request body must be a JSON object")

        flitt_service = FlittService(GatewayConfig.from_settings())
        session = flitt_service.create_payment(
            order_id=data.get('orderId'),
            amount=data.get('amount'),
            currency=data.get('currency'),
            customer_email=data.get('customerEmail'),
            description=data.get('description'),
        )
        return JsonResponse({
            'success': True,
            'checkoutUrl': session.checkout_url,
            'paymentId': session.payment_id,
        })

    except (json.JSONDecodeError, UnicodeDecodeError):
        return JsonResponse({'success': False, 'error': 'Invalid JSON'}, status=400)
    except InvalidRequest as e:
        logger.warning(f"Rejected payment request: {e}")
        return JsonResponse({'success': False, 'error': str(e)}, status=400)
    except PaymentGatewayError as e:
        return JsonResponse({'success': False, 'error': e.message, 'errorCode': e.error_code}, status=502)
    except ImproperlyConfigured as e:
        logger.error(f"Payment system configuration error: {e}")
        return JsonResponse({'success': False, 'error': 'Payment system configuration error'}, status=500)


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def payment_callback(request):
    """
    Receives Flitt's server callback. Always answers 200 once the payload is
    parsed, so the gateway does not keep redelivering it.
    """
    try:
        payload = extract_payload(request)
    except InvalidRequest as e:
        logger.warning(f"Unparseable payment callback: {e}")
        return HttpResponse("Bad Request", status=400)

    logger.info(f"Payment callback received for order {payload.get('order_id')}")

    try:
        reconciler = CallbackReconciler(
            FirestoreOrderRepository(),
            GatewayConfig.from_settings().secret_key,
        )
    except Exception as e:
        # Without a secret or a database nothing can be verified; still acknowledge.
        logger.exception(f"Payment callback could not be processed: {e}")
        return HttpResponse("OK", status=200)

    outcome = reconciler.handle_callback(payload)
    logger.info(f"Payment callback for order {outcome.order_id} finished: {outcome.result.value}")
    if outcome.status_code != 200:
        return HttpResponse("Bad Request", status=outcome.status_code)
    return HttpResponse("OK", status=200)


@require_GET
def payment_status(request):
    """
    Reports the current payment status of an order.
    """
    order_id = request.GET.get('orderId')
    if not order_id:
        return JsonResponse({'success': False, 'error': 'Missing orderId parameter'}, status=400)

    try:
        order = FirestoreOrderRepository().find(order_id)
    except PersistenceError as e:
        logger.error(f"Error getting payment status for order {order_id}: {e}")
        return JsonResponse({'success': False, 'error': 'Internal server error'}, status=500)

    if order is None:
        return JsonResponse({'success': False, 'error': 'Order not found'}, status=404)

    return JsonResponse({
        'success': True,
        'orderId': order_id,
        'paymentStatus': str(order.payment_status),
        'orderStatus': str(order.order_status),
        'paymentId': order.payment_id,
    })
