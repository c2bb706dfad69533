from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET
from django.conf import settings
import hmac
import logging

from .exceptions import PersistenceError
from .repository import FirestoreOrderRepository
from .services import sweep_expired_orders

logger = logging.getLogger(__name__)


def _is_authorized_cleanup(request):
    """
    A sweep may be started by the platform scheduler, which sets a known
    header, or manually with the configured bearer token.
    """
    for header, expected in settings.CLEANUP_SCHEDULER_HEADERS:
        if request.headers.get(header) == expected:
            logger.info(f"Cleanup triggered by scheduler ({header}).")
            return True

    expected_token = settings.CLEANUP_SECRET_TOKEN
    auth_header = request.headers.get('Authorization', '')
    if not expected_token or not auth_header.startswith('Bearer '):
        return False
    supplied_token = auth_header[len('Bearer '):]
    return hmac.compare_digest(supplied_token.encode('utf-8'), expected_token.encode('utf-8'))


@csrf_exempt
def cleanup_expired_orders(request):
    """
    Cancels pending orders whose payment window has passed and restores
    their inventory.
    """
    if request.method != 'POST':
        return JsonResponse({'error': 'Method not allowed'}, status=405)

    if not _is_authorized_cleanup(request):
        logger.warning("Unauthorized cleanup request rejected.")
        return JsonResponse({'error': 'Unauthorized'}, status=401)

    try:
        result = sweep_expired_orders(FirestoreOrderRepository())
    except PersistenceError as e:
        logger.error(f"Error during expired orders cleanup: {e}")
        return JsonResponse({
            'success': False,
            'error': 'Internal server error during cleanup',
            'message': str(e),
        }, status=500)

    return JsonResponse({'success': True, **result.as_dict()})


@require_GET
def get_order_by_number(request):
    order_number = request.GET.get('orderNumber')
    if not order_number:
        return JsonResponse({'error': 'Order number is required'}, status=400)

    try:
        order = FirestoreOrderRepository().find_by_number(order_number)
    except PersistenceError as e:
        logger.error(f"Error getting order {order_number}: {e}")
        return JsonResponse({'error': 'Internal server error'}, status=500)

    if order is None:
        logger.info(f"No order found with number: {order_number}")
        return JsonResponse({'error': 'Order not found'}, status=404)

    return JsonResponse({'order': order.to_public_dict()})
