import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from django.conf import settings
from django.core.mail import send_mail

from .models import Transition

logger = logging.getLogger(__name__)


# --- Expired Order Sweep ---

@dataclass
class SweepResult:
    processed_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    total_found: int = 0

    def as_dict(self):
        return {
            "processedCount": self.processed_count,
            "errorCount": self.error_count,
            "skippedCount": self.skipped_count,
            "totalFound": self.total_found,
        }


def sweep_expired_orders(repository, cutoff=None, batch_size=None, timeout_minutes=None):
    """
    Cancels pending orders created at or before `cutoff` and restores their
    reserved inventory.

    Each order is cancelled in its own transaction that re-checks the order is
    still pending, so a payment callback landing between the query and the
    write is never overwritten. One order failing does not stop the batch.
    The sweep is safe to re-run: anything left pending is picked up next time.
    """
    if timeout_minutes is None:
        timeout_minutes = settings.ORDER_PAYMENT_TIMEOUT_MINUTES
    if cutoff is None:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=timeout_minutes)
    if batch_size is None:
        batch_size = settings.ORDER_CLEANUP_BATCH_SIZE

    logger.info(f"Starting expired orders cleanup (cutoff: {cutoff.isoformat()}, batch size: {batch_size})")

    expired_orders = repository.list_expired_pending(cutoff, batch_size)
    result = SweepResult(total_found=len(expired_orders))
    if not expired_orders:
        logger.info("No expired orders found.")
        return result

    logger.info(f"Found {len(expired_orders)} expired orders to process.")
    reason = f"Automatic cleanup - expired after {timeout_minutes} minutes"

    for order in expired_orders:
        try:
            applied = repository.transition(
                order.id,
                Transition.EXPIRE,
                {"cancellationReason": reason},
            )
        except Exception as e:
            logger.error(f"Error processing expired order {order.order_number} ({order.id}): {e}")
            logger.exception(e)
            result.error_count += 1
            continue

        if applied:
            result.processed_count += 1
            logger.info(f"Successfully cleaned up order {order.order_number} ({order.id})")
        else:
            result.skipped_count += 1
            logger.info(f"Order {order.order_number} ({order.id}) left pending before cleanup, skipped.")

    logger.info(
        f"Cleanup completed: {result.processed_count} processed, "
        f"{result.skipped_count} skipped, {result.error_count} errors"
    )
    return result


# --- Notification Service ---

def send_payment_confirmation(order):
    """
    Emails the customer that their payment went through.

    Orders without an email (manual orders) are skipped. A mail failure is
    logged and swallowed: the payment is already recorded.
    """
    if not order.customer_email:
        logger.info(f"Order {order.order_number} has no customer email, skipping confirmation.")
        return False

    order_label = order.order_number or order.id
    greeting = f"Dear {order.customer_first_name}," if order.customer_first_name else "Dear customer,"
    subject = f"LifeStore - order confirmed #{order_label}"
    message = (
        f"{greeting}\n\n"
        f"Thank you! Your payment for order {order_label} was received and your order is confirmed.\n\n"
        f"We will let you know once it ships.\n\n"
        f"Sincerely,\nThe Store Team"
    )

    try:
        send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, [order.customer_email])
        logger.info(f"Confirmation email sent to {order.customer_email} for order {order_label}")
        return True
    except Exception as e:
        logger.error(f"Failed to send confirmation email for order {order_label}: {e}")
        return False
