from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from orders.exceptions import PersistenceError
from orders.repository import FirestoreOrderRepository
from orders.services import sweep_expired_orders


class Command(BaseCommand):
    help = "Cancels pending orders past their payment window and restores their inventory."

    def add_arguments(self, parser):
        parser.add_argument(
            '--timeout-minutes',
            type=int,
            default=settings.ORDER_PAYMENT_TIMEOUT_MINUTES,
            help="Cancel orders still pending after this many minutes.",
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=settings.ORDER_CLEANUP_BATCH_SIZE,
            help="Maximum number of orders handled in one run.",
        )

    def handle(self, *args, **options):
        try:
            result = sweep_expired_orders(
                FirestoreOrderRepository(),
                batch_size=options['batch_size'],
                timeout_minutes=options['timeout_minutes'],
            )
        except PersistenceError as e:
            raise CommandError(f"Cleanup failed: {e}")

        self.stdout.write(
            f"Found {result.total_found} expired orders: {result.processed_count} cancelled, "
            f"{result.skipped_count} skipped, {result.error_count} errors."
        )
        if result.error_count:
            raise CommandError(f"{result.error_count} orders could not be cancelled.")
