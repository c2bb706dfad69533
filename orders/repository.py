import logging

from django.conf import settings
from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPIError

from storefront_backend.firebase_config import get_db
from .exceptions import InvalidTransition, NotFound, PersistenceError
from .inventory import build_restock_update, group_restorable_items
from .models import Order, PaymentStatus, status_update

logger = logging.getLogger(__name__)

ORDERS_COLLECTION = 'orders'
PRODUCTS_COLLECTION = 'products'


@firestore.transactional
def _transition_in_transaction(transaction, db, order_ref, transition, fields):
    """
    Re-reads the order inside the transaction and writes the transition only
    if it is still pending. All reads happen before any write, as Firestore
    transactions require.
    """
    snapshot = order_ref.get(transaction=transaction)
    if not snapshot.exists:
        raise NotFound(f"Order {order_ref.id} not found")
    order_data = snapshot.to_dict()

    try:
        order_update = status_update(order_data.get('paymentStatus'), transition, firestore.SERVER_TIMESTAMP)
    except InvalidTransition as e:
        logger.info(f"Skipping {transition.name} for order {order_ref.id}: {e}")
        return False

    product_updates = []
    if transition.restores_inventory:
        order = Order.from_document(snapshot.id, order_data)
        for product_id, items in group_restorable_items(order.items).items():
            product_ref = db.collection(PRODUCTS_COLLECTION).document(product_id)
            product_snapshot = product_ref.get(transaction=transaction)
            if not product_snapshot.exists:
                logger.warning(f"Product {product_id} not found, cannot restore stock for order {order_ref.id}")
                continue
            update = build_restock_update(product_id, product_snapshot.to_dict(), items)
            if update:
                update['updatedAt'] = firestore.SERVER_TIMESTAMP
                product_updates.append((product_ref, update))

    order_update.update(fields)
    transaction.update(order_ref, order_update)
    for product_ref, update in product_updates:
        transaction.update(product_ref, update)
    return True


class FirestoreOrderRepository:
    """
    Reads and transitions order documents in Firestore.

    Every status change goes through `transition`, which is a compare-and-set:
    the callback handler and the expiry sweep can race on the same order and
    only the first writer to observe it as pending wins.
    """
    def __init__(self, db=None):
        self.db = db or get_db()

    def _orders(self):
        return self.db.collection(ORDERS_COLLECTION)

    def get(self, order_id):
        try:
            snapshot = self._orders().document(order_id).get(timeout=settings.FIRESTORE_TIMEOUT)
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to read order {order_id}: {e}") from e
        if not snapshot.exists:
            return None
        return Order.from_document(snapshot.id, snapshot.to_dict())

    def find_by_number(self, order_number):
        query = self._orders().where(
            filter=firestore.FieldFilter('orderNumber', '==', order_number)
        ).limit(1)
        try:
            documents = list(query.stream(timeout=settings.FIRESTORE_TIMEOUT))
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to query order number {order_number}: {e}") from e
        if not documents:
            return None
        return Order.from_document(documents[0].id, documents[0].to_dict())

    def find(self, reference):
        """
        Looks an order up by the reference the gateway echoes back: the
        human-facing order number, falling back to the document id.
        """
        reference = str(reference)
        order = self.find_by_number(reference)
        if order is None and '/' not in reference:
            order = self.get(reference)
        return order

    def list_expired_pending(self, cutoff, limit):
        """Pending orders created at or before `cutoff`, oldest first."""
        query = (
            self._orders()
            .where(filter=firestore.FieldFilter('paymentStatus', '==', PaymentStatus.PENDING.value))
            .where(filter=firestore.FieldFilter('createdAt', '<=', cutoff))
            .order_by('createdAt')
            .limit(limit)
        )
        try:
            documents = query.stream(timeout=settings.FIRESTORE_TIMEOUT)
            return [Order.from_document(doc.id, doc.to_dict()) for doc in documents]
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to query expired orders: {e}") from e

    def transition(self, order_id, transition, fields=None):
        """
        Applies `transition` to a pending order in a single transaction,
        restoring inventory when the transition cancels the order.

        Returns False, without writing, when the order is no longer pending.
        """
        order_ref = self._orders().document(order_id)
        transaction = self.db.transaction()
        try:
            applied = _transition_in_transaction(transaction, self.db, order_ref, transition, dict(fields or {}))
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to apply {transition.name} to order {order_id}: {e}") from e
        except ValueError as e:
            # Raised by firestore.transactional once its retry attempts are used up.
            raise PersistenceError(f"Transaction for order {order_id} did not commit: {e}") from e

        if applied:
            logger.info(f"Order {order_id} transitioned via {transition.name}")
        return applied
