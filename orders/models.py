import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from django.db import models

from .exceptions import InvalidTransition

MANUAL_PRODUCT_PREFIX = 'manual_'
MANUAL_ENTRY_ID = 'manual_entry'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    PAID = 'paid', 'Paid'
    FAILED = 'failed', 'Failed'
    CANCELLED = 'cancelled', 'Cancelled'


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    CANCELLED = 'cancelled', 'Cancelled'


TERMINAL_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
})


class Transition(enum.Enum):
    """
    The only ways an order leaves `pending`.

    Each value is the (paymentStatus, orderStatus) pair the order ends in.
    """
    PAY = (PaymentStatus.PAID, OrderStatus.CONFIRMED)
    FAIL = (PaymentStatus.FAILED, OrderStatus.CANCELLED)
    EXPIRE = (PaymentStatus.CANCELLED, OrderStatus.CANCELLED)

    @property
    def payment_status(self):
        return self.value[0]

    @property
    def order_status(self):
        return self.value[1]

    @property
    def restores_inventory(self):
        return self is not Transition.PAY


def apply_transition(current_payment_status, transition):
    """
    Returns the (paymentStatus, orderStatus) pair reached by `transition`.

    Only pending orders may transition; every other state is terminal, so a
    redelivered callback or a late sweep is rejected here rather than by
    convention at each call site.
    """
    try:
        current = PaymentStatus(current_payment_status)
    except ValueError:
        raise InvalidTransition(f"Unknown payment status: {current_payment_status!r}")

    if current != PaymentStatus.PENDING:
        raise InvalidTransition(
            f"Cannot apply {transition.name} to an order whose payment status is '{current}'."
        )
    return transition.payment_status, transition.order_status


def status_update(current_payment_status, transition, timestamp):
    """
    Builds the order fields written by `transition`, stamped with `timestamp`.

    Raises InvalidTransition when the order is no longer pending.
    """
    payment_status, order_status = apply_transition(current_payment_status, transition)
    update = {
        'paymentStatus': payment_status.value,
        'orderStatus': order_status.value,
        'updatedAt': timestamp,
    }
    if transition is Transition.PAY:
        update['paidAt'] = timestamp
    else:
        update['cancelledAt'] = timestamp
    return update


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    quantity: int
    variant_id: str | None = None

    @property
    def is_manual(self) -> bool:
        """Items typed in by an admin have no product document behind them."""
        return (
            not self.product_id
            or self.product_id.startswith(MANUAL_PRODUCT_PREFIX)
            or self.product_id == MANUAL_ENTRY_ID
        )

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItem":
        try:
            quantity = int(data.get('quantity') or 0)
        except (TypeError, ValueError):
            quantity = 0
        return cls(
            product_id=str(data.get('productId') or ''),
            quantity=quantity,
            variant_id=data.get('variantId') or None,
        )


def _to_decimal(value):
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _isoformat(value):
    return value.isoformat() if isinstance(value, datetime) else value


@dataclass
class Order:
    """An order document from the `orders` collection."""
    id: str
    order_number: str | None
    payment_status: str
    order_status: str
    items: list = field(default_factory=list)
    total_amount: Decimal | None = None
    customer_email: str | None = None
    customer_first_name: str | None = None
    payment_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Order":
        customer = data.get('customerInfo') or {}
        return cls(
            id=doc_id,
            order_number=data.get('orderNumber'),
            payment_status=data.get('paymentStatus', PaymentStatus.PENDING),
            order_status=data.get('orderStatus', OrderStatus.PENDING),
            items=[OrderItem.from_dict(item) for item in data.get('items') or []],
            total_amount=_to_decimal(data.get('totalAmount')),
            customer_email=(customer.get('email') or '').strip() or None,
            customer_first_name=customer.get('firstName'),
            payment_id=data.get('paymentId'),
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
            paid_at=data.get('paidAt'),
            cancelled_at=data.get('cancelledAt'),
            cancellation_reason=data.get('cancellationReason'),
        )

    @property
    def is_pending(self) -> bool:
        return self.payment_status == PaymentStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.payment_status in TERMINAL_PAYMENT_STATUSES

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "paymentStatus": str(self.payment_status),
            "orderStatus": str(self.order_status),
            "items": [
                {"productId": item.product_id, "variantId": item.variant_id, "quantity": item.quantity}
                for item in self.items
            ],
            "totalAmount": float(self.total_amount) if self.total_amount is not None else None,
            "paymentId": self.payment_id,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "paidAt": _isoformat(self.paid_at),
            "cancelledAt": _isoformat(self.cancelled_at),
            "cancellationReason": self.cancellation_reason,
        }

    def __str__(self):
        return f"Order {self.order_number or self.id} - {self.payment_status}"
