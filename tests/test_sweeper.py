from datetime import datetime, timedelta, timezone

from orders.models import Transition
from orders.services import SweepResult, sweep_expired_orders

from .fakes import InMemoryOrderRepository, make_order


def test_expired_order_is_cancelled_and_stock_restored():
    repository = InMemoryOrderRepository(
        orders={'O1': make_order(minutes_old=35, items=[{'productId': 'P1', 'quantity': 3}])},
        products={'P1': {'stock': 5}},
    )

    result = sweep_expired_orders(repository, timeout_minutes=30)

    assert result == SweepResult(processed_count=1, error_count=0, skipped_count=0, total_found=1)
    order = repository.orders['O1']
    assert order['paymentStatus'] == 'cancelled'
    assert order['orderStatus'] == 'cancelled'
    assert order['cancelledAt'] is not None
    assert order['cancellationReason'] == 'Automatic cleanup - expired after 30 minutes'
    assert repository.products['P1']['stock'] == 8


def test_manual_items_are_cancelled_without_restock():
    repository = InMemoryOrderRepository(
        orders={'O1': make_order(minutes_old=35, items=[
            {'productId': 'manual_abc', 'quantity': 1},
            {'productId': 'P1', 'quantity': 1},
        ])},
        products={'P1': {'stock': 5}, 'manual_abc': {'stock': 0}},
    )

    result = sweep_expired_orders(repository)

    assert result.processed_count == 1
    assert repository.orders['O1']['paymentStatus'] == 'cancelled'
    assert repository.products['manual_abc']['stock'] == 0
    assert repository.products['P1']['stock'] == 6


def test_variant_stock_is_restored():
    repository = InMemoryOrderRepository(
        orders={'O1': make_order(minutes_old=60, items=[{'productId': 'P1', 'variantId': 'V2', 'quantity': 2}])},
        products={'P1': {'stock': 1, 'totalStock': 1, 'variants': [{'id': 'V1', 'stock': 0}, {'id': 'V2', 'stock': 1}]}},
    )

    sweep_expired_orders(repository)

    product = repository.products['P1']
    assert product['variants'][1]['stock'] == 3
    assert product['stock'] == 3
    assert product['totalStock'] == 3


def test_recent_and_settled_orders_are_left_alone():
    repository = InMemoryOrderRepository(
        orders={
            'recent': make_order('LS-1', minutes_old=10),
            'paid': make_order('LS-2', minutes_old=90, paymentStatus='paid', orderStatus='confirmed'),
        },
        products={'P1': {'stock': 5}},
    )

    result = sweep_expired_orders(repository)

    assert result.total_found == 0
    assert repository.orders['recent']['paymentStatus'] == 'pending'
    assert repository.orders['paid']['paymentStatus'] == 'paid'
    assert repository.products['P1']['stock'] == 5


def test_explicit_cutoff_and_batch_size():
    now = datetime.now(timezone.utc)
    repository = InMemoryOrderRepository(
        orders={f'O{i}': make_order(f'LS-{i}', minutes_old=40 + i) for i in range(5)},
        products={'P1': {'stock': 0}},
    )

    result = sweep_expired_orders(repository, cutoff=now - timedelta(minutes=30), batch_size=2)

    assert result.total_found == 2
    assert result.processed_count == 2
    # The oldest orders go first.
    cancelled = {order_id for order_id, data in repository.orders.items() if data['paymentStatus'] == 'cancelled'}
    assert cancelled == {'O3', 'O4'}


def test_one_failing_order_does_not_abort_the_batch():
    repository = InMemoryOrderRepository(
        orders={
            'O1': make_order('LS-1', minutes_old=50),
            'O2': make_order('LS-2', minutes_old=45),
            'O3': make_order('LS-3', minutes_old=40),
        },
        products={'P1': {'stock': 0}},
    )
    repository.fail_for = {'O2'}

    result = sweep_expired_orders(repository)

    assert result.processed_count == 2
    assert result.error_count == 1
    assert repository.orders['O2']['paymentStatus'] == 'pending'
    assert repository.products['P1']['stock'] == 4


def test_callback_landing_mid_sweep_wins():
    repository = InMemoryOrderRepository(
        orders={'O1': make_order(minutes_old=40)},
        products={'P1': {'stock': 5}},
    )

    def callback_arrives(order_id):
        # The gateway confirms payment after the sweep selected the order.
        repository.before_transition = None
        repository.transition(order_id, Transition.PAY, {'paymentId': '42'})

    repository.before_transition = callback_arrives
    result = sweep_expired_orders(repository)

    assert result.skipped_count == 1
    assert result.processed_count == 0
    assert repository.orders['O1']['paymentStatus'] == 'paid'
    assert repository.orders['O1']['orderStatus'] == 'confirmed'
    assert repository.products['P1']['stock'] == 5


def test_sweep_is_rerunnable():
    repository = InMemoryOrderRepository(
        orders={'O1': make_order(minutes_old=40)},
        products={'P1': {'stock': 5}},
    )

    first = sweep_expired_orders(repository)
    second = sweep_expired_orders(repository)

    assert first.processed_count == 1
    assert second.total_found == 0
    assert repository.products['P1']['stock'] == 7


def test_result_as_dict():
    assert SweepResult(1, 2, 3, 6).as_dict() == {
        'processedCount': 1,
        'errorCount': 2,
        'skippedCount': 3,
        'totalFound': 6,
    }
