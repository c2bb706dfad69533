import json
from unittest import mock

import pytest
from django.test import RequestFactory

from orders.exceptions import InvalidRequest, PersistenceError
from orders.services import sweep_expired_orders
from payments.reconciler import CallbackReconciler, CallbackResult, extract_payload

from .fakes import SECRET, make_order, signed_callback


@pytest.fixture
def notifier():
    return mock.Mock()


@pytest.fixture
def reconciler(repository, notifier):
    return CallbackReconciler(repository, SECRET, notifier=notifier)


def test_approved_callback_marks_order_paid(reconciler, repository, notifier):
    outcome = reconciler.handle_callback(signed_callback())

    assert outcome.result is CallbackResult.APPLIED_PAID
    assert outcome.status_code == 200
    order = repository.orders['O1']
    assert order['paymentStatus'] == 'paid'
    assert order['orderStatus'] == 'confirmed'
    assert order['paidAt'] is not None
    assert order['paymentId'] == '805243692'
    # Paying never touches stock.
    assert repository.products['P1']['stock'] == 5
    notifier.assert_called_once()


def test_lookup_falls_back_to_document_id(reconciler, repository):
    outcome = reconciler.handle_callback(signed_callback(order_id='O1'))
    assert outcome.result is CallbackResult.APPLIED_PAID
    assert repository.orders['O1']['paymentStatus'] == 'paid'


def test_tampered_signature_leaves_order_unchanged(reconciler, repository, notifier):
    payload = signed_callback()
    payload['signature'] = payload['signature'][:-1] + ('0' if payload['signature'][-1] != '0' else '1')
    before = dict(repository.orders['O1'])

    outcome = reconciler.handle_callback(payload)

    assert outcome.result is CallbackResult.SIGNATURE_INVALID
    assert outcome.status_code == 200
    assert repository.orders['O1'] == before
    assert repository.transition_calls == []
    notifier.assert_not_called()


def test_forged_status_change_is_rejected(reconciler, repository):
    payload = signed_callback(order_status='declined', response_status='failure')
    payload['order_status'] = 'approved'
    payload['response_status'] = 'success'

    assert reconciler.handle_callback(payload).result is CallbackResult.SIGNATURE_INVALID
    assert repository.orders['O1']['paymentStatus'] == 'pending'


def test_callback_signed_with_other_secret_is_rejected(reconciler, repository):
    outcome = reconciler.handle_callback(signed_callback(secret='attacker'))
    assert outcome.result is CallbackResult.SIGNATURE_INVALID
    assert repository.orders['O1']['paymentStatus'] == 'pending'


def test_missing_order_id_is_a_client_error(reconciler, repository):
    payload = signed_callback(order_id='')
    outcome = reconciler.handle_callback(payload)
    assert outcome.result is CallbackResult.MISSING_ORDER_ID
    assert outcome.status_code == 400
    assert repository.transition_calls == []


def test_unknown_order_is_acknowledged(reconciler, repository):
    outcome = reconciler.handle_callback(signed_callback(order_id='LS-9999'))
    assert outcome.result is CallbackResult.NOT_FOUND
    assert outcome.status_code == 200
    assert repository.transition_calls == []


@pytest.mark.parametrize('order_status, response_status', [
    ('declined', 'success'),
    ('approved', 'failure'),
    ('expired', 'success'),
    ('processing', 'success'),
])
def test_anything_but_approved_and_success_fails_the_order(reconciler, repository, notifier,
                                                           order_status, response_status):
    outcome = reconciler.handle_callback(
        signed_callback(order_status=order_status, response_status=response_status)
    )

    assert outcome.result is CallbackResult.APPLIED_FAILED
    order = repository.orders['O1']
    assert order['paymentStatus'] == 'failed'
    assert order['orderStatus'] == 'cancelled'
    assert order_status in order['cancellationReason']
    # The reserved stock goes back.
    assert repository.products['P1']['stock'] == 7
    notifier.assert_not_called()


def test_redelivered_callback_applies_side_effects_once(reconciler, repository, notifier):
    payload = signed_callback()

    first = reconciler.handle_callback(payload)
    second = reconciler.handle_callback(dict(payload))

    assert first.result is CallbackResult.APPLIED_PAID
    assert second.result is CallbackResult.DUPLICATE
    assert repository.orders['O1']['paymentStatus'] == 'paid'
    assert len(repository.transition_calls) == 1
    notifier.assert_called_once()


def test_redelivered_decline_restores_stock_once(reconciler, repository):
    payload = signed_callback(order_status='declined', response_status='failure')
    reconciler.handle_callback(payload)
    reconciler.handle_callback(payload)
    assert repository.products['P1']['stock'] == 7


def test_late_decline_does_not_override_payment(reconciler, repository):
    reconciler.handle_callback(signed_callback())
    outcome = reconciler.handle_callback(signed_callback(order_status='declined', response_status='failure'))
    assert outcome.result is CallbackResult.DUPLICATE
    assert repository.orders['O1']['paymentStatus'] == 'paid'


def test_callback_after_sweep_is_not_applied(reconciler, repository, notifier):
    repository.orders['O1'] = make_order(minutes_old=45)
    sweep_expired_orders(repository)

    outcome = reconciler.handle_callback(signed_callback())

    assert outcome.result is CallbackResult.DUPLICATE
    assert repository.orders['O1']['paymentStatus'] == 'cancelled'
    notifier.assert_not_called()


def test_order_settled_between_lookup_and_write_is_reported_as_duplicate(reconciler, repository, notifier):
    def settle_elsewhere(order_id):
        repository.orders[order_id]['paymentStatus'] = 'cancelled'
        repository.orders[order_id]['orderStatus'] = 'cancelled'

    repository.before_transition = settle_elsewhere
    outcome = reconciler.handle_callback(signed_callback())

    assert outcome.result is CallbackResult.DUPLICATE
    assert repository.orders['O1']['paymentStatus'] == 'cancelled'
    notifier.assert_not_called()


def test_persistence_failure_is_acknowledged(reconciler, repository):
    with mock.patch.object(repository, 'transition', side_effect=PersistenceError('deadline exceeded')):
        outcome = reconciler.handle_callback(signed_callback())
    assert outcome.result is CallbackResult.ERROR
    assert outcome.status_code == 200


def test_amount_mismatch_is_logged_but_still_applied(reconciler, repository, caplog):
    outcome = reconciler.handle_callback(signed_callback(amount=100))
    assert outcome.result is CallbackResult.APPLIED_PAID
    assert 'does not match' in caplog.text


class TestExtractPayload:
    factory = RequestFactory()

    def test_json_body(self):
        request = self.factory.post('/cb', data=json.dumps({'order_id': 'LS-1'}), content_type='application/json')
        assert extract_payload(request) == {'order_id': 'LS-1'}

    def test_json_response_envelope(self):
        body = json.dumps({'response': {'order_id': 'LS-1', 'signature': 'abc'}})
        request = self.factory.post('/cb', data=body, content_type='application/json')
        assert extract_payload(request) == {'order_id': 'LS-1', 'signature': 'abc'}

    def test_form_body(self):
        request = self.factory.post(
            '/cb',
            data='order_id=LS-1&order_status=approved&fee=',
            content_type='application/x-www-form-urlencoded',
        )
        assert extract_payload(request) == {'order_id': 'LS-1', 'order_status': 'approved', 'fee': ''}

    def test_query_string(self):
        request = self.factory.get('/cb', {'order_id': 'LS-1', 'amount': '2550'})
        assert extract_payload(request) == {'order_id': 'LS-1', 'amount': '2550'}

    def test_body_overrides_query(self):
        request = self.factory.post(
            '/cb?order_id=from-query', data=json.dumps({'order_id': 'from-body'}), content_type='application/json'
        )
        assert extract_payload(request)['order_id'] == 'from-body'

    @pytest.mark.parametrize('body', ['{not json', '[1, 2]'])
    def test_unparseable_json(self, body):
        request = self.factory.post('/cb', data=body, content_type='application/json')
        with pytest.raises(InvalidRequest):
            extract_payload(request)


def test_form_callback_verifies_after_parsing(reconciler, repository):
    payload = signed_callback()
    request = RequestFactory().post(
        '/cb',
        data='&'.join(f'{key}={value}' for key, value in payload.items()),
        content_type='application/x-www-form-urlencoded',
    )
    outcome = reconciler.handle_callback(extract_payload(request))
    assert outcome.result is CallbackResult.APPLIED_PAID


def test_multipart_callback_verifies_after_parsing(reconciler, repository):
    request = RequestFactory().post('/cb', data=signed_callback())
    assert request.content_type == 'multipart/form-data'

    payload = extract_payload(request)
    assert payload['order_id'] == 'LS-2025-000001'
    assert reconciler.handle_callback(payload).result is CallbackResult.APPLIED_PAID
    assert repository.orders['O1']['paymentStatus'] == 'paid'


def test_malformed_multipart_body_is_rejected():
    request = RequestFactory().post('/cb', data='order_id=LS-1', content_type='multipart/form-data')
    with pytest.raises(InvalidRequest):
        extract_payload(request)
