import pytest
from sqlalchemy import update

from app.extensions import db
from app.models import Order, Communication
from app.services import workflow
from app.services.reconciliation_service import ReconciliationService


def payment_event(reference, event_type='payment.completed', status='COMPLETED', payment_id='PAY-777'):
    return {
        'type': event_type,
        'event_id': 'evt-1',
        'data': {'object': {'payment': {
            'id': payment_id,
            'status': status,
            'payment_link_id': reference,
            'amount_money': {'amount': 1000, 'currency': 'USD'},
        }}},
    }


@pytest.fixture
def card_order(place_order, notifier):
    order = place_order('card')
    notifier.intents.clear()
    return order


def received_count(order):
    return Communication.query.filter_by(order_id=order.id, type=Communication.TYPE_PAYMENT_RECEIVED).count()


def test_completed_payment_moves_order_forward(card_order, notifier):
    ack = ReconciliationService.handle_payment_event(payment_event(card_order.payment_session_id))

    assert ack.to_dict() == {'received': True, 'action': 'payment_received', 'order_id': card_order.id}
    order = db.session.get(Order, card_order.id)
    assert order.status == Order.STATUS_PAYMENT_RECEIVED
    assert order.payment_id == 'PAY-777'
    assert received_count(order) == 1
    assert notifier.templates() == ['payment_received']


def test_duplicate_delivery_is_acknowledged_once(card_order, notifier):
    event = payment_event(card_order.payment_session_id)

    first = ReconciliationService.handle_payment_event(event)
    second = ReconciliationService.handle_payment_event(event)

    assert first.action == 'payment_received'
    assert second.action == 'already_processed'
    assert second.received is True
    assert received_count(card_order) == 1
    assert notifier.templates() == ['payment_received']


def test_payment_matched_by_square_order_id(card_order, notifier):
    # payment.updated 事件通常只带支付平台订单 ID，不带 payment_link_id
    assert card_order.payment_session_id == 'PL-1'
    assert card_order.payment_order_id == 'SQ-ORDER-1'
    event = payment_event(None, event_type='payment.updated', payment_id='PAY-778')
    event['data']['object']['payment']['order_id'] = 'SQ-ORDER-1'

    ack = ReconciliationService.handle_payment_event(event)

    assert ack.to_dict() == {'received': True, 'action': 'payment_received', 'order_id': card_order.id}
    assert db.session.get(Order, card_order.id).payment_id == 'PAY-778'
    assert notifier.templates() == ['payment_received']
    # 随后带 payment_link_id 的 payment.completed 视为重复投递
    assert ReconciliationService.handle_payment_event(payment_event('PL-1')).action == 'already_processed'
    assert received_count(card_order) == 1


def test_session_id_is_not_treated_as_square_order_id(card_order):
    event = payment_event(None)
    event['data']['object']['payment']['order_id'] = 'PL-1'

    assert ReconciliationService.handle_payment_event(event).action == 'unmatched'
    assert received_count(card_order) == 0


def test_concurrent_delivery_loses_the_race(card_order, notifier, monkeypatch):
    real_apply = workflow.apply_transition

    def racing_apply(order, *args, **kwargs):
        # 另一个并发回调在本次读取订单之后已把订单推进
        db.session.execute(
            update(Order).where(Order.id == order.id)
            .values(status=Order.STATUS_PAYMENT_RECEIVED)
            .execution_options(synchronize_session=False)
        )
        return real_apply(order, *args, **kwargs)

    monkeypatch.setattr(workflow, 'apply_transition', racing_apply)

    ack = ReconciliationService.handle_payment_event(payment_event('PL-1'))

    assert ack.to_dict() == {'received': True, 'action': 'already_processed', 'order_id': card_order.id}
    assert received_count(card_order) == 0
    assert notifier.intents == []


@pytest.mark.parametrize('event', [
    {'type': 'refund.created', 'data': {}},
    {'type': 'payment.completed'},
    {'type': 'payment.completed', 'data': {'object': 'nope'}},
    {},
])
def test_unhandled_events_are_ignored(card_order, event):
    ack = ReconciliationService.handle_payment_event(event)
    assert ack.action == 'ignored'
    assert db.session.get(Order, card_order.id).status == Order.STATUS_PENDING_PAYMENT


def test_incomplete_payment_status_ignored(card_order):
    event = payment_event(card_order.payment_session_id, event_type='payment.updated', status='APPROVED')
    assert ReconciliationService.handle_payment_event(event).action == 'ignored'
    assert db.session.get(Order, card_order.id).status == Order.STATUS_PENDING_PAYMENT


def test_unknown_reference_is_unmatched(card_order):
    ack = ReconciliationService.handle_payment_event(payment_event('PL-does-not-exist'))
    assert ack.to_dict() == {'received': True, 'action': 'unmatched'}
    assert received_count(card_order) == 0


def test_ambiguous_reference_changes_nothing(place_order, card_order):
    other = place_order('invoice')
    other.payment_session_id = card_order.payment_session_id
    db.session.commit()

    ack = ReconciliationService.handle_payment_event(payment_event(card_order.payment_session_id))

    assert ack.action == 'ambiguous'
    assert card_order.status == Order.STATUS_PENDING_PAYMENT
    assert other.status == Order.STATUS_PENDING_PAYMENT
    assert received_count(card_order) == 0
