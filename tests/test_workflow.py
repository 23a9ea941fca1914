from datetime import datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.exceptions import InvalidTransition, InvalidInput, TransitionConflict
from app.models import Communication, AuditLog, Order
from app.services import workflow
from app.services.order_service import OrderService

NOW = datetime(2026, 3, 2, 15, 0, 0)


def comm_count(order):
    return Communication.query.filter_by(order_id=order.id).count()


def advance(order, *statuses, now=NOW, tracking_number=None):
    for status in statuses:
        workflow.apply_transition(order, status, tracking_number=tracking_number, now=now)
    db.session.commit()
    return order


def test_forward_progression_appends_one_communication_per_step(place_order):
    order = place_order()
    before = comm_count(order)

    for i, status in enumerate(workflow.STATUS_FLOW[1:5], start=1):
        result = workflow.apply_transition(order, status, now=NOW)
        db.session.commit()
        assert order.status == status
        assert result.communication.order_id == order.id
        assert comm_count(order) == before + i

    assert workflow.check_consistency(order)


def test_non_adjacent_transition_leaves_order_untouched(place_order):
    order = place_order()
    snapshot = order.to_dict()
    before = comm_count(order)

    with pytest.raises(InvalidTransition) as exc:
        workflow.apply_transition(order, Order.STATUS_SHIPPED, now=NOW)

    assert exc.value.code == 409
    assert order.to_dict() == snapshot
    db.session.flush()
    assert comm_count(order) == before


@pytest.mark.parametrize('current, requested', [
    (Order.STATUS_SHIPPED, Order.STATUS_PAYMENT_RECEIVED),
    (Order.STATUS_SHIPPED, Order.STATUS_SHIPPED),
    (Order.STATUS_PAYMENT_RECEIVED, Order.STATUS_PENDING_PAYMENT),
    (Order.STATUS_SHIPPED, 'cancelled'),
])
def test_backward_and_unknown_transitions_rejected(place_order, current, requested):
    order = place_order()
    path = workflow.STATUS_FLOW[1:workflow.STATUS_FLOW.index(current) + 1]
    advance(order, *path)

    with pytest.raises(InvalidTransition):
        workflow.apply_transition(order, requested, now=NOW)
    assert order.status == current


def test_shipping_without_tracking_number(place_order):
    order = advance(place_order(), Order.STATUS_PAYMENT_RECEIVED, Order.STATUS_BEING_FULFILLED)

    result = workflow.apply_transition(order, Order.STATUS_SHIPPED, now=NOW)

    assert order.shipped_date == NOW
    assert order.tracking_number is None
    assert result.communication.type == Communication.TYPE_SHIPPED
    assert result.intents[0].template == 'order_shipped'


def test_shipping_with_tracking_number(place_order):
    order = advance(place_order(), Order.STATUS_PAYMENT_RECEIVED, Order.STATUS_BEING_FULFILLED)

    result = workflow.apply_transition(order, Order.STATUS_SHIPPED, tracking_number='1Z999AA10123456784', now=NOW)

    assert order.tracking_number == '1Z999AA10123456784'
    assert '1Z999AA10123456784' in result.communication.content
    assert result.intents[0].params['tracking_number'] == '1Z999AA10123456784'


def test_delivered_schedules_follow_up(place_order):
    order = advance(place_order(), *workflow.STATUS_FLOW[1:4], tracking_number='TRK1')

    delivered_at = NOW + timedelta(days=4)
    workflow.apply_transition(order, Order.STATUS_DELIVERED, now=delivered_at)

    assert order.delivered_date == delivered_at
    assert order.follow_up_date == delivered_at + timedelta(days=30)
    assert order.shipped_date == NOW
    assert order.tracking_number == 'TRK1'
    assert order.follow_up_sent is False


def test_follow_up_only_when_due(place_order):
    order = advance(place_order(), *workflow.STATUS_FLOW[1:5])

    with pytest.raises(InvalidTransition):
        workflow.apply_transition(order, Order.STATUS_FOLLOW_UP, now=NOW + timedelta(days=29))
    assert order.status == Order.STATUS_DELIVERED

    result = workflow.apply_transition(order, Order.STATUS_FOLLOW_UP, now=NOW + timedelta(days=30))
    db.session.commit()
    assert order.status == Order.STATUS_FOLLOW_UP
    assert order.follow_up_sent is True
    assert result.intents[0].template == 'reorder_reminder'

    with pytest.raises(InvalidTransition):
        workflow.apply_transition(order, Order.STATUS_FOLLOW_UP, now=NOW + timedelta(days=60))


def test_payment_received_records_payment_id(place_order):
    order = place_order()
    result = workflow.apply_transition(order, Order.STATUS_PAYMENT_RECEIVED, now=NOW, payment_id='PAY-1',
                                       actor='system')
    assert order.payment_id == 'PAY-1'
    assert result.communication.type == Communication.TYPE_PAYMENT_RECEIVED
    assert result.communication.logged_by == 'system'
    assert 'PAY-1' in result.communication.content


def test_state_of_returns_variant(place_order):
    order = advance(place_order(), *workflow.STATUS_FLOW[1:4], tracking_number='TRK2')
    state = workflow.state_of(order)
    assert isinstance(state, workflow.Shipped)
    assert state.tracking_number == 'TRK2'
    assert state.columns()['delivered_date'] is None


def test_build_state_rejects_inconsistent_values():
    with pytest.raises(InvalidInput):
        workflow.build_state(Order.STATUS_SHIPPED, {})
    with pytest.raises(InvalidInput):
        workflow.build_state(Order.STATUS_PAYMENT_RECEIVED, {'tracking_number': 'X'})
    with pytest.raises(InvalidInput):
        workflow.build_state(Order.STATUS_DELIVERED, {
            'shipped_date': NOW, 'delivered_date': NOW - timedelta(days=1), 'follow_up_date': NOW,
        })
    with pytest.raises(InvalidInput):
        workflow.build_state(Order.STATUS_DELIVERED, {
            'shipped_date': NOW, 'delivered_date': NOW, 'follow_up_date': NOW, 'follow_up_sent': True,
        })


def test_check_consistency_flags_broken_row(place_order):
    order = place_order()
    order.status = Order.STATUS_SHIPPED
    with pytest.raises(InvalidInput):
        workflow.check_consistency(order)


def test_correct_order_writes_audit_and_note(place_order, ids):
    from app.models import User
    order = advance(place_order(), *workflow.STATUS_FLOW[1:4], tracking_number='WRONG')
    admin = db.session.get(User, ids.admin)
    notes_before = Communication.query.filter_by(order_id=order.id, type=Communication.TYPE_NOTE).count()

    diff = workflow.correct_order(order, {'tracking_number': ' 1Z-RIGHT '}, user=admin, reason='typo')
    db.session.commit()

    assert diff == {'tracking_number': ('WRONG', '1Z-RIGHT')}
    assert order.tracking_number == '1Z-RIGHT'
    log = AuditLog.query.filter_by(action='manual_correction', target_id=order.id).one()
    assert log.user_id == admin.id
    assert 'typo' in log.details
    assert Communication.query.filter_by(order_id=order.id, type=Communication.TYPE_NOTE).count() == notes_before + 1


def test_correct_order_cannot_change_status_or_break_state(place_order):
    order = advance(place_order(), Order.STATUS_PAYMENT_RECEIVED)

    with pytest.raises(InvalidInput):
        workflow.correct_order(order, {'status': Order.STATUS_SHIPPED})
    with pytest.raises(InvalidInput):
        workflow.correct_order(order, {'delivered_date': '2026-03-01T10:00:00Z'})
    assert order.status == Order.STATUS_PAYMENT_RECEIVED
    assert order.delivered_date is None
    assert AuditLog.query.count() == 0


def test_correct_order_parses_timestamps(place_order):
    order = advance(place_order(), *workflow.STATUS_FLOW[1:4])

    diff = workflow.correct_order(order, {'shipped_date': '2026-03-01T10:00:00-05:00'})

    assert order.shipped_date == datetime(2026, 3, 1, 15, 0, 0)
    assert 'shipped_date' in diff


def test_order_service_transition_dispatches_after_commit(place_order, notifier):
    order = place_order()
    notifier.intents.clear()

    OrderService.transition(order.id, Order.STATUS_PAYMENT_RECEIVED)

    assert db.session.get(Order, order.id).status == Order.STATUS_PAYMENT_RECEIVED
    assert notifier.templates() == ['payment_received']


def test_follow_up_sweep(place_order, notifier):
    due = advance(place_order(), *workflow.STATUS_FLOW[1:5], now=NOW)
    later = advance(place_order(), *workflow.STATUS_FLOW[1:5], now=NOW + timedelta(days=10))
    notifier.intents.clear()

    processed, sent = OrderService.run_follow_up_sweep(now=NOW + timedelta(days=31))

    assert (processed, sent) == (1, 1)
    assert due.status == Order.STATUS_FOLLOW_UP
    assert later.status == Order.STATUS_DELIVERED
    assert notifier.templates() == ['reorder_reminder']

    assert OrderService.run_follow_up_sweep(now=NOW + timedelta(days=31)) == (0, 0)


def test_stale_order_cannot_be_moved_twice(place_order):
    order = place_order()
    before = comm_count(order)
    # 其他请求在本次读取之后已推进订单
    db.session.execute(
        update(Order).where(Order.id == order.id)
        .values(status=Order.STATUS_PAYMENT_RECEIVED)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(TransitionConflict) as exc:
        workflow.apply_transition(order, Order.STATUS_PAYMENT_RECEIVED, now=NOW)

    assert exc.value.code == 409
    assert isinstance(exc.value, InvalidTransition)
    assert order.status == Order.STATUS_PENDING_PAYMENT
    db.session.flush()
    assert comm_count(order) == before


def test_follow_up_sweep_survives_database_error(place_order, notifier, monkeypatch):
    first = advance(place_order(), *workflow.STATUS_FLOW[1:5], now=NOW)
    second = advance(place_order(), *workflow.STATUS_FLOW[1:5], now=NOW + timedelta(days=1))
    first_id, second_id = first.id, second.id
    notifier.intents.clear()
    real_apply = workflow.apply_transition

    def flaky_apply(order, *args, **kwargs):
        if order.id == first_id:
            raise OperationalError('UPDATE orders', {}, Exception('database is locked'))
        return real_apply(order, *args, **kwargs)

    monkeypatch.setattr(workflow, 'apply_transition', flaky_apply)

    processed, sent = OrderService.run_follow_up_sweep(now=NOW + timedelta(days=40))

    assert (processed, sent) == (2, 1)
    assert db.session.get(Order, first_id).status == Order.STATUS_DELIVERED
    assert db.session.get(Order, second_id).status == Order.STATUS_FOLLOW_UP
    assert notifier.templates() == ['reorder_reminder']
