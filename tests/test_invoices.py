from datetime import datetime, timedelta

import pytest

from app.extensions import db
from app.exceptions import InvalidTransition, NotFound
from app.models import Order, Invoice, Communication
from app.services.invoice_service import InvoiceService

NOW = datetime(2026, 6, 1, 12, 0, 0)


@pytest.fixture
def invoice(place_order, notifier):
    order = place_order('invoice', now=NOW)
    notifier.intents.clear()
    return order.invoice


def test_send_invoice_stamps_date_and_notifies(invoice, notifier):
    InvoiceService.update_status(invoice.id, Invoice.STATUS_SENT, now=NOW)

    assert invoice.status == Invoice.STATUS_SENT
    assert invoice.sent_date == NOW
    assert notifier.templates() == ['invoice_sent']
    params = notifier.intents[0].params
    assert params['invoice_number'] == invoice.invoice_number
    assert params['due_date'] == '2026-07-01'


def test_paid_invoice_moves_order_through_workflow(invoice, notifier):
    InvoiceService.update_status(invoice.id, Invoice.STATUS_SENT, now=NOW)
    InvoiceService.update_status(invoice.id, Invoice.STATUS_PAID, payment_id='CHK-1001',
                                 now=NOW + timedelta(days=3))

    assert invoice.paid_amount == invoice.amount
    assert invoice.paid_date == NOW + timedelta(days=3)
    order = db.session.get(Order, invoice.order_id)
    assert order.status == Order.STATUS_PAYMENT_RECEIVED
    assert order.payment_id == 'CHK-1001'
    assert Communication.query.filter_by(order_id=order.id, type=Communication.TYPE_PAYMENT_RECEIVED).count() == 1
    assert notifier.templates() == ['invoice_sent', 'payment_received']


def test_paid_invoice_leaves_advanced_order_alone(invoice):
    from app.services.order_service import OrderService
    InvoiceService.update_status(invoice.id, Invoice.STATUS_SENT, now=NOW)
    OrderService.transition(invoice.order_id, Order.STATUS_PAYMENT_RECEIVED)
    OrderService.transition(invoice.order_id, Order.STATUS_BEING_FULFILLED)

    InvoiceService.update_status(invoice.id, Invoice.STATUS_PAID, now=NOW)

    assert db.session.get(Order, invoice.order_id).status == Order.STATUS_BEING_FULFILLED


def test_invalid_invoice_transitions(invoice):
    with pytest.raises(InvalidTransition):
        InvoiceService.update_status(invoice.id, Invoice.STATUS_PAID)
    with pytest.raises(InvalidTransition):
        InvoiceService.update_status(invoice.id, 'refunded')
    assert invoice.status == Invoice.STATUS_DRAFT

    with pytest.raises(NotFound):
        InvoiceService.update_status(9999, Invoice.STATUS_SENT)


def test_mark_overdue(invoice, place_order):
    fresh = place_order('invoice', now=NOW + timedelta(days=20)).invoice
    InvoiceService.update_status(invoice.id, Invoice.STATUS_SENT, now=NOW)
    InvoiceService.update_status(fresh.id, Invoice.STATUS_SENT, now=NOW)

    count = InvoiceService.mark_overdue(now=NOW + timedelta(days=31))

    assert count == 1
    assert invoice.status == Invoice.STATUS_OVERDUE
    assert fresh.status == Invoice.STATUS_SENT
    assert invoice.overdue_days(now=NOW + timedelta(days=31)) == 1
    assert fresh.overdue_days(now=NOW + timedelta(days=31)) == 0


def test_paid_invoice_is_never_overdue(invoice):
    InvoiceService.update_status(invoice.id, Invoice.STATUS_SENT, now=NOW)
    assert invoice.overdue_days(now=NOW + timedelta(days=45)) == 15

    InvoiceService.update_status(invoice.id, Invoice.STATUS_PAID, now=NOW + timedelta(days=45))
    assert invoice.overdue_days(now=NOW + timedelta(days=90)) == 0
    assert invoice.to_dict()['overdue_days'] == 0
