"""发票服务 - 账期订单的发票开具、发送、收款、逾期"""
import logging
from datetime import timedelta
from flask import current_app
from app.extensions import db
from app.exceptions import InvalidTransition, NotFound
from app.models.finance import Invoice
from app.models.trade import Order
from app.services import workflow
from app.services.notification_service import NotificationIntent, dispatch, TEMPLATE_INVOICE_SENT
from app.services.sequence_service import SequenceService, INVOICE_SEQUENCE
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

# 发票状态流转
INVOICE_TRANSITIONS = {
    Invoice.STATUS_DRAFT: [Invoice.STATUS_SENT, Invoice.STATUS_CANCELLED],
    Invoice.STATUS_SENT: [Invoice.STATUS_PAID, Invoice.STATUS_OVERDUE, Invoice.STATUS_CANCELLED],
    Invoice.STATUS_OVERDUE: [Invoice.STATUS_PAID],
}


class InvoiceService:
    """发票服务"""

    @staticmethod
    def create_for_order(order, now=None):
        """为账期订单开具草稿发票 (加入会话，由调用方提交)"""
        now = now or utcnow()
        config = current_app.config
        invoice = Invoice(
            invoice_number=SequenceService.allocate(INVOICE_SEQUENCE, config['INVOICE_NUMBER_PREFIX'], now),
            order=order,
            customer_id=order.customer_id,
            amount=order.total,
            due_date=now + timedelta(days=config.get('NET_TERMS_DAYS', 30)),
            status=Invoice.STATUS_DRAFT,
        )
        db.session.add(invoice)
        return invoice

    @staticmethod
    def get_invoice(invoice_id):
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFound(f"Invoice {invoice_id} not found")
        return invoice

    @staticmethod
    def list_invoices(status=None, page=1, per_page=20):
        query = Invoice.query
        if status:
            query = query.filter_by(status=status)
        return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).paginate(
            page=page, per_page=per_page, error_out=False
        )

    @staticmethod
    def update_status(invoice_id, status, user=None, payment_id=None, now=None):
        """
        更新发票状态
        标记已付款时，若订单仍在待付款，则通过状态机推进到 payment_received
        """
        invoice = InvoiceService.get_invoice(invoice_id)
        if status not in INVOICE_TRANSITIONS.get(invoice.status, []):
            raise InvalidTransition(invoice.status, status)

        now = now or utcnow()
        intents = []
        try:
            invoice.status = status
            if status == Invoice.STATUS_SENT:
                invoice.sent_date = now
                intents.append(NotificationIntent(TEMPLATE_INVOICE_SENT, {
                    'invoice_number': invoice.invoice_number,
                    'order_number': invoice.order.order_number,
                    'amount': invoice.amount,
                    'due_date': invoice.due_date.date().isoformat(),
                    'customer_email': invoice.customer.email,
                    'contact_name': invoice.customer.contact_name,
                }))
            elif status == Invoice.STATUS_PAID:
                invoice.paid_date = now
                invoice.paid_amount = invoice.amount
                invoice.payment_id = payment_id
                order = invoice.order
                if order.status == Order.STATUS_PENDING_PAYMENT:
                    actor = user.email if user is not None else 'admin'
                    result = workflow.apply_transition(order, Order.STATUS_PAYMENT_RECEIVED, now=now,
                                                       actor=actor, payment_id=payment_id)
                    intents.extend(result.intents)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info('发票 %s 状态更新为 %s', invoice.invoice_number, status)
        dispatch(intents)
        return invoice

    @staticmethod
    def mark_overdue(now=None):
        """已发送且超过到期日的发票标记为逾期，返回数量"""
        now = now or utcnow()
        overdue = Invoice.query.filter(
            Invoice.status == Invoice.STATUS_SENT,
            Invoice.due_date < now
        ).all()

        for invoice in overdue:
            invoice.status = Invoice.STATUS_OVERDUE

        db.session.commit()
        return len(overdue)
