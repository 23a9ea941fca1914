"""
支付回调对账
把支付平台的异步付款事件对应到唯一的待付款订单，并通过状态机推进到 payment_received。
付款事件用 payment_link_id 或支付平台订单 ID (payment.order_id) 关联订单。
回调可能重复投递：重复事件找不到待付款订单，直接确认收到。
无法处理的事件同样确认收到 (返回 2xx)，避免支付平台反复重试。
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_

from app.extensions import db
from app.exceptions import AmbiguousOrDuplicateEvent, TransitionConflict
from app.models.trade import Order
from app.services import workflow
from app.services.notification_service import dispatch

logger = logging.getLogger(__name__)

HANDLED_EVENT_TYPES = ('payment.completed', 'payment.updated')
COMPLETED_PAYMENT_STATUSES = ('COMPLETED',)


@dataclass
class Ack:
    received: bool = True
    action: str = 'ignored'
    order_id: Optional[int] = None

    def to_dict(self):
        data = {'received': self.received, 'action': self.action}
        if self.order_id is not None:
            data['order_id'] = self.order_id
        return data


class ReconciliationService:
    """支付回调对账服务"""

    @staticmethod
    def extract_payment(event):
        """取出事件中的 payment 对象，格式不符时返回 None"""
        if not isinstance(event, dict):
            return None
        data = event.get('data')
        obj = data.get('object') if isinstance(data, dict) else None
        payment = obj.get('payment') if isinstance(obj, dict) else None
        return payment if isinstance(payment, dict) else None

    @staticmethod
    def session_filter(payment):
        """
        付款对应的订单查询条件
        payment_link_id 对应收银台会话 ID，order_id 对应下单时保存的支付平台订单 ID
        两者都没有时返回 None
        """
        conditions = []
        if payment.get('payment_link_id'):
            conditions.append(Order.payment_session_id == payment['payment_link_id'])
        if payment.get('order_id'):
            conditions.append(Order.payment_order_id == payment['order_id'])
        return or_(*conditions) if conditions else None

    @staticmethod
    def handle_payment_event(event) -> Ack:
        event_type = event.get('type') if isinstance(event, dict) else None
        logger.info('收到支付回调: %s', event_type)

        if event_type not in HANDLED_EVENT_TYPES:
            return Ack(action='ignored')

        payment = ReconciliationService.extract_payment(event)
        if payment is None:
            logger.warning('支付回调缺少 payment 数据')
            return Ack(action='ignored')

        status = payment.get('status')
        if status and status not in COMPLETED_PAYMENT_STATUSES:
            logger.info('付款 %s 状态为 %s，暂不处理', payment.get('id'), status)
            return Ack(action='ignored')

        reference = ReconciliationService.session_filter(payment)
        if reference is None:
            logger.warning('支付回调缺少收银台会话引用: payment=%s', payment.get('id'))
            return Ack(action='unmatched')
        label = payment.get('payment_link_id') or payment.get('order_id')

        orders = Order.query.filter(
            reference, Order.status == Order.STATUS_PENDING_PAYMENT
        ).limit(2).all()

        if not orders:
            processed = Order.query.filter(reference).first()
            if processed is not None:
                logger.info('订单 %s 已处理过该付款，忽略重复回调', processed.order_number)
                return Ack(action='already_processed', order_id=processed.id)
            ReconciliationService._report(f"No pending order for checkout session {label}")
            return Ack(action='unmatched')

        if len(orders) > 1:
            ReconciliationService._report(f"Multiple pending orders for checkout session {label}")
            return Ack(action='ambiguous')

        order = orders[0]
        order_id, order_number = order.id, order.order_number
        try:
            result = workflow.apply_transition(
                order, Order.STATUS_PAYMENT_RECEIVED, actor='system', payment_id=payment.get('id')
            )
            db.session.commit()
        except TransitionConflict:
            # 并发投递的同一事件已先一步完成
            db.session.rollback()
            logger.info('订单 %s 已被并发回调处理，忽略本次事件', order_number)
            return Ack(action='already_processed', order_id=order_id)
        except Exception:
            db.session.rollback()
            raise

        logger.info('订单 %s 已确认收款 (payment=%s)', order.order_number, payment.get('id'))
        dispatch(result.intents)
        return Ack(action='payment_received', order_id=order.id)

    @staticmethod
    def _report(message):
        """无法唯一匹配的事件只记录日志，供人工核对"""
        error = AmbiguousOrDuplicateEvent(message)
        logger.warning('%s: %s', type(error).__name__, error.message)
