"""
订单履约状态机

pending_payment → payment_received → being_fulfilled → shipped → delivered → follow_up

只允许按顺序前进一步，不支持回退与取消。每次成功流转都会追加一条客户沟通记录，
并返回需要在事务提交后发送的通知。
状态与时间字段的组合用 OrderState 变体描述，不合法的组合无法构造出来。
"""
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from typing import ClassVar, Dict, List, Optional

from flask import current_app
from sqlalchemy import update

from app.extensions import db
from app.exceptions import InvalidInput, InvalidTransition, TransitionConflict
from app.models.crm import Communication
from app.models.trade import Order
from app.services.notification_service import (
    NotificationIntent, order_params,
    TEMPLATE_PAYMENT_RECEIVED, TEMPLATE_ORDER_SHIPPED, TEMPLATE_REORDER_REMINDER,
)
from app.services.pricing import format_currency
from app.utils.audit import log_action
from app.utils.clock import utcnow, parse_datetime, isoformat

STATUS_FLOW = [
    Order.STATUS_PENDING_PAYMENT,
    Order.STATUS_PAYMENT_RECEIVED,
    Order.STATUS_BEING_FULFILLED,
    Order.STATUS_SHIPPED,
    Order.STATUS_DELIVERED,
    Order.STATUS_FOLLOW_UP,
]

# 当前状态 -> 允许的下一状态
VALID_TRANSITIONS = {current: [nxt] for current, nxt in zip(STATUS_FLOW, STATUS_FLOW[1:])}

# 沟通记录类型
COMMUNICATION_TYPES = {
    Order.STATUS_PAYMENT_RECEIVED: Communication.TYPE_PAYMENT_RECEIVED,
    Order.STATUS_SHIPPED: Communication.TYPE_SHIPPED,
    Order.STATUS_FOLLOW_UP: Communication.TYPE_FOLLOW_UP,
}

STATUS_LABELS = {
    Order.STATUS_PENDING_PAYMENT: 'Pending Payment',
    Order.STATUS_PAYMENT_RECEIVED: 'Payment Received',
    Order.STATUS_BEING_FULFILLED: 'Being Fulfilled',
    Order.STATUS_SHIPPED: 'Shipped',
    Order.STATUS_DELIVERED: 'Delivered',
    Order.STATUS_FOLLOW_UP: 'Follow Up',
}

# 允许人工修正的字段
CORRECTABLE_FIELDS = (
    'notes', 'shipping_address', 'tracking_number',
    'shipped_date', 'delivered_date', 'follow_up_date',
)
DATE_FIELDS = ('shipped_date', 'delivered_date', 'follow_up_date')


# ============== 状态变体 ==============

@dataclass(frozen=True)
class OrderState:
    status: ClassVar[str]

    def columns(self) -> Dict:
        """变体对应的订单字段值 (未出现的时间字段一律为空)"""
        values = {'tracking_number': None, 'shipped_date': None, 'delivered_date': None,
                  'follow_up_date': None, 'follow_up_sent': False}
        values.update({f.name: getattr(self, f.name) for f in fields(self)})
        return values


@dataclass(frozen=True)
class PendingPayment(OrderState):
    status: ClassVar[str] = Order.STATUS_PENDING_PAYMENT


@dataclass(frozen=True)
class PaymentReceived(OrderState):
    status: ClassVar[str] = Order.STATUS_PAYMENT_RECEIVED


@dataclass(frozen=True)
class BeingFulfilled(OrderState):
    status: ClassVar[str] = Order.STATUS_BEING_FULFILLED


@dataclass(frozen=True)
class Shipped(OrderState):
    status: ClassVar[str] = Order.STATUS_SHIPPED
    shipped_date: datetime
    tracking_number: Optional[str] = None


@dataclass(frozen=True)
class Delivered(OrderState):
    status: ClassVar[str] = Order.STATUS_DELIVERED
    shipped_date: datetime
    delivered_date: datetime
    follow_up_date: datetime
    tracking_number: Optional[str] = None


@dataclass(frozen=True)
class FollowUp(OrderState):
    status: ClassVar[str] = Order.STATUS_FOLLOW_UP
    shipped_date: datetime
    delivered_date: datetime
    follow_up_date: datetime
    tracking_number: Optional[str] = None
    follow_up_sent: bool = field(default=True, init=False)


STATE_CLASSES = {cls.status: cls for cls in
                 (PendingPayment, PaymentReceived, BeingFulfilled, Shipped, Delivered, FollowUp)}


def build_state(status, values) -> OrderState:
    """
    由状态与字段值构造状态变体
    字段组合与状态不一致时抛出 InvalidInput
    """
    cls = STATE_CLASSES.get(status)
    if cls is None:
        raise InvalidInput(f"Unknown order status: {status}")

    allowed = {f.name for f in fields(cls) if f.init}
    for name in ('tracking_number',) + DATE_FIELDS:
        if values.get(name) and name not in allowed:
            raise InvalidInput(f"{name} is not valid for an order in {status}")
    for name in allowed:
        if name in DATE_FIELDS and values.get(name) is None:
            raise InvalidInput(f"{name} is required for an order in {status}")

    follow_up_sent = bool(values.get('follow_up_sent'))
    if follow_up_sent != (status == Order.STATUS_FOLLOW_UP):
        raise InvalidInput(f"follow_up_sent={follow_up_sent} is not valid for an order in {status}")

    state = cls(**{name: values.get(name) for name in allowed})
    if isinstance(state, (Delivered, FollowUp)) and state.delivered_date < state.shipped_date:
        raise InvalidInput('delivered_date cannot be earlier than shipped_date')
    return state


def state_of(order) -> OrderState:
    """读取订单当前的状态变体"""
    values = {name: getattr(order, name) for name in ('tracking_number', 'follow_up_sent') + DATE_FIELDS}
    return build_state(order.status, values)


def check_consistency(order):
    state_of(order)
    return True


def _write_state(order, state: OrderState):
    for name, value in state.columns().items():
        setattr(order, name, value)
    order.status = state.status


# ============== 状态流转 ==============

@dataclass
class TransitionResult:
    order: Order
    communication: Communication
    intents: List[NotificationIntent] = field(default_factory=list)


def allowed_next(status):
    return VALID_TRANSITIONS.get(status, [])


def _next_state(current: OrderState, requested, now, order, tracking_number):
    if requested == Order.STATUS_PAYMENT_RECEIVED:
        return PaymentReceived()
    if requested == Order.STATUS_BEING_FULFILLED:
        return BeingFulfilled()
    if requested == Order.STATUS_SHIPPED:
        return Shipped(shipped_date=now, tracking_number=tracking_number or None)
    if requested == Order.STATUS_DELIVERED:
        days = current_app.config.get('FOLLOW_UP_DAYS', 30)
        return Delivered(
            shipped_date=current.shipped_date,
            delivered_date=now,
            follow_up_date=now + timedelta(days=days),
            tracking_number=current.tracking_number,
        )
    # delivered -> follow_up 只能在回访日期到达且尚未回访时进行
    if current.follow_up_date > now:
        raise InvalidTransition(
            order.status, requested,
            message=f"Follow-up for {order.order_number} is not due until {current.follow_up_date.isoformat()}"
        )
    return FollowUp(
        shipped_date=current.shipped_date,
        delivered_date=current.delivered_date,
        follow_up_date=current.follow_up_date,
        tracking_number=current.tracking_number,
    )


def _communication_for(order, status, now, actor, payment_id=None):
    label = status.replace('_', ' ')
    if status == Order.STATUS_PAYMENT_RECEIVED and payment_id:
        content = f"Payment {payment_id} completed. Amount: {format_currency(order.total)}"
    elif status == Order.STATUS_FOLLOW_UP:
        content = 'Automated reorder reminder sent.'
    elif status == Order.STATUS_SHIPPED and order.tracking_number:
        content = f"Order status updated to: {status}. Tracking: {order.tracking_number}"
    else:
        content = f"Order status updated to: {status}"

    subject = f"Reorder reminder sent ({order.order_number})" if status == Order.STATUS_FOLLOW_UP \
        else f"Order {order.order_number} - {label}"
    return Communication(
        customer_id=order.customer_id,
        order_id=order.id,
        type=COMMUNICATION_TYPES.get(status, Communication.TYPE_NOTE),
        subject=subject,
        content=content,
        date=now,
        logged_by=actor,
    )


def _intents_for(order, status):
    if status == Order.STATUS_PAYMENT_RECEIVED:
        return [NotificationIntent(TEMPLATE_PAYMENT_RECEIVED, order_params(order))]
    if status == Order.STATUS_SHIPPED:
        return [NotificationIntent(TEMPLATE_ORDER_SHIPPED,
                                   order_params(order, tracking_number=order.tracking_number))]
    if status == Order.STATUS_FOLLOW_UP:
        return [NotificationIntent(TEMPLATE_REORDER_REMINDER, order_params(order))]
    return []


def _claim(order, requested_status):
    """
    数据库端条件更新：仅当 status 仍为读取时的值才改为新状态
    并发的重复请求 (如支付回调重复投递) 只有一个能成功
    """
    result = db.session.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == order.status)
        .values(status=requested_status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def apply_transition(order, requested_status, tracking_number=None, now=None, actor='admin',
                     payment_id=None) -> TransitionResult:
    """
    执行一次状态流转
    非法流转抛出 InvalidTransition，订单不做任何修改。
    成功时修改订单字段、把沟通记录加入会话 (不提交)，返回待发送通知。
    数据库中的状态已被其他请求改动时抛出 TransitionConflict。
    """
    if requested_status not in allowed_next(order.status):
        raise InvalidTransition(order.status, requested_status)

    now = now or utcnow()
    current = state_of(order)
    new_state = _next_state(current, requested_status, now, order, tracking_number)

    if not _claim(order, requested_status):
        raise TransitionConflict(order.status, requested_status,
                                 message=f"Order {order.order_number} was updated by another request")

    _write_state(order, new_state)
    if payment_id:
        order.payment_id = payment_id

    communication = _communication_for(order, requested_status, now, actor, payment_id)
    db.session.add(communication)

    return TransitionResult(order=order, communication=communication,
                            intents=_intents_for(order, requested_status))


# ============== 人工修正 ==============

def correct_order(order, changes, user=None, reason=None, now=None):
    """
    人工修正订单数据 (不改变状态)
    只允许修改 CORRECTABLE_FIELDS，修改后必须仍是合法的状态变体；
    写入一条审计日志与一条沟通备注。返回实际变更的字段 {字段: (旧值, 新值)}。
    """
    if not changes:
        raise InvalidInput('No changes supplied')
    rejected = sorted(set(changes) - set(CORRECTABLE_FIELDS))
    if rejected:
        raise InvalidInput(f"Fields cannot be corrected manually: {', '.join(rejected)}")

    proposed = {}
    for name, value in changes.items():
        if name in DATE_FIELDS:
            try:
                value = parse_datetime(value)
            except ValueError:
                raise InvalidInput(f"{name} must be an ISO-8601 timestamp")
        elif isinstance(value, str):
            value = value.strip() or None
        proposed[name] = value

    values = {name: getattr(order, name) for name in ('tracking_number', 'follow_up_sent') + DATE_FIELDS}
    values.update({k: v for k, v in proposed.items() if k in values})
    build_state(order.status, values)

    diff = {}
    for name, value in proposed.items():
        old = getattr(order, name)
        if old != value:
            diff[name] = (old, value)
            setattr(order, name, value)
    if not diff:
        return diff

    now = now or utcnow()
    details = {
        'order_number': order.order_number,
        'reason': reason,
        'changes': {k: [_plain(old), _plain(new)] for k, (old, new) in diff.items()},
    }
    log_action('orders', 'manual_correction', details, target=order, user=user, commit=False)
    db.session.add(Communication(
        customer_id=order.customer_id,
        order_id=order.id,
        type=Communication.TYPE_NOTE,
        subject=f"Order {order.order_number} - manual correction",
        content=f"Corrected {', '.join(sorted(diff))}" + (f": {reason}" if reason else ''),
        date=now,
        logged_by=user.email if user is not None else 'admin',
    ))
    return diff


def _plain(value):
    return isoformat(value) if isinstance(value, datetime) else value
