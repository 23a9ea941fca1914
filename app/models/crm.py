from app.extensions import db
from app.utils.clock import utcnow
from .base import BaseModel


class Communication(BaseModel):
    """
    客户沟通记录 (只追加的审计流水)
    订单状态流转、下单、收款、回访都会写入一条
    """
    __tablename__ = 'crm_communications'

    TYPE_CALL = 'call'
    TYPE_EMAIL = 'email'
    TYPE_MEETING = 'meeting'
    TYPE_NOTE = 'note'
    TYPE_ORDER_PLACED = 'order_placed'
    TYPE_PAYMENT_RECEIVED = 'payment_received'
    TYPE_SHIPPED = 'shipped'
    TYPE_FOLLOW_UP = 'follow_up'

    customer_id = db.Column(db.Integer, db.ForeignKey('crm_customers.id'), index=True)
    order_id = db.Column(db.Integer, db.ForeignKey('trade_orders.id'), index=True)

    type = db.Column(db.String(20), default=TYPE_NOTE)
    subject = db.Column(db.String(256))
    content = db.Column(db.Text)
    date = db.Column(db.DateTime, default=utcnow)
    logged_by = db.Column(db.String(64))  # system / admin 邮箱
