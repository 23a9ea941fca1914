"""财务相关模型 - 发票 (账期付款)"""
from app.extensions import db
from app.utils.clock import utcnow
from .base import BaseModel


class Invoice(BaseModel):
    """账期订单发票"""
    __tablename__ = 'finance_invoices'

    STATUS_DRAFT = 'draft'          # 草稿
    STATUS_SENT = 'sent'            # 已发送
    STATUS_PAID = 'paid'            # 已付款
    STATUS_OVERDUE = 'overdue'      # 已逾期
    STATUS_CANCELLED = 'cancelled'  # 已作废

    invoice_number = db.Column(db.String(32), unique=True, index=True, nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey('trade_orders.id'), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('crm_customers.id'), index=True, nullable=False)

    amount = db.Column(db.Integer, nullable=False)  # 创建时复制订单总额 (美分)
    due_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True, nullable=False)

    sent_date = db.Column(db.DateTime)
    paid_date = db.Column(db.DateTime)
    paid_amount = db.Column(db.Integer)
    payment_id = db.Column(db.String(64))
    notes = db.Column(db.Text)

    # 关系
    order = db.relationship('Order', backref=db.backref('invoice', uselist=False))
    customer = db.relationship('Customer')

    def overdue_days(self, now=None):
        """逾期天数 (已付款或作废的发票为 0)"""
        if not self.due_date or self.status in (self.STATUS_PAID, self.STATUS_CANCELLED):
            return 0
        now = now or utcnow()
        if now > self.due_date:
            return (now - self.due_date).days
        return 0

    def to_dict(self):
        data = super().to_dict()
        data['overdue_days'] = self.overdue_days()
        return data
