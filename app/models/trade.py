from app.extensions import db
from .base import BaseModel


class Order(BaseModel):
    """批发订单头"""
    __tablename__ = 'trade_orders'

    STATUS_PENDING_PAYMENT = 'pending_payment'
    STATUS_PAYMENT_RECEIVED = 'payment_received'
    STATUS_BEING_FULFILLED = 'being_fulfilled'
    STATUS_SHIPPED = 'shipped'
    STATUS_DELIVERED = 'delivered'
    STATUS_FOLLOW_UP = 'follow_up'

    PAYMENT_CARD = 'card'
    PAYMENT_INVOICE = 'invoice'

    order_number = db.Column(db.String(32), unique=True, index=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('crm_customers.id'), index=True, nullable=False)

    status = db.Column(db.String(20), default=STATUS_PENDING_PAYMENT, index=True, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)

    # 金额字段均为美分整数
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount_percent = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    # 购物车结算令牌，防止重复提交
    checkout_token = db.Column(db.String(64), unique=True, nullable=True)
    # 支付平台托管收银台会话 ID / 支付流水 ID
    payment_session_id = db.Column(db.String(64), index=True)
    # 收银台链接在支付平台生成的订单 ID (付款回调中的 payment.order_id)
    payment_order_id = db.Column(db.String(64), index=True)
    payment_id = db.Column(db.String(64))

    invoice_terms = db.Column(db.String(16))
    shipping_address = db.Column(db.String(256))
    tracking_number = db.Column(db.String(64))
    shipped_date = db.Column(db.DateTime)
    delivered_date = db.Column(db.DateTime)
    follow_up_date = db.Column(db.DateTime, index=True)
    follow_up_sent = db.Column(db.Boolean, default=False, nullable=False)
    notes = db.Column(db.Text)

    # 关系
    customer = db.relationship('Customer', backref=db.backref('orders', lazy='dynamic'))
    items = db.relationship('OrderItem', backref='order', cascade='all, delete-orphan',
                            order_by='OrderItem.id')
    communications = db.relationship('Communication', backref='order', lazy='dynamic',
                                     order_by='Communication.id')

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items)


class OrderItem(BaseModel):
    """订单明细行 (创建后不可修改)"""
    __tablename__ = 'trade_order_items'

    order_id = db.Column(db.Integer, db.ForeignKey('trade_orders.id'), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('biz_products.id'), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)  # 下单时的单价快照
    line_total = db.Column(db.Integer, nullable=False)

    product = db.relationship('Product')


class NumberSequence(BaseModel):
    """按年份递增的单号计数器 (订单/发票各一条)"""
    __tablename__ = 'trade_sequences'
    __table_args__ = (db.UniqueConstraint('name', 'year', name='uq_sequence_name_year'),)

    name = db.Column(db.String(32), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    value = db.Column(db.Integer, nullable=False, default=0)
