from app.extensions import db
from .base import BaseModel


class ProductCategory(BaseModel):
    """产品分类"""
    __tablename__ = 'biz_categories'
    name = db.Column(db.String(64), unique=True)
    slug = db.Column(db.String(64), unique=True, index=True)
    description = db.Column(db.Text)
    default_price = db.Column(db.Integer, default=0)  # 分类默认零售价 (美分)
    sort_order = db.Column(db.Integer, default=0)

    products = db.relationship('Product', backref='category', lazy='dynamic')


class Product(BaseModel):
    """产品主表"""
    __tablename__ = 'biz_products'

    sku = db.Column(db.String(64), unique=True, index=True)  # 唯一货号
    title = db.Column(db.String(256), index=True)
    short_title = db.Column(db.String(128))
    retail_price = db.Column(db.Integer, default=0)  # 零售价 (美分)，结算时以此为准
    size = db.Column(db.String(32))
    description = db.Column(db.Text)
    image_url = db.Column(db.String(512))
    is_active = db.Column(db.Boolean, default=True, index=True)
    sort_order = db.Column(db.Integer, default=0)

    category_id = db.Column(db.Integer, db.ForeignKey('biz_categories.id'))

    @property
    def display_name(self):
        return self.short_title or self.title


class DiscountTier(BaseModel):
    """批量折扣等级 (配置数据)"""
    __tablename__ = 'biz_discount_tiers'

    code = db.Column(db.String(16), unique=True)  # tier1 / tier2 / tier3
    name = db.Column(db.String(64))
    min_order_amount = db.Column(db.Integer, nullable=False)  # 起订金额 (美分)
    discount_percent = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(256))
    is_active = db.Column(db.Boolean, default=True)


class Customer(BaseModel):
    """批发客户"""
    __tablename__ = 'crm_customers'

    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    STATUS_PENDING = 'pending'

    TIER_AUTO = 'auto'
    TIER_CHOICES = ('auto', 'tier1', 'tier2', 'tier3')

    email = db.Column(db.String(128), unique=True, index=True)
    business_name = db.Column(db.String(128), index=True)
    contact_name = db.Column(db.String(64))
    phone = db.Column(db.String(32))
    address = db.Column(db.String(256))
    city = db.Column(db.String(64))
    state = db.Column(db.String(32))
    zip = db.Column(db.String(16))
    website = db.Column(db.String(256))
    notes = db.Column(db.Text)

    status = db.Column(db.String(20), default=STATUS_ACTIVE, index=True)
    # auto = 按订单金额自动计算；tier1/2/3 = 固定折扣等级
    discount_tier = db.Column(db.String(16), default=TIER_AUTO)

    communications = db.relationship('Communication', backref='customer', lazy='dynamic',
                                     order_by='Communication.date')

    @property
    def shipping_address(self):
        parts = [self.address, self.city, self.state, self.zip]
        return ', '.join(p for p in parts if p) or None
