# 按照依赖顺序导入
from .base import BaseModel
from .biz import ProductCategory, Product, DiscountTier, Customer
from .auth import User
from .crm import Communication
from .trade import Order, OrderItem, NumberSequence
from .finance import Invoice
from .sys import AuditLog
