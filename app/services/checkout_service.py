"""
结算服务
从购物车生成订单 (账期订单同时开具发票)，价格一律以服务端商品当前零售价重新计算，
刷卡订单向支付平台申请托管收银台链接。
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.exceptions import EmptyCart, InvalidInput, NotFound, DuplicateCheckout, SequenceConflict, \
    ExternalServiceError
from app.models.biz import Customer, Product
from app.models.crm import Communication
from app.models.trade import Order, OrderItem
from app.services.invoice_service import InvoiceService
from app.services.notification_service import NotificationIntent, order_params, dispatch, TEMPLATE_ORDER_PLACED
from app.services.payment_gateway import get_gateway
from app.services.pricing import calculate_discount, load_tier_table, format_currency, DiscountResult
from app.services.sequence_service import SequenceService, ORDER_SEQUENCE
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

PAYMENT_METHODS = (Order.PAYMENT_CARD, Order.PAYMENT_INVOICE)


@dataclass
class PricedLine:
    product: Product
    quantity: int
    unit_price: int

    @property
    def line_total(self):
        return self.unit_price * self.quantity


@dataclass
class CartPricing:
    lines: List[PricedLine]
    subtotal: int
    discount: DiscountResult

    @property
    def item_count(self):
        return sum(line.quantity for line in self.lines)

    def to_dict(self):
        return {
            'items': [{
                'product_id': line.product.id,
                'sku': line.product.sku,
                'name': line.product.display_name,
                'quantity': line.quantity,
                'unit_price': line.unit_price,
                'line_total': line.line_total,
            } for line in self.lines],
            'item_count': self.item_count,
            'subtotal': self.subtotal,
            'discount_percent': self.discount.percent,
            'discount_amount': self.discount.amount,
            'total': self.discount.total,
            'tier_name': self.discount.tier_name,
        }


@dataclass
class CheckoutResult:
    order_id: int
    order_number: str
    invoice_number: Optional[str] = None
    payment_redirect: Optional[str] = None
    pricing: Dict = field(default_factory=dict)

    def to_dict(self):
        data = {'order_id': self.order_id, 'order_number': self.order_number}
        if self.invoice_number:
            data['invoice_number'] = self.invoice_number
        if self.payment_redirect:
            data['checkout_url'] = self.payment_redirect
        data['pricing'] = self.pricing
        return data


class CheckoutService:
    """结算服务"""

    @staticmethod
    def normalize_cart(cart_lines):
        """
        整理购物车行，返回 {product_id: quantity}
        :param cart_lines: [{'product_id': 1, 'quantity': 2}, ...] (客户端传来的价格一律忽略)
        """
        if not cart_lines:
            raise EmptyCart()
        if not isinstance(cart_lines, list):
            raise InvalidInput('Cart items must be a list')

        merged = {}
        for line in cart_lines:
            if not isinstance(line, dict):
                raise InvalidInput('Each cart line must be an object')
            product_id = line.get('product_id', line.get('productId'))
            quantity = line.get('quantity')
            if isinstance(product_id, bool) or not isinstance(product_id, int):
                raise InvalidInput(f"Invalid product id: {product_id!r}")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise InvalidInput(f"Quantity must be a positive integer for product {product_id}")
            merged[product_id] = merged.get(product_id, 0) + quantity
        return merged

    @staticmethod
    def get_customer(customer_id):
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found")
        return customer

    @staticmethod
    def price_cart(customer, cart_lines) -> CartPricing:
        """按商品当前零售价与客户折扣设置计算购物车金额"""
        quantities = CheckoutService.normalize_cart(cart_lines)

        products = {p.id: p for p in Product.query.filter(Product.id.in_(list(quantities))).all()}
        lines = []
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                raise NotFound(f"Product {product_id} not found")
            if not product.is_active:
                raise InvalidInput(f"Product {product.sku} is no longer available")
            lines.append(PricedLine(product=product, quantity=quantity, unit_price=product.retail_price))

        subtotal = sum(line.line_total for line in lines)
        discount = calculate_discount(
            subtotal,
            customer.discount_tier or Customer.TIER_AUTO,
            tiers=load_tier_table(),
            cap_pinned=current_app.config.get('PRICING_CAP_PINNED_TIER', False),
        )
        return CartPricing(lines=lines, subtotal=subtotal, discount=discount)

    @staticmethod
    def quote(customer_id, cart_lines):
        """购物车试算 (不落库)"""
        customer = CheckoutService.get_customer(customer_id)
        return CheckoutService.price_cart(customer, cart_lines)

    @staticmethod
    def checkout(customer_id, cart_lines, payment_method, checkout_token=None, now=None) -> CheckoutResult:
        """
        提交结算
        订单、明细 (以及账期发票) 在同一事务内创建；刷卡订单提交后再调用支付平台，
        支付平台失败时订单保持 pending_payment 并把错误返回给调用方，不自动重试。
        """
        if payment_method not in PAYMENT_METHODS:
            raise InvalidInput(f"Unsupported payment method: {payment_method}")

        customer = CheckoutService.get_customer(customer_id)
        if customer.status != Customer.STATUS_ACTIVE:
            raise InvalidInput('Customer account is not active')

        pricing = CheckoutService.price_cart(customer, cart_lines)

        if checkout_token and Order.query.filter_by(checkout_token=checkout_token).first():
            raise DuplicateCheckout()

        now = now or utcnow()
        config = current_app.config
        invoice = None
        try:
            order = CheckoutService._create_order(customer, pricing, payment_method, checkout_token, now)
            if payment_method == Order.PAYMENT_INVOICE:
                invoice = InvoiceService.create_for_order(order, now)
                db.session.add(Communication(
                    customer_id=customer.id,
                    order=order,
                    type=Communication.TYPE_ORDER_PLACED,
                    subject=f"Order {order.order_number} placed (invoice)",
                    content=f"Order placed with invoice payment. Invoice: {invoice.invoice_number}. "
                            f"Total: {format_currency(order.total)}",
                    date=now,
                    logged_by='system',
                ))
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            if 'checkout_token' in str(e.orig):
                raise DuplicateCheckout()
            logger.error('单号分配冲突: %s', e.orig)
            raise SequenceConflict() from e
        except Exception:
            db.session.rollback()
            raise

        logger.info('订单 %s 已创建 (%s), 合计 %s', order.order_number, payment_method, format_currency(order.total))

        result = CheckoutResult(
            order_id=order.id,
            order_number=order.order_number,
            invoice_number=invoice.invoice_number if invoice else None,
            pricing=pricing.to_dict(),
        )

        if payment_method == Order.PAYMENT_CARD:
            base_url = config.get('PUBLIC_BASE_URL')
            try:
                session = get_gateway().create_checkout_link(
                    order_number=order.order_number,
                    total=order.total,
                    currency=config.get('CURRENCY', 'USD'),
                    description=f"Wholesale order {order.order_number}",
                    redirect_url=f"{base_url}/account/checkout/thank-you?order={order.order_number}",
                    idempotency_key=f"wholesale-{order.order_number}",
                )
            except ExternalServiceError:
                logger.error('订单 %s 创建收银台失败，订单保持待付款', order.order_number)
                raise

            order.payment_session_id = session.session_id
            order.payment_order_id = session.order_id
            db.session.commit()
            result.payment_redirect = session.checkout_url

        dispatch([NotificationIntent(TEMPLATE_ORDER_PLACED, order_params(order))])
        return result

    @staticmethod
    def _create_order(customer, pricing, payment_method, checkout_token, now):
        config = current_app.config
        discount = pricing.discount
        order = Order(
            order_number=SequenceService.allocate(ORDER_SEQUENCE, config['ORDER_NUMBER_PREFIX'], now),
            customer=customer,
            status=Order.STATUS_PENDING_PAYMENT,
            payment_method=payment_method,
            subtotal=pricing.subtotal,
            discount_percent=discount.percent,
            discount_amount=discount.amount,
            total=discount.total,
            checkout_token=checkout_token or None,
            invoice_terms=f"net{config.get('NET_TERMS_DAYS', 30)}" if payment_method == Order.PAYMENT_INVOICE else None,
            shipping_address=customer.shipping_address,
            follow_up_sent=False,
        )
        db.session.add(order)
        for line in pricing.lines:
            order.items.append(OrderItem(
                product_id=line.product.id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
            ))
        db.session.flush()
        return order
