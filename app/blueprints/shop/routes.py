from flask import request, jsonify
from flask_login import login_required, current_user

from app.extensions import cache
from app.blueprints.shop import shop_bp
from app.blueprints.shop.forms import CheckoutForm
from app.exceptions import NotFound
from app.models.finance import Invoice
from app.models.trade import Order
from app.services.catalog_service import CatalogService, CATALOG_PER_PAGE
from app.services.checkout_service import CheckoutService
from app.services.pricing import load_tier_table
from app.utils.decorators import customer_required
from app.utils.validators import validate_form


def _cart_items():
    payload = request.get_json(silent=True) or {}
    return payload.get('items')


def _product_dict(product):
    data = product.to_dict()
    data['name'] = product.display_name
    data['category'] = product.category.name if product.category else None
    return data


def _customer_order_dict(order):
    data = order.to_dict()
    data['items'] = [{
        'product_id': item.product_id,
        'name': item.product.display_name if item.product else None,
        'quantity': item.quantity,
        'unit_price': item.unit_price,
        'line_total': item.line_total,
    } for item in order.items]
    data['invoice_number'] = order.invoice.invoice_number if order.invoice else None
    return data


# ============== 公开目录 ==============

@shop_bp.route('/public/tiers')
@cache.cached(timeout=300)
def tiers():
    """公开的批量折扣等级"""
    data = [{
        'code': t.code,
        'name': t.name,
        'min_order_amount': t.min_order_amount,
        'discount_percent': t.discount_percent,
    } for t in load_tier_table()]
    return jsonify({'success': True, 'data': data})


@shop_bp.route('/public/catalog')
@cache.cached(timeout=60, query_string=True)
def catalog():
    """上架商品目录 (分页，支持分类与关键字筛选)"""
    pagination = CatalogService.list_products(
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('perPage', CATALOG_PER_PAGE, type=int), 200),
        category=request.args.get('category') or None,
        search=request.args.get('search') or None,
    )
    return jsonify({
        'success': True,
        'page': pagination.page,
        'perPage': pagination.per_page,
        'totalItems': pagination.total,
        'totalPages': pagination.pages,
        'items': [_product_dict(p) for p in pagination.items],
    })


@shop_bp.route('/public/categories')
@cache.cached(timeout=300)
def categories():
    data = [c.to_dict() for c in CatalogService.list_categories()]
    return jsonify({'success': True, 'data': data})


# ============== 客户账户 ==============

@shop_bp.route('/shop/orders')
@login_required
@customer_required
def my_orders():
    """当前客户的订单 (最新在前)"""
    orders = Order.query.filter_by(customer_id=current_user.customer_id) \
        .order_by(Order.created_at.desc(), Order.id.desc()).all()
    return jsonify({'success': True, 'data': [_customer_order_dict(o) for o in orders]})


@shop_bp.route('/shop/orders/<int:order_id>')
@login_required
@customer_required
def my_order(order_id):
    order = Order.query.filter_by(id=order_id, customer_id=current_user.customer_id).first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return jsonify({'success': True, 'data': _customer_order_dict(order)})


@shop_bp.route('/shop/invoices')
@login_required
@customer_required
def my_invoices():
    invoices = Invoice.query.filter_by(customer_id=current_user.customer_id) \
        .order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return jsonify({'success': True, 'data': [i.to_dict() for i in invoices]})


# ============== 结算 ==============

@shop_bp.route('/shop/cart/quote', methods=['POST'])
@login_required
@customer_required
def quote():
    """购物车试算：服务端按当前价格与客户折扣计算"""
    pricing = CheckoutService.quote(current_user.customer_id, _cart_items())
    return jsonify({'success': True, 'data': pricing.to_dict()})


@shop_bp.route('/shop/checkout', methods=['POST'])
@login_required
@customer_required
def checkout():
    """提交结算 (刷卡返回收银台地址，账期返回发票号)"""
    form = validate_form(CheckoutForm())
    result = CheckoutService.checkout(
        customer_id=current_user.customer_id,
        cart_lines=_cart_items(),
        payment_method=form.payment_method.data,
        checkout_token=form.checkout_token.data or None,
    )
    return jsonify({'success': True, 'data': result.to_dict()}), 201
