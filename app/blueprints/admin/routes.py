from flask import request, jsonify
from flask_login import login_required, current_user

from app.blueprints.admin import admin_bp
from app.blueprints.admin.forms import (
    WorkflowForm, InvoiceStatusForm, CustomerTierForm, CorrectionReasonForm, CommunicationForm,
)
from app.exceptions import InvalidInput
from app.services.communication_service import CommunicationService
from app.services.customer_service import CustomerService
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService
from app.services.workflow import allowed_next
from app.utils.decorators import admin_required
from app.utils.validators import validate_form


def _order_dict(order, with_items=False):
    data = order.to_dict()
    data['customer'] = order.customer.business_name if order.customer else None
    data['item_count'] = order.item_count
    data['next_status'] = allowed_next(order.status)
    if with_items:
        data['items'] = [{
            'product_id': item.product_id,
            'sku': item.product.sku if item.product else None,
            'name': item.product.display_name if item.product else None,
            'quantity': item.quantity,
            'unit_price': item.unit_price,
            'line_total': item.line_total,
        } for item in order.items]
        data['invoice'] = order.invoice.to_dict() if order.invoice else None
        data['communications'] = [c.to_dict() for c in order.communications]
    return data


def _page_dict(pagination, serializer):
    return {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total_items': pagination.total,
        'total_pages': pagination.pages,
        'items': [serializer(item) for item in pagination.items],
    }


@admin_bp.before_request
@login_required
@admin_required
def guard():
    """后台接口统一要求管理员登录"""
    return None


# ============== 订单 ==============

@admin_bp.route('/orders')
def orders():
    pagination = OrderService.list_orders(
        status=request.args.get('status') or None,
        customer_id=request.args.get('customer_id', type=int),
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('per_page', 20, type=int), 100),
    )
    return jsonify({'success': True, 'data': _page_dict(pagination, _order_dict)})


@admin_bp.route('/orders/<int:order_id>')
def order_detail(order_id):
    order = OrderService.get_order(order_id)
    return jsonify({'success': True, 'data': _order_dict(order, with_items=True)})


@admin_bp.route('/orders/<int:order_id>/workflow', methods=['PUT'])
def order_workflow(order_id):
    """推进订单状态"""
    form = validate_form(WorkflowForm())
    order = OrderService.transition(
        order_id, form.status.data,
        tracking_number=(form.tracking_number.data or '').strip() or None,
        user=current_user,
    )
    return jsonify({'success': True, 'data': _order_dict(order)})


@admin_bp.route('/orders/<int:order_id>', methods=['PATCH'])
def order_correct(order_id):
    """人工修正订单字段 (不可修改状态，带审计记录)"""
    payload = request.get_json(silent=True) or {}
    changes = payload.get('changes')
    if not isinstance(changes, dict):
        raise InvalidInput('changes must be an object')
    form = validate_form(CorrectionReasonForm())
    order, diff = OrderService.correct(order_id, changes, user=current_user, reason=form.reason.data)
    return jsonify({'success': True, 'data': _order_dict(order), 'changed': sorted(diff)})


# ============== 发票 ==============

@admin_bp.route('/invoices')
def invoices():
    pagination = InvoiceService.list_invoices(
        status=request.args.get('status') or None,
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('per_page', 20, type=int), 100),
    )
    return jsonify({'success': True, 'data': _page_dict(pagination, lambda i: i.to_dict())})


@admin_bp.route('/invoices/<int:invoice_id>/status', methods=['PUT'])
def invoice_status(invoice_id):
    form = validate_form(InvoiceStatusForm())
    invoice = InvoiceService.update_status(
        invoice_id, form.status.data, user=current_user, payment_id=form.payment_id.data or None
    )
    return jsonify({'success': True, 'data': invoice.to_dict()})


# ============== 客户 ==============

@admin_bp.route('/customers/<int:customer_id>/tier', methods=['PUT'])
def customer_tier(customer_id):
    form = validate_form(CustomerTierForm())
    customer = CustomerService.set_discount_tier(customer_id, form.discount_tier.data, user=current_user)
    return jsonify({'success': True, 'data': customer.to_dict()})


# ============== 沟通记录 ==============

@admin_bp.route('/communications')
def communications():
    pagination = CommunicationService.list_communications(
        customer_id=request.args.get('customer', type=int),
        page=request.args.get('page', 1, type=int),
        per_page=min(request.args.get('perPage', 50, type=int), 200),
    )
    return jsonify({'success': True, 'data': _page_dict(pagination, lambda c: c.to_dict())})


@admin_bp.route('/communications', methods=['POST'])
def communication_create():
    """手工记录一次客户沟通 (date 缺省为当前时间)"""
    form = validate_form(CommunicationForm())
    communication = CommunicationService.log(
        customer_id=form.customer.data,
        type=form.type.data,
        subject=form.subject.data or None,
        content=form.content.data or None,
        order_id=form.order.data,
        date=form.date.data,
        user=current_user,
    )
    return jsonify({'success': True, 'data': communication.to_dict()}), 201
