import hmac
from flask import request, jsonify, current_app

from app.blueprints.cron import cron_bp
from app.exceptions import PermissionDenied
from app.services.invoice_service import InvoiceService
from app.services.order_service import OrderService


@cron_bp.before_request
def check_secret():
    """定时任务接口使用 Bearer 令牌鉴权"""
    secret = current_app.config.get('CRON_SECRET')
    header = request.headers.get('Authorization', '')
    token = header[7:] if header.startswith('Bearer ') else ''
    if not secret or not hmac.compare_digest(token, secret):
        raise PermissionDenied('Invalid cron token')


@cron_bp.route('/follow-ups', methods=['POST'])
def follow_ups():
    """回访扫描：推进到期的已签收订单并发送补货提醒"""
    processed, sent = OrderService.run_follow_up_sweep()
    return jsonify({
        'success': True,
        'processed': processed,
        'sent': sent,
        'message': f'Processed {processed} orders, sent {sent} reminders',
    })


@cron_bp.route('/invoices-overdue', methods=['POST'])
def invoices_overdue():
    """逾期发票扫描"""
    count = InvoiceService.mark_overdue()
    return jsonify({'success': True, 'overdue': count})
