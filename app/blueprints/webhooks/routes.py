import logging
from flask import request, jsonify, current_app

from app.blueprints.webhooks import webhooks_bp
from app.services.payment_gateway import SquareGateway
from app.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


@webhooks_bp.route('/square', methods=['POST'])
def square():
    """
    Square 付款回调
    除签名错误与请求体无法解析外一律返回 200，避免支付平台重试风暴
    """
    signature_key = current_app.config.get('SQUARE_WEBHOOK_SIGNATURE_KEY')
    if signature_key:
        notification_url = current_app.config.get('SQUARE_WEBHOOK_URL') or request.url
        signature = request.headers.get('x-square-hmacsha256-signature')
        if not SquareGateway.verify_signature(signature_key, notification_url, request.get_data(), signature):
            logger.warning('Square 回调签名校验失败')
            return jsonify({'received': False, 'message': 'Invalid signature'}), 403

    event = request.get_json(silent=True)
    if not isinstance(event, dict):
        return jsonify({'received': False, 'message': 'Invalid payload'}), 400

    ack = ReconciliationService.handle_payment_event(event)
    return jsonify(ack.to_dict())
