"""
Square 支付网关封装
使用 httpx 直接调用 Square REST API：创建托管收银台链接、查询门店、校验 Webhook 签名
"""
import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from flask import current_app

from app.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    checkout_url: str
    session_id: str
    order_id: Optional[str] = None


class SquareGateway:
    """Square 托管收银台 (以 Flask 扩展方式注册到 app.extensions['payment_gateway'])"""

    PRODUCTION_URL = 'https://connect.squareup.com'
    SANDBOX_URL = 'https://connect.squareupsandbox.com'

    def __init__(self, app=None):
        self._client: Optional[httpx.Client] = None
        self._location_id: Optional[str] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions['payment_gateway'] = self

    def _base_url(self):
        if current_app.config.get('SQUARE_ENVIRONMENT') == 'production':
            return self.PRODUCTION_URL
        return self.SANDBOX_URL

    def _get_http_client(self) -> httpx.Client:
        """获取或创建 httpx 客户端 (超时时间有上限，失败不重试)"""
        if self._client is None:
            self._client = httpx.Client(timeout=current_app.config.get('PAYMENT_TIMEOUT', 10))
        return self._client

    def _request(self, method, path, **kwargs):
        token = current_app.config.get('SQUARE_ACCESS_TOKEN')
        if not token:
            raise ExternalServiceError('Payment provider is not configured')
        headers = {
            'Authorization': f'Bearer {token}',
            'Square-Version': current_app.config.get('SQUARE_API_VERSION'),
            'Content-Type': 'application/json',
        }
        try:
            response = self._get_http_client().request(
                method, f'{self._base_url()}{path}', headers=headers, **kwargs
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error('Square API 返回错误 %s: %s', e.response.status_code, e.response.text[:500])
            raise ExternalServiceError('Payment system error') from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error('Square API 调用失败: %s', e)
            raise ExternalServiceError('Payment system unavailable') from e

    def get_location_id(self):
        """获取门店 ID：优先读取配置，否则取账号下第一个门店并缓存"""
        configured = current_app.config.get('SQUARE_LOCATION_ID')
        if configured:
            return configured
        if self._location_id:
            return self._location_id

        data = self._request('GET', '/v2/locations')
        locations = data.get('locations') or []
        if not locations:
            raise ExternalServiceError('No Square locations found')
        self._location_id = locations[0]['id']
        return self._location_id

    def create_checkout_link(self, order_number, total, currency, description, redirect_url,
                             idempotency_key) -> CheckoutSession:
        """
        创建托管收银台链接
        :param total: 应付金额 (美分)
        :return: CheckoutSession(收银台 URL, 会话 ID, 支付平台订单 ID)
        """
        payload = {
            'idempotency_key': idempotency_key,
            'description': description,
            'checkout_options': {
                'redirect_url': redirect_url,
                'ask_for_shipping_address': False,
            },
            'quick_pay': {
                'name': f'Order {order_number}',
                'price_money': {'amount': total, 'currency': currency},
                'location_id': self.get_location_id(),
            },
        }
        data = self._request('POST', '/v2/online-checkout/payment-links', json=payload)
        link = data.get('payment_link') or {}
        if not link.get('url') or not link.get('id'):
            raise ExternalServiceError('Payment provider returned an incomplete checkout link')
        logger.info('订单 %s 已创建收银台链接 %s', order_number, link['id'])
        return CheckoutSession(checkout_url=link['url'], session_id=link['id'], order_id=link.get('order_id'))

    @staticmethod
    def verify_signature(signature_key, notification_url, body: bytes, signature) -> bool:
        """校验 Webhook 签名：base64(HMAC-SHA256(key, 通知地址 + 原始请求体))"""
        if not signature:
            return False
        digest = hmac.new(
            signature_key.encode('utf-8'),
            notification_url.encode('utf-8') + body,
            hashlib.sha256
        ).digest()
        expected = base64.b64encode(digest).decode('ascii')
        return hmac.compare_digest(expected, signature)


payment_gateway = SquareGateway()


def get_gateway():
    return current_app.extensions['payment_gateway']
