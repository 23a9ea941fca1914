"""
通知服务
核心业务只产生 NotificationIntent (模板 + 参数)，事务提交后交给 NotificationDispatcher 发送。
邮件走 SendGrid HTTP API，运营推送走 Webhook，均使用 httpx 直接调用，无需 SDK。
发送失败只记录日志，不影响主流程。
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import httpx
from flask import current_app

from app.services.pricing import format_currency

logger = logging.getLogger(__name__)

SENDGRID_URL = 'https://api.sendgrid.com/v3/mail/send'

TEMPLATE_ORDER_PLACED = 'order_placed'
TEMPLATE_PAYMENT_RECEIVED = 'payment_received'
TEMPLATE_ORDER_SHIPPED = 'order_shipped'
TEMPLATE_REORDER_REMINDER = 'reorder_reminder'
TEMPLATE_INVOICE_SENT = 'invoice_sent'
TEMPLATE_NEW_CUSTOMER = 'new_customer'


@dataclass
class NotificationIntent:
    """待发送的通知 (模板键 + 参数)"""
    template: str
    params: Dict = field(default_factory=dict)


# 邮件模板: (标题, 正文)
EMAIL_TEMPLATES = {
    'order_placed_operator': (
        "New Order {order_number} from {business_name}",
        "New wholesale order!\n\nOrder: {order_number}\nCustomer: {business_name}\n"
        "Items: {item_count}\nTotal: {total_display}\nPayment: {payment_label}\n\nView: {base_url}",
    ),
    'order_placed_customer': (
        "Order Confirmation - {order_number}",
        "Hi {contact_name},\n\nThank you for your order! Your order {order_number} has been received.\n\n"
        "Items: {item_count}\nTotal: {total_display}\n\n"
        "We'll send you updates as your order is processed.\n\nThank you,\nBanwell Designs",
    ),
    TEMPLATE_PAYMENT_RECEIVED: (
        "Payment Received - Order {order_number}",
        "Hi {contact_name},\n\nWe've received your payment of {total_display} for order {order_number}.\n\n"
        "We're now preparing your order for shipment. You'll receive tracking information once it ships.\n\n"
        "Thank you,\nBanwell Designs",
    ),
    TEMPLATE_ORDER_SHIPPED: (
        "Your Order Has Shipped - {order_number}",
        "Hi {contact_name},\n\nYour order {order_number} has shipped!\n\n{tracking_info}\n\n"
        "Thank you,\nBanwell Designs",
    ),
    TEMPLATE_REORDER_REMINDER: (
        "Time to restock? - Banwell Designs",
        "Hi {contact_name},\n\nIt's been about a month since your last order ({order_number}). "
        "Ready to restock {business_name}?\n\nBrowse our catalog: {catalog_url}\n\nThank you,\nBanwell Designs",
    ),
    TEMPLATE_INVOICE_SENT: (
        "Invoice {invoice_number} - Banwell Designs",
        "Hi {contact_name},\n\nInvoice {invoice_number} for order {order_number}\n"
        "Amount: {amount_display}\nDue: {due_date}\n\nPlease remit payment at your earliest convenience.\n\n"
        "Thank you,\nBanwell Designs",
    ),
    TEMPLATE_NEW_CUSTOMER: (
        "New Wholesale Customer: {business_name}",
        "New wholesale customer registered!\n\nBusiness: {business_name}\nContact: {contact_name}\n"
        "Email: {customer_email}\n\nLog in to the admin dashboard: {base_url}",
    ),
}


def order_params(order, **extra):
    """从订单快照通知参数 (在提交前调用，避免发送线程访问数据库)"""
    customer = order.customer
    params = {
        'order_id': order.id,
        'order_number': order.order_number,
        'total': order.total,
        'item_count': order.item_count,
        'payment_method': order.payment_method,
        'customer_email': customer.email if customer else None,
        'contact_name': customer.contact_name if customer else '',
        'business_name': customer.business_name if customer else '',
    }
    params.update(extra)
    return params


class NotificationDispatcher:
    """通知发送器 (以 Flask 扩展方式注册到 app.extensions['notifier'])"""

    def __init__(self, app=None):
        self._client: Optional[httpx.Client] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions['notifier'] = self

    # ============== 调度 ==============

    def dispatch(self, intents: Iterable[NotificationIntent]):
        """发送一批通知；NOTIFY_ASYNC 时交给后台线程，不阻塞请求"""
        intents = list(intents or [])
        if not intents:
            return
        app = current_app._get_current_object()
        if app.config.get('NOTIFY_ASYNC'):
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix='notify')
            self._executor.submit(self._run, app, intents)
        else:
            self._run(app, intents)

    def _run(self, app, intents: List[NotificationIntent]):
        with app.app_context():
            for intent in intents:
                try:
                    self.send(intent)
                except Exception:
                    logger.exception('通知发送失败: %s %s', intent.template, intent.params.get('order_number'))

    def send(self, intent: NotificationIntent):
        handler = getattr(self, f'_send_{intent.template}', None)
        if handler is None:
            logger.warning('未知通知模板: %s', intent.template)
            return
        handler(dict(intent.params))

    # ============== 各模板 ==============

    def _send_order_placed(self, params):
        config = current_app.config
        params['total_display'] = format_currency(params['total'])
        params['payment_label'] = 'Card (Pay Now)' if params.get('payment_method') == 'card' else 'Invoice'
        params.setdefault('base_url', config.get('PUBLIC_BASE_URL'))

        operator_email = config.get('ORDER_NOTIFICATION_EMAIL')
        if operator_email:
            self._email_template(operator_email, 'order_placed_operator', params)
        self._email_template(params.get('customer_email'), 'order_placed_customer', params)
        self.send_push(
            title=f"Order {params['order_number']}",
            message=f"{params['business_name']} - {params['item_count']} items - {params['total_display']}",
            priority='high',
            url=params['base_url'],
        )

    def _send_payment_received(self, params):
        params['total_display'] = format_currency(params['total'])
        self._email_template(params.get('customer_email'), TEMPLATE_PAYMENT_RECEIVED, params)

    def _send_order_shipped(self, params):
        tracking = params.get('tracking_number')
        params['tracking_info'] = f"Tracking Number: {tracking}" if tracking else \
            'Tracking information will be provided separately.'
        self._email_template(params.get('customer_email'), TEMPLATE_ORDER_SHIPPED, params)

    def _send_reorder_reminder(self, params):
        params.setdefault('catalog_url', f"{current_app.config.get('PUBLIC_BASE_URL')}/catalog")
        self._email_template(params.get('customer_email'), TEMPLATE_REORDER_REMINDER, params)
        self.send_push(
            title='Reorder Reminder Sent',
            message=f"Sent to {params['business_name']} ({params['contact_name']})",
        )

    def _send_invoice_sent(self, params):
        params['amount_display'] = format_currency(params['amount'])
        self._email_template(params.get('customer_email'), TEMPLATE_INVOICE_SENT, params)

    def _send_new_customer(self, params):
        """新客户注册只通知运营"""
        config = current_app.config
        params.setdefault('base_url', config.get('PUBLIC_BASE_URL'))
        operator_email = config.get('ORDER_NOTIFICATION_EMAIL')
        if operator_email:
            self._email_template(operator_email, TEMPLATE_NEW_CUSTOMER, params)
        self.send_push(
            title=f"New Customer: {params['business_name']}",
            message=f"{params['contact_name']} ({params['customer_email']}) just registered.",
            priority='high',
            url=params['base_url'],
        )

    # ============== 通道 ==============

    def _get_http_client(self) -> httpx.Client:
        """获取或创建 httpx 客户端"""
        if self._client is None:
            self._client = httpx.Client(timeout=current_app.config.get('NOTIFY_TIMEOUT', 10))
        return self._client

    def _email_template(self, to, key, params):
        subject, body = EMAIL_TEMPLATES[key]
        return self.send_email(to, subject.format(**params), body.format(**params))

    def send_email(self, to, subject, text):
        """通过 SendGrid 发送纯文本邮件；未配置时跳过"""
        config = current_app.config
        api_key = config.get('SENDGRID_API_KEY')
        if not api_key:
            logger.info('SendGrid 未配置，邮件未发送: %s', subject)
            return False
        if not to:
            logger.warning('收件人为空，邮件未发送: %s', subject)
            return False

        payload = {
            'personalizations': [{'to': [{'email': to}]}],
            'from': {'email': config.get('SENDGRID_FROM_EMAIL'), 'name': config.get('SENDGRID_FROM_NAME')},
            'subject': subject,
            'content': [{'type': 'text/plain', 'value': text}],
        }
        response = self._get_http_client().post(
            SENDGRID_URL, json=payload, headers={'Authorization': f'Bearer {api_key}'}
        )
        response.raise_for_status()
        logger.info('邮件已发送: %s -> %s', subject, to)
        return True

    def send_push(self, title, message, priority='normal', url=None):
        """运营推送 (Webhook)；未配置时跳过"""
        endpoint = current_app.config.get('PUSH_WEBHOOK_URL')
        if not endpoint:
            logger.debug('推送未配置，跳过: %s', title)
            return False
        response = self._get_http_client().post(endpoint, json={
            'title': title,
            'message': message,
            'priority': priority,
            'url': url,
            'source': 'Banwell Wholesale',
        })
        response.raise_for_status()
        return True


notifier = NotificationDispatcher()


def dispatch(intents):
    """发送通知 (使用当前 app 注册的发送器，测试中可替换)"""
    current_app.extensions['notifier'].dispatch(intents)
