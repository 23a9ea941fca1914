from types import SimpleNamespace

import pytest

from app import create_app
from app.extensions import db
from app.exceptions import ExternalServiceError
from app.models import User, Customer, ProductCategory, Product, DiscountTier
from app.services.payment_gateway import CheckoutSession
from app.services.pricing import DEFAULT_TIERS


class RecordingNotifier:
    """记录待发送通知，不做网络调用"""

    def __init__(self):
        self.intents = []

    def dispatch(self, intents):
        self.intents.extend(intents or [])

    def templates(self):
        return [i.template for i in self.intents]


class FakeGateway:
    """模拟支付平台收银台"""

    def __init__(self):
        self.calls = []
        self.fail = False

    def create_checkout_link(self, **kwargs):
        if self.fail:
            raise ExternalServiceError('Payment system unavailable')
        self.calls.append(kwargs)
        n = len(self.calls)
        return CheckoutSession(checkout_url=f'https://pay.example/link/{n}', session_id=f'PL-{n}',
                               order_id=f'SQ-ORDER-{n}')


def seed(app):
    with app.app_context():
        for tier in DEFAULT_TIERS:
            db.session.add(DiscountTier(code=tier.code, name=tier.name,
                                        min_order_amount=tier.min_order_amount,
                                        discount_percent=tier.discount_percent))

        glass = ProductCategory(name='Glass Ornaments', slug='glass-ornaments', default_price=3500)
        sun = ProductCategory(name='Glass Sun Catchers', slug='glass-sun-catchers', default_price=7200)
        db.session.add_all([glass, sun])

        ornament = Product(sku='BD-1001', title='Cardinal Ornament', retail_price=3500, category=glass)
        bulk = Product(sku='BD-1002', title='Owl Ornament Gift Set', retail_price=4500, category=glass)
        catcher = Product(sku='BD-2001', title='Fox Sun Catcher 15 inch', retail_price=15300, category=sun)
        retired = Product(sku='BD-9999', title='Retired Ornament', retail_price=3500, category=glass,
                          is_active=False)
        db.session.add_all([ornament, bulk, catcher, retired])

        buyer = Customer(email='buyer@example.com', business_name='Harbor Gift Shop',
                         contact_name='Pat Lee', address='1 Main St', city='Portland', state='ME',
                         zip='04101', discount_tier='auto')
        pinned = Customer(email='vip@example.com', business_name='Maple Boutique',
                          contact_name='Sam Park', discount_tier='tier3')
        dormant = Customer(email='old@example.com', business_name='Closed Store',
                           contact_name='Kim Fox', status=Customer.STATUS_INACTIVE)
        db.session.add_all([buyer, pinned, dormant])

        admin = User(email='admin@example.com', username='admin', password='admin-pass', is_admin=True)
        buyer_user = User(email='buyer@example.com', username='pat', password='buyer-pass', customer=buyer)
        db.session.add_all([admin, buyer_user])
        db.session.commit()

        return SimpleNamespace(
            ornament=ornament.id, bulk=bulk.id, catcher=catcher.id, retired=retired.id,
            buyer=buyer.id, pinned=pinned.id, dormant=dormant.id,
            admin=admin.id, buyer_user=buyer_user.id,
        )


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
    app.extensions['notifier'] = RecordingNotifier()
    app.extensions['payment_gateway'] = FakeGateway()
    app.ids = seed(app)

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ids(app):
    return app.ids


@pytest.fixture
def ctx(app):
    """服务层测试使用的应用上下文"""
    with app.app_context():
        yield
        db.session.rollback()


@pytest.fixture
def notifier(app):
    return app.extensions['notifier']


@pytest.fixture
def gateway(app):
    return app.extensions['payment_gateway']


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password):
    response = client.post('/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response


@pytest.fixture
def buyer_client(client):
    login(client, 'buyer@example.com', 'buyer-pass')
    return client


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    login(client, 'admin@example.com', 'admin-pass')
    return client


@pytest.fixture
def place_order(ctx, ids):
    """在当前上下文中下单，返回 Order 对象"""
    from app.models.trade import Order
    from app.services.checkout_service import CheckoutService

    def _place(payment_method='invoice', customer_id=None, lines=None, now=None, token=None):
        lines = lines or [{'product_id': ids.ornament, 'quantity': 12}]
        result = CheckoutService.checkout(customer_id or ids.buyer, lines, payment_method,
                                          checkout_token=token, now=now)
        return db.session.get(Order, result.order_id)

    return _place
