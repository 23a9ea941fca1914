import base64
import hashlib
import hmac
import json

import httpx
import pytest

from app.exceptions import ExternalServiceError
from app.services.payment_gateway import SquareGateway


def make_gateway(handler):
    gateway = SquareGateway()
    gateway._client = httpx.Client(transport=httpx.MockTransport(handler))
    return gateway


def link_kwargs(**overrides):
    kwargs = dict(order_number='BD-2026-004', total=27000, currency='USD', description='Wholesale order',
                  redirect_url='https://shop.example/thank-you', idempotency_key='wholesale-BD-2026-004')
    kwargs.update(overrides)
    return kwargs


def test_create_checkout_link(ctx):
    seen = {}

    def handler(request):
        seen['url'] = str(request.url)
        seen['auth'] = request.headers['Authorization']
        seen['body'] = json.loads(request.content)
        return httpx.Response(200, json={'payment_link': {
            'id': 'PL-42', 'url': 'https://square.link/u/abc', 'order_id': 'SQ-ORDER-42',
        }})

    session = make_gateway(handler).create_checkout_link(**link_kwargs())

    assert session.checkout_url == 'https://square.link/u/abc'
    assert session.session_id == 'PL-42'
    assert session.order_id == 'SQ-ORDER-42'
    assert seen['url'] == 'https://connect.squareupsandbox.com/v2/online-checkout/payment-links'
    assert seen['auth'] == 'Bearer test-token'
    assert seen['body']['idempotency_key'] == 'wholesale-BD-2026-004'
    assert seen['body']['quick_pay']['price_money'] == {'amount': 27000, 'currency': 'USD'}
    assert seen['body']['quick_pay']['location_id'] == 'LOC-TEST'


def test_location_lookup_when_not_configured(app, ctx):
    app.config['SQUARE_LOCATION_ID'] = None
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path == '/v2/locations':
            return httpx.Response(200, json={'locations': [{'id': 'LOC-1'}, {'id': 'LOC-2'}]})
        assert json.loads(request.content)['quick_pay']['location_id'] == 'LOC-1'
        return httpx.Response(200, json={'payment_link': {'id': 'PL-1', 'url': 'https://square.link/u/1'}})

    gateway = make_gateway(handler)
    gateway.create_checkout_link(**link_kwargs())
    gateway.create_checkout_link(**link_kwargs(idempotency_key='other'))

    assert paths.count('/v2/locations') == 1


@pytest.mark.parametrize('response', [
    httpx.Response(500, text='boom'),
    httpx.Response(401, json={'errors': [{'code': 'UNAUTHORIZED'}]}),
    httpx.Response(200, json={'payment_link': {'id': 'PL-1'}}),
    httpx.Response(200, text='not json'),
])
def test_provider_errors_become_external_service_error(ctx, response):
    gateway = make_gateway(lambda request: response)
    with pytest.raises(ExternalServiceError) as exc:
        gateway.create_checkout_link(**link_kwargs())
    assert exc.value.code == 502


def test_network_failure(ctx):
    def handler(request):
        raise httpx.ConnectTimeout('timed out', request=request)

    with pytest.raises(ExternalServiceError):
        make_gateway(handler).create_checkout_link(**link_kwargs())


def test_missing_access_token(app, ctx):
    app.config['SQUARE_ACCESS_TOKEN'] = None
    with pytest.raises(ExternalServiceError):
        make_gateway(lambda request: httpx.Response(200, json={})).create_checkout_link(**link_kwargs())


def test_verify_signature():
    body = b'{"type":"payment.completed"}'
    url = 'https://wholesale.example.com/api/webhooks/square'
    signature = base64.b64encode(hmac.new(b'key', url.encode() + body, hashlib.sha256).digest()).decode()

    assert SquareGateway.verify_signature('key', url, body, signature)
    assert not SquareGateway.verify_signature('key', url, body + b' ', signature)
    assert not SquareGateway.verify_signature('other', url, body, signature)
    assert not SquareGateway.verify_signature('key', url, body, None)
