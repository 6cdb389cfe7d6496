# tests/test_biscoint.py

import base64
import hashlib
import hmac
from decimal import Decimal

import pytest

import ccxt

from biscoint import biscoint

NONCE = 1700000000000000


@pytest.fixture
def exchange(mocker):
    ex = biscoint({'apiKey': 'key', 'secret': 'secret'})
    mocker.patch.object(ex, 'nonce', return_value=NONCE)
    return ex


def expected_signature(ex, path, params):
    payload = base64.b64encode(('v1/' + path + str(NONCE) + ex.json(params)).encode('utf-8'))
    return hmac.new(b'secret', payload, hashlib.sha384).hexdigest()


def test_describe():
    ex = biscoint()
    assert ex.id == 'biscoint'
    assert ex.version == 'v1'
    assert ex.enableRateLimit is False


def test_private_get_is_signed_with_query_string(exchange):
    params = {'amount': '100', 'isQuote': True, 'op': 'buy', 'base': 'BTC', 'quote': 'BRL'}

    request = exchange.sign('offer', 'private', 'GET', params)

    assert request['url'].startswith('https://api.biscoint.io/v1/offer?')
    assert request['body'] is None
    assert request['headers']['BSCNT-NONCE'] == str(NONCE)
    assert request['headers']['BSCNT-APIKEY'] == 'key'
    assert request['headers']['BSCNT-SIGN'] == expected_signature(exchange, 'offer', params)


def test_private_post_sends_json_body(exchange):
    params = {'offerId': 'abc'}

    request = exchange.sign('offer', 'private', 'POST', params)

    assert request['url'] == 'https://api.biscoint.io/v1/offer'
    assert request['body'] == exchange.json(params)
    assert request['headers']['BSCNT-SIGN'] == expected_signature(exchange, 'offer', params)


def test_public_request_is_not_signed(exchange):
    request = exchange.sign('meta', 'public', 'GET', {})

    assert request['url'] == 'https://api.biscoint.io/v1/meta'
    assert not request['headers']


def test_private_request_requires_credentials():
    with pytest.raises(ccxt.AuthenticationError):
        biscoint().sign('balance', 'private', 'GET', {})


@pytest.mark.parametrize('message, error', [
    ('Invalid API key', ccxt.AuthenticationError),
    ('Insufficient balance', ccxt.InsufficientFunds),
    ('Offer not found', ccxt.OrderNotFound),
    ('Something else', ccxt.ExchangeError),
])
def test_error_envelope_is_mapped(exchange, message, error):
    with pytest.raises(error):
        exchange.handle_errors(400, 'Bad Request', 'url', 'GET', {}, '', {'message': message, 'data': None}, {}, '')


def test_successful_envelope_passes(exchange):
    assert exchange.handle_errors(200, 'OK', 'url', 'GET', {}, '', {'message': '', 'data': {'a': 1}}, {}, '') is None


def test_fetch_balance_layout(exchange, mocker):
    mocker.patch.object(exchange, 'request', return_value={'message': None, 'data': {'BRL': '100.50', 'BTC': '0.01'}})

    balance = exchange.fetch_balance()

    assert balance['total'] == {'BRL': '100.50', 'BTC': '0.01'}
    assert balance['BTC']['free'] == '0.01'


def test_create_offer_request(exchange, mocker):
    request = mocker.patch.object(exchange, 'request', return_value={'data': {'offerId': 'x'}})

    offer = exchange.create_offer(Decimal('100'), True, 'sell')

    assert offer == {'offerId': 'x'}
    path, api, method, params = request.call_args.args
    assert (path, api, method) == ('offer', 'private', 'GET')
    assert params == {'amount': '100', 'isQuote': True, 'op': 'sell', 'base': 'BTC', 'quote': 'BRL'}


def test_confirm_and_trades_requests(exchange, mocker):
    request = mocker.patch.object(exchange, 'request', side_effect=[{'data': {'offerId': 'x'}}, {'data': None}])

    exchange.confirm_offer('x')
    trades = exchange.fetch_offer_trades('buy')

    assert request.call_args_list[0].args == ('offer', 'private', 'POST', {'offerId': 'x'})
    assert request.call_args_list[1].args == ('trades', 'private', 'GET', {'op': 'buy'})
    assert trades == []
