# biscoint.py
"""
Biscoint REST client declared as a ccxt exchange.

ccxt does not ship Biscoint, so the exchange is described here the same way
ccxt describes its own: ``describe()`` for the static metadata, ``sign()`` for
authentication and ``handle_errors()`` for the response envelope. Transport,
timeouts and HTTP status mapping come from ``ccxt.Exchange``.
"""

import base64
import hashlib
from typing import Any, Dict, List

from ccxt.base.exchange import Exchange
from ccxt.base.errors import (
    AuthenticationError,
    ExchangeError,
    InsufficientFunds,
    InvalidOrder,
    OrderNotFound,
    RateLimitExceeded,
)


class biscoint(Exchange):

    def describe(self):
        return self.deep_extend(super(biscoint, self).describe(), {
            'id': 'biscoint',
            'name': 'Biscoint',
            'countries': ['BR'],
            'version': 'v1',
            # pacing is owned by the bot's scheduler, see rate_limit_calibrator
            'enableRateLimit': False,
            'rateLimit': 1000,
            'urls': {
                'api': {
                    'rest': 'https://api.biscoint.io',
                },
                'www': 'https://biscoint.io',
                'doc': 'https://api.biscoint.io/api-docs',
            },
            'api': {
                'public': {
                    'get': ['meta'],
                },
                'private': {
                    'get': ['balance', 'offer', 'trades'],
                    'post': ['offer'],
                },
            },
            'requiredCredentials': {
                'apiKey': True,
                'secret': True,
            },
            'exceptions': {
                'exact': {},
                'broad': {
                    'Invalid API key': AuthenticationError,
                    'Invalid signature': AuthenticationError,
                    'nonce': AuthenticationError,
                    'Insufficient': InsufficientFunds,
                    'expired': InvalidOrder,
                    'Offer not found': OrderNotFound,
                    'Too many requests': RateLimitExceeded,
                },
            },
        })

    def nonce(self):
        return self.microseconds()

    # -------- Endpoints --------

    def fetch_meta(self, params={}) -> Dict[str, Any]:
        """Exchange metadata, including per-endpoint rate limits."""
        response = self.request('meta', 'public', 'GET', params)
        return self._unwrap(response) or {}

    def fetch_balance(self, params={}) -> Dict[str, Any]:
        """
        Balances in the ccxt layout: ``{'BRL': {'free', 'used', 'total'},
        'free': {...}, 'total': {...}, 'info': raw}``. Amounts are kept as
        strings to avoid float rounding.
        """
        response = self.request('balance', 'private', 'GET', params)
        data = self._unwrap(response) or {}
        result = {'info': data, 'free': {}, 'used': {}, 'total': {}}
        for code, amount in data.items():
            amount = self.safe_string(data, code)
            if amount is None:
                continue
            code = code.upper()
            result[code] = {'free': amount, 'used': '0', 'total': amount}
            result['free'][code] = amount
            result['used'][code] = '0'
            result['total'][code] = amount
        return result

    def create_offer(self, amount, is_quote: bool, side: str, params={}) -> Dict[str, Any]:
        """Requests a confirmable quote for ``amount`` on one side."""
        request = {
            'amount': str(amount),
            'isQuote': bool(is_quote),
            'op': side,
            'base': 'BTC',
            'quote': 'BRL',
        }
        response = self.request('offer', 'private', 'GET', self.extend(request, params))
        return self._unwrap(response)

    def confirm_offer(self, offer_id: str, params={}) -> Dict[str, Any]:
        """Commits a previously requested offer."""
        request = {'offerId': offer_id}
        response = self.request('offer', 'private', 'POST', self.extend(request, params))
        return self._unwrap(response)

    def fetch_offer_trades(self, side: str, params={}) -> List[Dict[str, Any]]:
        """Executed trades of one side, most recent first."""
        request = {'op': side}
        response = self.request('trades', 'private', 'GET', self.extend(request, params))
        return self._unwrap(response) or []

    # -------- Transport hooks --------

    def _unwrap(self, response):
        if isinstance(response, dict):
            return response.get('data')
        return response

    def sign(self, path, api='public', method='GET', params={}, headers=None, body=None):
        endpoint = self.version + '/' + path
        url = self.urls['api']['rest'] + '/' + endpoint
        if api == 'public':
            if params:
                url += '?' + self.urlencode(params)
            return {'url': url, 'method': method, 'body': body, 'headers': headers}

        self.check_required_credentials()
        nonce = str(self.nonce())
        data = self.json(params)
        if method == 'GET':
            if params:
                url += '?' + self.urlencode(params)
        else:
            body = data
        payload = base64.b64encode((endpoint + nonce + data).encode('utf-8')).decode('ascii')
        signature = self.hmac(self.encode(payload), self.encode(self.secret), hashlib.sha384)
        headers = {
            'BSCNT-NONCE': nonce,
            'BSCNT-APIKEY': self.apiKey,
            'BSCNT-SIGN': signature,
            'Content-Type': 'application/json',
        }
        return {'url': url, 'method': method, 'body': body, 'headers': headers}

    def handle_errors(self, code, reason, url, method, headers, body, response, requestHeaders, requestBody):
        if not isinstance(response, dict):
            return None
        message = self.safe_string(response, 'message')
        if message and response.get('data') is None:
            feedback = self.id + ' ' + message
            self.throw_exactly_matched_exception(self.exceptions['exact'], message, feedback)
            self.throw_broadly_matched_exception(self.exceptions['broad'], message, feedback)
            raise ExchangeError(feedback)
        return None
