# exchange_manager.py

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from biscoint import biscoint
from data_models import Balances, Credential, Offer, Side
from utils import ExchangeInitError, retry_ccxt_call


@dataclass(frozen=True)
class Poller:
    """A credential set bound to its own client. Index 0 is the primary."""
    index: int
    credential: Credential
    client: Any

    @property
    def is_primary(self) -> bool:
        return self.index == 0

    @property
    def label(self) -> str:
        return self.credential.label


class ExchangeManager:
    """
    Owns one Biscoint client per credential. Quotes may come from any poller;
    confirmations and trade history always go through the primary.
    """

    def __init__(self, credentials: Sequence[Credential], timeout_ms: int = 10000):
        self.logger = logging.getLogger(__name__)
        if not credentials:
            raise ExchangeInitError("At least the primary credential is required.")
        self.pollers: List[Poller] = []
        self._initialize_clients(credentials, timeout_ms)

    def _initialize_clients(self, credentials: Sequence[Credential], timeout_ms: int):
        for index, credential in enumerate(credentials):
            try:
                client = biscoint({
                    'apiKey': credential.api_key,
                    'secret': credential.api_secret,
                    'timeout': timeout_ms,
                    'enableRateLimit': False,
                })
            except Exception as e:
                self.logger.critical(f"Error initializing Biscoint client '{credential.label}': {e}")
                raise ExchangeInitError(f"Failed to initialize Biscoint client '{credential.label}': {e}")
            self.pollers.append(Poller(index=index, credential=credential, client=client))
        self.logger.info(f"Initialized {len(self.pollers)} Biscoint client(s): 1 primary, {len(self.pollers) - 1} helper(s).")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ExchangeManager":
        creds = config.get("credentials", {})
        credentials = [Credential(creds["api_key"], creds["api_secret"], "primary")]
        for i, helper in enumerate(creds.get("helper_keys") or [], start=1):
            credentials.append(Credential(helper["api_key"], helper["api_secret"], f"helper-{i}"))
        timeout_ms = int(config.get("exchange", {}).get("timeout_ms", 10000))
        return cls(credentials, timeout_ms=timeout_ms)

    @property
    def primary(self) -> Poller:
        return self.pollers[0]

    # ----------------------------------------------------------------------
    # STARTUP QUERIES (read-only, retried on network errors)
    # ----------------------------------------------------------------------
    def get_offer_rate_limit(self) -> Dict[str, int]:
        """Rate limit advertised for the quoting endpoint: ``{'windowMs', 'maxRequests'}``."""
        meta = retry_ccxt_call(self.primary.client.fetch_meta)()
        try:
            limit = meta["endpoints"]["offer"]["get"]["rateLimit"]
            return {"windowMs": int(limit["windowMs"]), "maxRequests": int(limit["maxRequests"])}
        except (KeyError, TypeError, ValueError) as e:
            raise ExchangeInitError(f"Exchange meta does not expose the offer rate limit: {e}")

    def get_balances(self) -> Balances:
        balance = retry_ccxt_call(self.primary.client.fetch_balance)()
        totals = balance.get("total", {}) if balance else {}
        return Balances({code.upper(): Decimal(str(amount)) for code, amount in totals.items() if amount is not None})

    # ----------------------------------------------------------------------
    # TRADING (never retried: a retry could double a position)
    # ----------------------------------------------------------------------
    def request_offer(self, poller: Poller, side: Side, amount: Decimal, is_quote: bool) -> Offer:
        payload = poller.client.create_offer(amount, is_quote, side.value)
        offer = Offer.from_api(payload)
        if offer.side is not side:
            raise ValueError(f"Requested a {side.value} offer but received {offer.side.value}")
        return offer

    def confirm_offer(self, offer: Offer) -> Dict[str, Any]:
        return self.primary.client.confirm_offer(offer.offer_id)

    def fetch_settled_trades(self, side: Side) -> List[Dict[str, Any]]:
        return retry_ccxt_call(self.primary.client.fetch_offer_trades)(side.value) or []

    # ----------------------------------------------------------------------
    # SHUTDOWN
    # ----------------------------------------------------------------------
    def close_all_clients(self):
        self.logger.info("Closing all exchange connections...")
        for poller in self.pollers:
            try:
                if hasattr(poller.client, "close"):
                    poller.client.close()
            except Exception as e:
                self.logger.warning(f"Failed to close {poller.label}: {e}")
