# risk_manager.py
"""
Pre-flight funds check. The configured trade amount must be covered by the
balance of its own currency before the loop is allowed to start.
"""

import logging
from decimal import Decimal
from typing import Any, Dict

from data_models import Balances
from utils import ConfigError


class RiskManager:
    def __init__(self, config: Dict[str, Any], exchange_manager):
        self.config = config or {}
        self.params = self.config.get("trading_parameters", {}) or {}
        self.exchange_manager = exchange_manager
        self.logger = logging.getLogger(__name__)

    def check_balances(self, balances: Balances = None) -> Balances:
        """
        Raises ConfigError when the amount exceeds the available balance.
        ccxt.AuthenticationError from the balance query is left to the caller.
        """
        if balances is None:
            balances = self.exchange_manager.get_balances()

        amount = Decimal(str(self.params["amount"]))
        currency = str(self.params.get("amount_currency", "BRL")).upper()
        available = balances.get(currency)

        self.logger.info(f"Balances: {', '.join(f'{k} {v}' for k, v in sorted(balances.assets.items())) or 'none'}")

        if amount > available:
            raise ConfigError(
                f"Amount {amount} {currency} is greater than the user's available balance of {available} {currency}."
            )
        return balances
