# tests/test_recovery_handler.py

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

import ccxt

from data_models import Credential, Offer, RecoveryResult, Side
from exchange_manager import ExchangeManager, Poller
from recovery_handler import RecoveryHandler
from trade_executor import LegExecution
from utils import FatalRecoveryError


@pytest.fixture
def buy_offer():
    return Offer(offer_id="buy-1", side=Side.BUY, ef_price=Decimal("100"))


@pytest.fixture
def sell_offer():
    return Offer(offer_id="sell-1", side=Side.SELL, ef_price=Decimal("101"))


@pytest.fixture
def mock_exchange_manager():
    manager = MagicMock(spec=ExchangeManager)
    manager.primary = Poller(0, Credential("key", "secret"), MagicMock())
    manager.fetch_settled_trades.return_value = []
    return manager


def leg_two_failed(buy_offer, sell_offer):
    return LegExecution(first=buy_offer, second=sell_offer, first_confirmed=True,
                        error=ccxt.NetworkError("reset"))


def handler(manager, fix=False):
    return RecoveryHandler(manager, amount=Decimal("100"), is_quote=True, fix_missed_second_leg=fix)


def test_rejected_first_leg_needs_no_recovery(mock_exchange_manager, buy_offer, sell_offer):
    execution = LegExecution(first=buy_offer, second=sell_offer, error=ccxt.InsufficientFunds("no funds"))

    result = handler(mock_exchange_manager).recover(execution)

    assert result is RecoveryResult.NO_EXPOSURE
    mock_exchange_manager.fetch_settled_trades.assert_not_called()


def test_uncertain_first_leg_not_in_history(mock_exchange_manager, buy_offer, sell_offer):
    execution = LegExecution(first=buy_offer, second=sell_offer, first_uncertain=True)

    result = handler(mock_exchange_manager, fix=True).recover(execution)

    assert result is RecoveryResult.NO_EXPOSURE
    mock_exchange_manager.fetch_settled_trades.assert_called_once_with(Side.BUY)
    mock_exchange_manager.confirm_offer.assert_not_called()


def test_uncertain_first_leg_that_settled_is_treated_as_missed_second_leg(mock_exchange_manager, buy_offer, sell_offer):
    mock_exchange_manager.fetch_settled_trades.return_value = [{"offerId": "buy-1"}]
    execution = LegExecution(first=buy_offer, second=sell_offer, first_uncertain=True)

    result = handler(mock_exchange_manager).recover(execution)

    assert result is RecoveryResult.STUCK


def test_second_leg_found_in_history_is_settled(mock_exchange_manager, buy_offer, sell_offer):
    # Arrange
    mock_exchange_manager.fetch_settled_trades.return_value = [{"offerId": "other"}, {"offerId": "sell-1"}]

    # Act
    result = handler(mock_exchange_manager, fix=True).recover(leg_two_failed(buy_offer, sell_offer))

    # Assert
    assert result is RecoveryResult.SETTLED
    mock_exchange_manager.fetch_settled_trades.assert_called_once_with(Side.SELL)
    mock_exchange_manager.request_offer.assert_not_called()


def test_missing_leg_without_auto_fix_is_stuck(mock_exchange_manager, buy_offer, sell_offer, caplog):
    result = handler(mock_exchange_manager).recover(leg_two_failed(buy_offer, sell_offer))

    assert result is RecoveryResult.STUCK
    mock_exchange_manager.request_offer.assert_not_called()
    assert any(r.levelname == "CRITICAL" and "MANUAL INTERVENTION" in r.getMessage() for r in caplog.records)


def test_missing_leg_is_fixed_at_market(mock_exchange_manager, buy_offer, sell_offer):
    # Arrange
    fresh = Offer(offer_id="sell-2", side=Side.SELL, ef_price=Decimal("99.5"))
    mock_exchange_manager.request_offer.return_value = fresh

    # Act
    result = handler(mock_exchange_manager, fix=True).recover(leg_two_failed(buy_offer, sell_offer))

    # Assert
    assert result is RecoveryResult.REBALANCED
    mock_exchange_manager.request_offer.assert_called_once_with(
        mock_exchange_manager.primary, Side.SELL, Decimal("100"), True
    )
    mock_exchange_manager.confirm_offer.assert_called_once_with(fresh)


def test_failed_fix_is_fatal(mock_exchange_manager, buy_offer, sell_offer):
    mock_exchange_manager.request_offer.return_value = Offer(offer_id="sell-2", side=Side.SELL, ef_price=Decimal("99"))
    mock_exchange_manager.confirm_offer.side_effect = ccxt.InsufficientFunds("no BTC")

    with pytest.raises(FatalRecoveryError):
        handler(mock_exchange_manager, fix=True).recover(leg_two_failed(buy_offer, sell_offer))


def test_unreadable_history_is_fatal(mock_exchange_manager, buy_offer, sell_offer):
    mock_exchange_manager.fetch_settled_trades.side_effect = ccxt.NetworkError("down")

    with pytest.raises(FatalRecoveryError):
        handler(mock_exchange_manager, fix=True).recover(leg_two_failed(buy_offer, sell_offer))
    mock_exchange_manager.request_offer.assert_not_called()
