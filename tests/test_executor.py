# tests/test_executor.py

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

import ccxt

from data_models import Offer, Side
from exchange_manager import ExchangeManager
from trade_executor import TradeExecutor


@pytest.fixture
def mock_exchange_manager():
    """Creates a mock ExchangeManager that doesn't make real API calls."""
    return MagicMock(spec=ExchangeManager)


@pytest.fixture
def buy_offer():
    return Offer(offer_id="buy-1", side=Side.BUY, ef_price=Decimal("100"))


@pytest.fixture
def sell_offer():
    return Offer(offer_id="sell-1", side=Side.SELL, ef_price=Decimal("101"))


def confirmed_ids(manager):
    return [c.args[0].offer_id for c in manager.confirm_offer.call_args_list]


def test_executor_confirms_both_legs_in_order(mock_exchange_manager, buy_offer, sell_offer):
    """
    Tests the "happy path": leg 1 is confirmed before leg 2 is sent.
    """
    # Arrange
    executor = TradeExecutor(mock_exchange_manager, initial_buy=True)

    # Act
    result = executor.execute(buy_offer, sell_offer)

    # Assert
    assert result.completed
    assert result.failed_leg is None
    assert confirmed_ids(mock_exchange_manager) == ["buy-1", "sell-1"]


def test_executor_initial_sell(mock_exchange_manager, buy_offer, sell_offer):
    executor = TradeExecutor(mock_exchange_manager, initial_buy=False)

    result = executor.execute(buy_offer, sell_offer)

    assert result.first is sell_offer
    assert confirmed_ids(mock_exchange_manager) == ["sell-1", "buy-1"]


def test_executor_simulation(mock_exchange_manager, buy_offer, sell_offer):
    # Arrange
    executor = TradeExecutor(mock_exchange_manager, simulation=True)
    progress = MagicMock()
    executor.set_progress_callback(progress)

    # Act
    result = executor.execute(buy_offer, sell_offer)

    # Assert
    assert result.simulated and result.completed
    mock_exchange_manager.confirm_offer.assert_not_called()
    progress.assert_called_once_with("Would execute arbitrage if simulation mode was not enabled")


def test_first_leg_rejection_never_sends_second(mock_exchange_manager, buy_offer, sell_offer):
    mock_exchange_manager.confirm_offer.side_effect = ccxt.InsufficientFunds("balance")
    executor = TradeExecutor(mock_exchange_manager)

    result = executor.execute(buy_offer, sell_offer)

    assert result.failed_leg == 1
    assert not result.first_uncertain
    assert isinstance(result.error, ccxt.InsufficientFunds)
    assert mock_exchange_manager.confirm_offer.call_count == 1


def test_first_leg_network_error_is_uncertain(mock_exchange_manager, buy_offer, sell_offer):
    mock_exchange_manager.confirm_offer.side_effect = ccxt.RequestTimeout("timed out")
    executor = TradeExecutor(mock_exchange_manager)

    result = executor.execute(buy_offer, sell_offer)

    assert result.failed_leg == 1
    assert result.first_uncertain
    assert mock_exchange_manager.confirm_offer.call_count == 1


def test_second_leg_failure(mock_exchange_manager, buy_offer, sell_offer):
    mock_exchange_manager.confirm_offer.side_effect = [{"offerId": "buy-1"}, ccxt.ExchangeError("expired")]
    executor = TradeExecutor(mock_exchange_manager)

    result = executor.execute(buy_offer, sell_offer)

    assert result.first_confirmed
    assert not result.second_confirmed
    assert result.failed_leg == 2
    assert not result.completed


def test_progress_callback_failure_is_ignored(mock_exchange_manager, buy_offer, sell_offer):
    executor = TradeExecutor(mock_exchange_manager)
    executor.set_progress_callback(MagicMock(side_effect=RuntimeError("ui gone")))

    assert executor.execute(buy_offer, sell_offer).completed
