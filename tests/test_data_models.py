# tests/test_data_models.py

import pytest
from decimal import Decimal

from data_models import CycleOutcome, CycleState, EngineState, BurstBudget, Offer, RotationState, Side, TradeCycle


def test_offer_from_api():
    offer = Offer.from_api({
        "offerId": "abc", "op": "BUY", "efPrice": "250000.12", "isQuote": False,
        "baseAmount": "0.001", "quoteAmount": "250.00", "expiresAt": "2024-01-01T00:00:15Z",
    })

    assert offer.offer_id == "abc"
    assert offer.side is Side.BUY
    assert offer.ef_price == Decimal("250000.12")
    assert offer.is_quote is False
    assert offer.base_amount == Decimal("0.001")


@pytest.mark.parametrize("payload", [
    {},
    {"op": "buy", "efPrice": "1"},
    {"offerId": "x", "op": "buy", "efPrice": "0"},
    {"offerId": "x", "op": "hold", "efPrice": "1"},
])
def test_offer_from_api_rejects_bad_payload(payload):
    with pytest.raises(ValueError):
        Offer.from_api(payload)


def test_trade_cycle_finish_and_dict():
    cycle = TradeCycle(seq=7, poller_index=1, bursting=True)
    assert cycle.duration_s is None

    cycle.finish(CycleOutcome.NO_OP, CycleState.NOT_PROFITABLE)

    d = cycle.to_dict()
    assert d["seq"] == 7
    assert d["outcome"] == "no-op"
    assert d["state"] == "NOT_PROFITABLE"
    assert cycle.duration_s >= 0
    assert not cycle.executed


def test_engine_state_sequence():
    state = EngineState(rotation=RotationState(size=2), burst=BurstBudget())

    assert [state.take_seq() for _ in range(3)] == [1, 2, 3]
