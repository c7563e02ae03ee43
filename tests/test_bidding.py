import pytest

from core.errors import IllegalBid, RejectedAction
from core.models import BidPhase

from .helpers import bid_in_turn, create_engine, skip_to_hand


def test_first_bidder_sits_after_dealer():
    engine = create_engine()
    events = engine.start_hand()
    assert engine.dealer_seat() == 0
    assert engine.state.turn_index == 1
    assert events[0]["dealer"] == "Ana"
    assert events[0]["next_player"] == "Beto"
    assert events[0]["hand_size"] == 1
    assert events[0]["phase"] == "ascending"


@pytest.mark.parametrize("hand_index, opener", [(1, 2), (4, 0), (6, 2)])
def test_dealer_rotates_with_hand_index(hand_index, opener):
    engine = create_engine()
    skip_to_hand(engine, hand_index)
    engine.start_hand()
    assert engine.dealer_seat() == hand_index % 5
    assert engine.state.turn_index == opener


def test_bid_out_of_turn_rejected_without_state_change():
    engine = create_engine()
    engine.start_hand()
    before = engine.snapshot()
    with pytest.raises(RejectedAction, match="Not your turn") as exc:
        engine.submit_bid("Caro", 0)
    assert exc.value.code == "OUT_OF_TURN"
    assert engine.snapshot() == before


def test_bid_before_deal_rejected():
    engine = create_engine()
    with pytest.raises(RejectedAction, match="No hand in progress"):
        engine.submit_bid("Beto", 0)


@pytest.mark.parametrize("bad_bid", [-1, 2, True, "1", None, 0.5])
def test_bid_outside_hand_size_is_illegal(bad_bid):
    engine = create_engine()
    engine.start_hand()
    with pytest.raises(IllegalBid, match="between 0 and 1"):
        engine.submit_bid("Beto", bad_bid)
    assert engine.state.bids == {}


def test_accepted_bid_advances_turn_and_reports_state():
    engine = create_engine()
    engine.start_hand()
    events = engine.submit_bid("Beto", 1)
    assert engine.state.bids == {"Beto": 1}
    assert engine.state.turn_index == 2
    assert events == [
        {
            "ev": "BID",
            "nickname": "Beto",
            "bid": 1,
            "bids": {"Beto": 1},
            "next_player": "Caro",
            "forbidden_bid": None,
            "hand_size": 1,
        }
    ]


def test_forbidden_bid_exposed_to_last_bidder():
    engine = create_engine()
    skip_to_hand(engine, 3)
    engine.start_hand()
    assert engine.hand_size() == 4
    bid_in_turn(engine, [1, 0, 2])
    assert engine.forbidden_bid() is None

    events = engine.submit_bid(engine.current_player().nickname, 0)

    assert engine.forbidden_bid() == 1
    assert events[0]["forbidden_bid"] == 1
    assert sum(engine.state.bids.values()) + engine.forbidden_bid() == engine.hand_size()


def test_no_forbidden_bid_when_first_four_overshoot():
    engine = create_engine()
    skip_to_hand(engine, 1)
    engine.start_hand()
    bid_in_turn(engine, [2, 2, 0, 0])
    assert engine.forbidden_bid() is None
    engine.check_last_bid(0)


def test_check_last_bid_flags_only_the_forbidden_value():
    engine = create_engine()
    engine.start_hand()
    bid_in_turn(engine, [0, 0, 0, 0])
    with pytest.raises(IllegalBid, match="cannot bid 1") as exc:
        engine.check_last_bid(1)
    assert exc.value.code == "FORBIDDEN_BID"
    engine.check_last_bid(0)


def test_engine_records_forbidden_value_when_asked_directly():
    engine = create_engine()
    engine.start_hand()
    bid_in_turn(engine, [1, 0, 0, 0])
    last = engine.current_player().nickname
    assert engine.forbidden_bid() == 0
    engine.submit_bid(last, 0)
    assert engine.state.bids[last] == 0


def test_fifth_bid_closes_bidding_and_returns_turn_to_opener():
    engine = create_engine()
    skip_to_hand(engine, 2)
    engine.start_hand()
    assert engine.bidding_phase() == BidPhase.AWAITING_BID
    bid_in_turn(engine, [0, 1, 0, 1])
    last = engine.current_player().nickname

    events = engine.submit_bid(last, 0)

    assert engine.bidding_phase() == BidPhase.BIDS_COMPLETE
    assert engine.state.turn_index == engine.opening_seat() == 3
    assert events[0]["ev"] == "BIDS_COMPLETE"
    assert events[0]["next_player"] == "Dani"
    with pytest.raises(RejectedAction, match="Bidding is closed"):
        engine.submit_bid("Dani", 0)


def test_bidding_phase_is_idle_between_hands():
    engine = create_engine()
    assert engine.bidding_phase() == BidPhase.IDLE


def test_start_hand_requires_full_table():
    engine = create_engine(names=["Ana", "Beto"])
    with pytest.raises(RejectedAction, match="Need 5") as exc:
        engine.start_hand()
    assert exc.value.code == "NOT_ENOUGH_PLAYERS"


def test_start_hand_twice_rejected():
    engine = create_engine()
    engine.start_hand()
    with pytest.raises(RejectedAction, match="already in progress"):
        engine.start_hand()


def test_deal_accounts_for_all_52_cards():
    engine = create_engine()
    skip_to_hand(engine, 9)
    engine.start_hand()
    held = [card for player in engine.state.seated_players for card in player.hand]
    assert len(held) == 50
    assert len(set(held)) == 50
    assert engine.state.trump_card is not None
    assert engine.state.trump_card not in held
    for player in engine.state.seated_players:
        keys = [("shcd".index(c.suit), c.value) for c in player.hand]
        assert keys == sorted(keys)


def test_no_trump_hand_has_no_trump_card():
    engine = create_engine()
    skip_to_hand(engine, 10)
    events = engine.start_hand()
    assert engine.state.trump_card is None
    assert engine.trump_suit() is None
    assert events[0]["trump"] is None
    assert events[0]["phase"] == "no_trump"
