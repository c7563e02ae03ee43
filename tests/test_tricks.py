import itertools
import random

import pytest

from core.cards import build_deck
from core.errors import RejectedAction
from core.models import TrickPlay
from core.tricks import legal_plays, trick_winner

from .helpers import NAMES, bid_in_turn, cards, create_engine, rig_hand, skip_to_hand


def make_trick(*labels: str):
    return [TrickPlay(nickname=NAMES[i], card=card, seat_index=i) for i, card in enumerate(cards(*labels))]


def test_no_trump_trick_goes_to_highest_lead_suit_card():
    trick = make_trick("As", "Kh", "Qc", "2d", "2s")
    assert trick_winner(trick, None).card.label == "As"


def test_off_suit_card_never_wins_without_trump():
    trick = make_trick("3h", "Ad", "Ac", "As", "2h")
    assert trick_winner(trick, None).nickname == "Ana"


def test_any_trump_beats_lead_suit():
    trick = make_trick("Ah", "Kh", "2c", "Qh", "Jh")
    assert trick_winner(trick, "c").nickname == "Caro"


def test_higher_trump_wins_over_lower_trump():
    trick = make_trick("Ah", "3c", "2c", "Qc", "Jh")
    assert trick_winner(trick, "c").nickname == "Dani"


def test_led_trump_is_beaten_only_by_higher_trump():
    trick = make_trick("5d", "Ah", "4d", "As", "6d")
    assert trick_winner(trick, "d").nickname == "Eli"


def test_empty_trick_has_no_winner():
    with pytest.raises(ValueError, match="empty trick"):
        trick_winner([], None)


@pytest.mark.parametrize("trump", [None, "s", "h", "c", "d"])
def test_winner_ignores_order_of_followers(trump):
    rng = random.Random(2024)
    for _ in range(50):
        deck = build_deck(rng)
        trick = [TrickPlay(nickname=NAMES[i], card=deck[i], seat_index=i) for i in range(5)]
        expected = trick_winner(trick, trump)
        for rest in itertools.permutations(trick[1:]):
            assert trick_winner([trick[0], *rest], trump) == expected


def test_legal_plays_force_lead_suit_when_held():
    hand = cards("3h", "5c")
    assert legal_plays(hand, make_trick("Qh")) == cards("3h")
    assert legal_plays(hand, make_trick("Qs")) == hand
    assert legal_plays(hand, []) == hand


HANDS = {
    "Ana": ["Ah", "Kc"],
    "Beto": ["4s", "5s"],
    "Caro": ["Qh", "6s"],
    "Dani": ["3h", "5c"],
    "Eli": ["7c", "8c"],
}


def rigged_engine():
    engine = create_engine()
    skip_to_hand(engine, 1)
    engine.start_hand()
    rig_hand(engine, HANDS, trump="2c")
    bid_in_turn(engine, [1, 0, 1, 0, 0])
    assert engine.current_player().nickname == "Caro"
    return engine


def test_play_rejected_while_bidding_open():
    engine = create_engine()
    engine.start_hand()
    player = engine.current_player()
    with pytest.raises(RejectedAction, match="Bidding is still open"):
        engine.play_card(player.nickname, player.hand[0])


def test_play_out_of_turn_rejected():
    engine = rigged_engine()
    with pytest.raises(RejectedAction, match="Not your turn"):
        engine.play_card("Ana", cards("Ah")[0])


def test_play_card_not_held_rejected():
    engine = rigged_engine()
    with pytest.raises(RejectedAction, match="not in your hand") as exc:
        engine.play_card("Caro", cards("Ah")[0])
    assert exc.value.code == "CARD_NOT_IN_HAND"


def test_must_follow_suit_then_legal_card_accepted():
    engine = rigged_engine()
    engine.play_card("Caro", cards("Qh")[0])
    before = engine.snapshot()

    with pytest.raises(RejectedAction, match="Must follow suit") as exc:
        engine.play_card("Dani", cards("5c")[0])
    assert exc.value.code == "MUST_FOLLOW_SUIT"
    assert engine.snapshot() == before
    assert engine.legal_cards("Dani") == cards("3h")
    assert engine.hand_payload("Dani")["legal"] == ["3h"]

    events = engine.play_card("Dani", cards("3h")[0])
    assert events == [
        {"ev": "CARD_PLAYED", "nickname": "Dani", "seat": 3, "card": "3h", "next_player": "Eli"}
    ]
    assert cards("3h")[0] not in engine.find_player("Dani").hand


def test_trick_resolution_trumps_and_waits_for_clear():
    engine = rigged_engine()
    for name, label in [("Caro", "Qh"), ("Dani", "3h"), ("Eli", "7c"), ("Ana", "Ah")]:
        engine.play_card(name, cards(label)[0])

    events = engine.play_card("Beto", cards("4s")[0])

    assert events[-1]["ev"] == "TRICK_WON"
    assert events[-1]["winner"] == "Eli"
    assert events[-1]["hand_finished"] is False
    state = engine.state
    assert state.tricks_won["Eli"] == 1
    assert state.turn_index == 4
    assert state.awaiting_clear
    assert len(state.cards_on_table) == 5
    assert [play.card.label for play in state.last_trick] == ["Qh", "3h", "7c", "Ah", "4s"]
    with pytest.raises(RejectedAction, match="still on the table"):
        engine.play_card("Eli", cards("8c")[0])

    cleared = engine.clear_table()

    assert cleared[0]["ev"] == "TABLE_CLEARED"
    assert cleared[0]["winner"] == cleared[0]["next_player"] == "Eli"
    assert state.cards_on_table == []
    assert not state.awaiting_clear
    assert engine.clear_table() == []


def test_last_trick_finishes_and_scores_hand():
    engine = rigged_engine()
    before = {name: score.points for name, score in engine.state.scores.items()}
    for name, label in [("Caro", "Qh"), ("Dani", "3h"), ("Eli", "7c"), ("Ana", "Ah"), ("Beto", "4s")]:
        engine.play_card(name, cards(label)[0])
    engine.clear_table()
    for name, label in [("Eli", "8c"), ("Ana", "Kc"), ("Beto", "5s"), ("Caro", "6s")]:
        engine.play_card(name, cards(label)[0])
    events = engine.play_card("Dani", cards("5c")[0])
    assert events[-1]["winner"] == "Ana"
    assert events[-1]["hand_finished"] is True
    assert engine.state.is_hand_in_progress

    cleared = engine.clear_table()

    assert [ev["ev"] for ev in cleared] == ["TABLE_CLEARED", "HAND_FINISHED"]
    assert sum(engine.state.tricks_won.values()) == 2
    assert not engine.state.is_hand_in_progress
    assert engine.state.current_hand_index == 2
    # Bids were Caro 1, Dani 0, Eli 1, Ana 0, Beto 0.
    results = cleared[1]["last_hand_result"]["results"]
    assert results["Eli"] == {"pts": 15, "total": before["Eli"] + 15, "bid": 1, "won": 1, "falla": False}
    assert results["Ana"] == {"pts": 1, "total": before["Ana"] + 1, "bid": 0, "won": 1, "falla": True}
    assert results["Caro"] == {"pts": 0, "total": before["Caro"], "bid": 1, "won": 0, "falla": True}
    assert results["Dani"]["pts"] == 10
    for name, result in results.items():
        assert result["total"] == engine.state.scores[name].points


def test_no_trump_hand_resolves_by_lead_suit_only():
    engine = create_engine()
    skip_to_hand(engine, 10)
    engine.start_hand()
    # Opener at hand 10 is seat 1 (Beto), who leads spades.
    layout = {"Beto": ["As"], "Caro": ["Kh"], "Dani": ["Qc"], "Eli": ["2d"], "Ana": ["2s"]}
    rig_hand(engine, layout)
    bid_in_turn(engine, [0, 0, 0, 0, 0])
    for name in ["Beto", "Caro", "Dani", "Eli", "Ana"]:
        events = engine.play_card(name, cards(layout[name][0])[0])
    assert events[-1]["winner"] == "Beto"
    assert engine.state.turn_index == 1
