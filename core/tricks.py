"""Trick resolution for the three trump regimes (trump, no trump, lead only)."""

from __future__ import annotations

from typing import List, Optional, Sequence

from .cards import Card
from .models import TrickPlay


def beats(card: Card, best: Card, lead_suit: str, trump_suit: Optional[str]) -> bool:
    card_trump = trump_suit is not None and card.suit == trump_suit
    best_trump = trump_suit is not None and best.suit == trump_suit
    if card_trump and not best_trump:
        return True
    if card_trump and best_trump:
        return card.value > best.value
    if best_trump:
        return False
    # Off-suit discards never take the trick.
    return card.suit == lead_suit and card.value > best.value


def trick_winner(plays: Sequence[TrickPlay], trump_suit: Optional[str]) -> TrickPlay:
    if not plays:
        raise ValueError("Cannot determine winner of an empty trick")
    lead_suit = plays[0].card.suit
    winner = plays[0]
    for play in plays[1:]:
        if beats(play.card, winner.card, lead_suit, trump_suit):
            winner = play
    return winner


def legal_plays(hand: Sequence[Card], table: Sequence[TrickPlay]) -> List[Card]:
    if not table:
        return list(hand)
    lead_suit = table[0].card.suit
    following = [card for card in hand if card.suit == lead_suit]
    return following or list(hand)
