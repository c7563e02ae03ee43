from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, List, Optional

RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
SUITS = ("s", "h", "c", "d")
SUIT_SYMBOLS = {"s": "♠", "h": "♥", "c": "♣", "d": "♦"}
RANK_VALUES = {rank: idx + 2 for idx, rank in enumerate(RANKS)}

# Cards dealt per player for each of the 21 hands of a tournament.
HAND_SCHEDULE = (1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 10, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1)
NO_TRUMP_HANDS = range(10, 13)


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def value(self) -> int:
        return RANK_VALUES[self.rank]

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"

    @property
    def symbol(self) -> str:
        return f"{self.rank}{SUIT_SYMBOLS[self.suit]}"


def build_deck(rng: Optional[random.Random] = None) -> List[Card]:
    rng = rng or random.Random()
    deck = [Card(rank, suit) for suit in SUITS for rank in RANKS]
    rng.shuffle(deck)
    return deck


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def sort_hand(cards: Iterable[Card]) -> List[Card]:
    return sorted(cards, key=lambda card: (SUITS.index(card.suit), card.value))


def cards_to_labels(cards: Iterable[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if not isinstance(label, str) or len(label) not in (2, 3):
        raise ValueError(f"Invalid card label: {label}")
    return Card(label[:-1], label[-1])


def hand_size(hand_index: int) -> int:
    return HAND_SCHEDULE[hand_index]


def is_no_trump(hand_index: int) -> bool:
    return hand_index in NO_TRUMP_HANDS


def hand_phase(hand_index: int) -> str:
    """Label shown with each deal: climbing, the no-trump plateau, or descending."""
    if is_no_trump(hand_index):
        return "no_trump"
    if hand_index > NO_TRUMP_HANDS[-1]:
        return "descending"
    return "ascending"
