from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card

TABLE_SIZE = 5


class LeavePolicy(str, Enum):
    RETAIN = "RETAIN"
    REMOVE = "REMOVE"


class SeatOrder(str, Enum):
    INSERTION = "INSERTION"
    RANDOM = "RANDOM"


class BidPhase(str, Enum):
    IDLE = "IDLE"
    AWAITING_BID = "AWAITING_BID"
    BIDS_COMPLETE = "BIDS_COMPLETE"


@dataclass
class TableConfig:
    leave_policy: LeavePolicy = LeavePolicy.RETAIN
    seat_order: SeatOrder = SeatOrder.INSERTION
    clear_delay_ms: int = 2_500
    seed: Optional[int] = None


@dataclass
class Player:
    nickname: str
    seat_index: int
    connection: Optional[str] = None
    hand: List[Card] = field(default_factory=list)

    @property
    def connected(self) -> bool:
        return self.connection is not None


@dataclass
class Score:
    points: int = 0
    fallas: int = 0


@dataclass
class TrickPlay:
    nickname: str
    card: Card
    seat_index: int


@dataclass(frozen=True)
class HandResult:
    pts: int
    total: int
    bid: int
    won: int
    falla: bool


@dataclass(frozen=True)
class HandRecord:
    hand_num: int
    card_count: int
    results: Dict[str, HandResult]


@dataclass
class GameState:
    # Everything needed to resume a tournament lives here; the engine owns it.
    seated_players: List[Player] = field(default_factory=list)
    current_hand_index: int = 0
    is_hand_in_progress: bool = False
    bids: Dict[str, int] = field(default_factory=dict)
    tricks_won: Dict[str, int] = field(default_factory=dict)
    cards_on_table: List[TrickPlay] = field(default_factory=list)
    last_trick: Optional[List[TrickPlay]] = None
    trump_card: Optional[Card] = None
    turn_index: int = 0
    scores: Dict[str, Score] = field(default_factory=dict)
    history: List[HandRecord] = field(default_factory=list)
    awaiting_clear: bool = False
    seats_shuffled: bool = False
