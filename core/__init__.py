"""Podrida engine primitives: cards, table state, rules and snapshots."""

from .cards import HAND_SCHEDULE, RANKS, SUITS, Card, build_deck, deal, hand_size, parse_label
from .errors import EngineError, IllegalBid, InvariantViolation, RejectedAction
from .game import GameEngine
from .models import BidPhase, GameState, HandRecord, LeavePolicy, Player, SeatOrder, TableConfig
from .persistence import StateStore, decode_state, encode_state

__all__ = [
    "Card",
    "HAND_SCHEDULE",
    "RANKS",
    "SUITS",
    "build_deck",
    "deal",
    "hand_size",
    "parse_label",
    "EngineError",
    "IllegalBid",
    "InvariantViolation",
    "RejectedAction",
    "GameEngine",
    "BidPhase",
    "GameState",
    "HandRecord",
    "LeavePolicy",
    "Player",
    "SeatOrder",
    "TableConfig",
    "StateStore",
    "decode_state",
    "encode_state",
]
