from __future__ import annotations

import random
from typing import Dict, Iterable, List, Optional

from core.cards import Card, parse_label, sort_hand
from core.game import GameEngine
from core.models import TableConfig

NAMES = ["Ana", "Beto", "Caro", "Dani", "Eli"]


def create_engine(*, seed: int = 42, config: Optional[TableConfig] = None, names: Iterable[str] = NAMES) -> GameEngine:
    """Instantiate an engine with five seated players in insertion order."""
    engine = GameEngine(config or TableConfig(), rng=random.Random(seed))
    for idx, name in enumerate(names):
        engine.join(name, f"conn-{idx}")
    return engine


def cards(*labels: str) -> List[Card]:
    return [parse_label(label) for label in labels]


def skip_to_hand(engine: GameEngine, hand_index: int) -> None:
    """Play every earlier hand quickly so the engine sits at ``hand_index``."""
    while engine.state.current_hand_index < hand_index:
        engine.start_hand()
        bid_in_turn(engine, [0] * 5)
        play_out_hand(engine)


def bid_in_turn(engine: GameEngine, bids: List[int]) -> None:
    """Submit bids in turn order, starting with whoever is to act."""
    for bid in bids:
        player = engine.current_player()
        assert player is not None
        engine.submit_bid(player.nickname, bid)


def bid_by_name(engine: GameEngine, bids: Dict[str, int]) -> None:
    for _ in range(len(bids)):
        player = engine.current_player()
        assert player is not None
        engine.submit_bid(player.nickname, bids[player.nickname])


def rig_hand(engine: GameEngine, hands: Dict[str, List[str]], trump: Optional[str] = None) -> None:
    """Replace the dealt cards with a fixed layout (call right after start_hand)."""
    for player in engine.state.seated_players:
        player.hand = sort_hand(cards(*hands[player.nickname]))
    if trump is not None:
        engine.state.trump_card = parse_label(trump)


def play_out_hand(engine: GameEngine) -> None:
    """Play the lowest legal card for whoever is to act until the hand is scored."""
    while engine.state.is_hand_in_progress:
        if engine.state.awaiting_clear:
            engine.clear_table()
            continue
        player = engine.current_player()
        assert player is not None
        legal = engine.legal_cards(player.nickname)
        engine.play_card(player.nickname, legal[0])
