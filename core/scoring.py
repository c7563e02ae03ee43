from __future__ import annotations

from typing import Dict, List, Tuple

from .models import Score

EXACT_BID_BONUS = 10
POINTS_PER_TRICK_ON_BID = 5
POINTS_PER_TRICK_ON_FALLA = 1


def score_hand(bid: int, won: int) -> Tuple[int, bool]:
    """Return (points, falla) for one player's hand."""
    if bid == won:
        return EXACT_BID_BONUS + POINTS_PER_TRICK_ON_BID * won, False
    return POINTS_PER_TRICK_ON_FALLA * won, True


def rank_players(scores: Dict[str, Score]) -> List[Dict[str, object]]:
    ordered = sorted(scores.items(), key=lambda item: (-item[1].points, item[1].fallas, item[0]))
    return [
        {"place": place, "nickname": nickname, "points": score.points, "fallas": score.fallas}
        for place, (nickname, score) in enumerate(ordered, start=1)
    ]
