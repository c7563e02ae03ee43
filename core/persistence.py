"""
Snapshot encoding for session continuity.

The whole GameState is written as one JSON document after every accepted
transition and read back at start-up. Cards travel as labels ("10h").
Anything that does not describe a reachable table state is refused with
InvariantViolation instead of being patched up.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .cards import HAND_SCHEDULE, Card, hand_size, is_no_trump, parse_label
from .errors import InvariantViolation
from .models import TABLE_SIZE, GameState, HandRecord, HandResult, Player, Score, TrickPlay
from .tricks import trick_winner

SCHEMA_VERSION = 1


def play_to_dict(play: TrickPlay) -> Dict[str, Any]:
    return {"nickname": play.nickname, "card": play.card.label, "seat": play.seat_index}


def score_to_dict(score: Score) -> Dict[str, int]:
    return {"points": score.points, "fallas": score.fallas}


def record_to_dict(record: HandRecord) -> Dict[str, Any]:
    return {
        "hand_num": record.hand_num,
        "card_count": record.card_count,
        "results": {
            nickname: {
                "pts": result.pts,
                "total": result.total,
                "bid": result.bid,
                "won": result.won,
                "falla": result.falla,
            }
            for nickname, result in record.results.items()
        },
    }


def _player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        "nickname": player.nickname,
        "seat": player.seat_index,
        "connection": player.connection,
        "hand": [card.label for card in player.hand],
    }


def state_to_dict(state: GameState) -> Dict[str, Any]:
    return {
        "schema": SCHEMA_VERSION,
        "seated_players": [_player_to_dict(player) for player in state.seated_players],
        "current_hand_index": state.current_hand_index,
        "is_hand_in_progress": state.is_hand_in_progress,
        "bids": dict(state.bids),
        "tricks_won": dict(state.tricks_won),
        "cards_on_table": [play_to_dict(play) for play in state.cards_on_table],
        "last_trick": [play_to_dict(play) for play in state.last_trick] if state.last_trick is not None else None,
        "trump_card": state.trump_card.label if state.trump_card else None,
        "turn_index": state.turn_index,
        "scores": {nickname: score_to_dict(score) for nickname, score in state.scores.items()},
        "history": [record_to_dict(record) for record in state.history],
        "awaiting_clear": state.awaiting_clear,
        "seats_shuffled": state.seats_shuffled,
    }


def _play_from_dict(d: Dict[str, Any]) -> TrickPlay:
    return TrickPlay(nickname=d["nickname"], card=parse_label(d["card"]), seat_index=int(d["seat"]))


def _record_from_dict(d: Dict[str, Any]) -> HandRecord:
    return HandRecord(
        hand_num=int(d["hand_num"]),
        card_count=int(d["card_count"]),
        results={
            nickname: HandResult(
                pts=int(r["pts"]),
                total=int(r["total"]),
                bid=int(r["bid"]),
                won=int(r["won"]),
                falla=bool(r["falla"]),
            )
            for nickname, r in d["results"].items()
        },
    )


def state_from_dict(d: Dict[str, Any]) -> GameState:
    if not isinstance(d, dict):
        raise InvariantViolation("Snapshot must be a JSON object")
    if d.get("schema") != SCHEMA_VERSION:
        raise InvariantViolation(f"Unsupported snapshot schema: {d.get('schema')!r}")
    try:
        last_trick = d["last_trick"]
        trump = d["trump_card"]
        state = GameState(
            seated_players=[
                Player(
                    nickname=p["nickname"],
                    seat_index=int(p["seat"]),
                    connection=p.get("connection"),
                    hand=[parse_label(label) for label in p["hand"]],
                )
                for p in d["seated_players"]
            ],
            current_hand_index=int(d["current_hand_index"]),
            is_hand_in_progress=bool(d["is_hand_in_progress"]),
            bids={str(k): int(v) for k, v in d["bids"].items()},
            tricks_won={str(k): int(v) for k, v in d["tricks_won"].items()},
            cards_on_table=[_play_from_dict(p) for p in d["cards_on_table"]],
            last_trick=[_play_from_dict(p) for p in last_trick] if last_trick is not None else None,
            trump_card=parse_label(trump) if trump is not None else None,
            turn_index=int(d["turn_index"]),
            scores={
                str(k): Score(points=int(v["points"]), fallas=int(v["fallas"]))
                for k, v in d["scores"].items()
            },
            history=[_record_from_dict(r) for r in d["history"]],
            awaiting_clear=bool(d.get("awaiting_clear", False)),
            seats_shuffled=bool(d.get("seats_shuffled", False)),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise InvariantViolation(f"Malformed snapshot: {exc}") from exc
    validate_state(state)
    return state


def encode_state(state: GameState) -> bytes:
    return json.dumps(state_to_dict(state), ensure_ascii=False, sort_keys=True).encode("utf-8")


def decode_state(data: bytes) -> GameState:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvariantViolation(f"Snapshot is not valid JSON: {exc}") from exc
    return state_from_dict(payload)


def _check(condition: bool, msg: str) -> None:
    if not condition:
        raise InvariantViolation(msg)


def _is_count(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_state(state: GameState) -> None:
    _check(isinstance(state, GameState), "Expected a GameState")
    players = state.seated_players
    _check(len(players) <= TABLE_SIZE, f"At most {TABLE_SIZE} seats, got {len(players)}")

    nicknames: List[str] = []
    for position, player in enumerate(players):
        _check(isinstance(player, Player), "Seated entries must be players")
        _check(isinstance(player.nickname, str) and bool(player.nickname.strip()), "Blank nickname")
        _check(player.seat_index == position, f"{player.nickname} sits at {player.seat_index}, expected {position}")
        _check(all(isinstance(card, Card) for card in player.hand), f"{player.nickname} holds a non-card")
        nicknames.append(player.nickname)
    _check(len(set(nicknames)) == len(nicknames), "Duplicate nickname at the table")
    seated = set(nicknames)

    index = state.current_hand_index
    _check(_is_count(index) and index <= len(HAND_SCHEDULE), f"Hand index out of range: {index!r}")
    _check(len(state.history) == index, "History length does not match hand index")
    _check(_is_count(state.turn_index) and state.turn_index < TABLE_SIZE, f"Turn index out of range: {state.turn_index!r}")

    for nickname in nicknames:
        _check(nickname in state.scores, f"No score row for {nickname}")
    for nickname, score in state.scores.items():
        _check(_is_count(score.points) and _is_count(score.fallas), f"Bad score row for {nickname}")

    _check(set(state.bids) <= seated, "Bid recorded for a player who is not seated")
    _check(set(state.tricks_won) <= seated, "Tricks recorded for a player who is not seated")
    _check(all(_is_count(v) for v in state.tricks_won.values()), "Negative trick count")
    _check(len(state.cards_on_table) <= TABLE_SIZE, "More than five cards on the table")

    if not state.is_hand_in_progress:
        _check(not state.cards_on_table, "Cards on the table between hands")
        _check(not state.awaiting_clear, "Awaiting clear between hands")
        _check(all(not player.hand for player in players), "Cards held between hands")
        return

    _check(index < len(HAND_SCHEDULE), "Hand in progress after the last hand")
    _check(len(players) == TABLE_SIZE, "Hand in progress without a full table")
    count = hand_size(index)
    if is_no_trump(index):
        _check(state.trump_card is None, "Trump card turned up during a no-trump hand")
    else:
        _check(isinstance(state.trump_card, Card), "Trump hand without a trump card")
    _check(all(_is_count(v) and v <= count for v in state.bids.values()), "Bid out of range")

    tricks_played = sum(state.tricks_won.values())
    _check(tricks_played <= count, "More tricks won than cards dealt")
    if len(state.bids) < TABLE_SIZE:
        _check(tricks_played == 0 and not state.cards_on_table, "Cards played before bidding closed")

    by_name = {player.nickname: player for player in players}
    for play in state.cards_on_table:
        _check(play.nickname in by_name, f"{play.nickname} is not seated")
        _check(by_name[play.nickname].seat_index == play.seat_index, f"Seat mismatch for {play.nickname}")
    on_table = [play.nickname for play in state.cards_on_table]
    _check(len(set(on_table)) == len(on_table), "A player played twice in one trick")
    if state.awaiting_clear:
        _check(len(state.cards_on_table) == TABLE_SIZE, "Awaiting clear without a complete trick")
    else:
        _check(len(state.cards_on_table) < TABLE_SIZE, "Complete trick not marked for clearing")
    if state.last_trick is not None:
        _check(len(state.last_trick) == TABLE_SIZE, "Last trick must hold five plays")

    for player in players:
        played_now = player.nickname in on_table and not state.awaiting_clear
        expected = count - tricks_played - (1 if played_now else 0)
        _check(len(player.hand) == expected, f"{player.nickname} holds {len(player.hand)} cards, expected {expected}")

    seen: set = set()
    cards = [card for player in players for card in player.hand]
    cards.extend(play.card for play in state.cards_on_table)
    if state.trump_card is not None:
        cards.append(state.trump_card)
    for card in cards:
        _check(card not in seen, f"Card {card.label} appears twice")
        seen.add(card)
    if state.last_trick is not None:
        held = {card for player in players for card in player.hand}
        _check(not any(play.card in held for play in state.last_trick), "A played card is back in a hand")

    _check_turn(state, players, tricks_played)


def _check_turn(state: GameState, players: List[Player], tricks_played: int) -> None:
    """The turn pointer must name the seat the rules say acts next."""
    opener = (state.current_hand_index + 1) % TABLE_SIZE
    if len(state.bids) < TABLE_SIZE:
        bidders = {players[(opener + offset) % TABLE_SIZE].nickname for offset in range(len(state.bids))}
        _check(set(state.bids) == bidders, "Bids were not taken in seat order")
        expected = (opener + len(state.bids)) % TABLE_SIZE
    elif state.awaiting_clear:
        trump_suit = None if state.trump_card is None else state.trump_card.suit
        expected = trick_winner(state.cards_on_table, trump_suit).seat_index
    elif state.cards_on_table:
        leader = state.cards_on_table[0].seat_index
        for offset, play in enumerate(state.cards_on_table):
            _check(play.seat_index == (leader + offset) % TABLE_SIZE, "Trick was not played in seat order")
        expected = (leader + len(state.cards_on_table)) % TABLE_SIZE
    elif tricks_played == 0:
        expected = opener
    else:
        _check(state.last_trick is not None, "Tricks won but no last trick recorded")
        trump_suit = None if state.trump_card is None else state.trump_card.suit
        expected = trick_winner(state.last_trick, trump_suit).seat_index
    _check(state.turn_index == expected, f"Turn index {state.turn_index} does not match seat to act {expected}")


class StateStore:
    """Durable byte sink/source for snapshots (one JSON file, replaced atomically)."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def save(self, data: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, self.path)

    def load(self) -> Optional[bytes]:
        if not self.path.exists():
            return None
        return self.path.read_bytes()

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
