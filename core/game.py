from __future__ import annotations

import copy
import random
from typing import Dict, List, Optional

from .cards import HAND_SCHEDULE, SUIT_SYMBOLS, Card, build_deck, deal, hand_phase, hand_size, is_no_trump, sort_hand
from .errors import IllegalBid, RejectedAction
from .models import (
    TABLE_SIZE,
    BidPhase,
    GameState,
    HandRecord,
    HandResult,
    LeavePolicy,
    Player,
    Score,
    SeatOrder,
    TableConfig,
    TrickPlay,
)
from .persistence import play_to_dict, record_to_dict, score_to_dict, validate_state
from .scoring import rank_players, score_hand
from .tricks import legal_plays, trick_winner

# GameEngine keeps the whole tournament in one GameState. No networking or
# timers live here: callers serialize access and decide when to clear a
# finished trick off the table.

Event = Dict[str, object]


class GameEngine:
    """Podrida engine for a single five-seat table."""

    def __init__(self, config: Optional[TableConfig] = None, rng: Optional[random.Random] = None) -> None:
        self.config = config or TableConfig()
        self.rng = rng or random.Random(self.config.seed)
        self.state = GameState()

    # Seat management -------------------------------------------------

    def join(self, nickname: str, connection: Optional[str]) -> Optional[Player]:
        """Seat a new player or rebind a returning one.

        Returns None and leaves the table untouched when no seat can be
        handed out right now.
        """
        name = nickname.strip() if isinstance(nickname, str) else ""
        if not name:
            raise RejectedAction("NICKNAME_REQUIRED", "Nickname required")

        state = self.state
        existing = self.find_player(name)
        if existing:
            existing.connection = connection
            return existing

        if len(state.seated_players) >= TABLE_SIZE or state.is_hand_in_progress or self.is_tournament_over():
            return None

        player = Player(nickname=name, seat_index=len(state.seated_players), connection=connection)
        state.seated_players.append(player)
        state.scores.setdefault(name, Score())
        if (
            len(state.seated_players) == TABLE_SIZE
            and self.config.seat_order == SeatOrder.RANDOM
            and not state.seats_shuffled
            and not self._tournament_started()
        ):
            self._shuffle_seats()
        return player

    def leave(self, connection: Optional[str]) -> Optional[Player]:
        if connection is None:
            return None
        player = self.find_by_connection(connection)
        if player is None:
            return None
        if self.config.leave_policy == LeavePolicy.REMOVE and not self._tournament_started():
            self._remove_player(player)
        else:
            player.connection = None
        return player

    def release_connections(self) -> None:
        # Handles are only meaningful to the process that issued them.
        for player in self.state.seated_players:
            player.connection = None

    def find_player(self, nickname: str) -> Optional[Player]:
        for player in self.state.seated_players:
            if player.nickname == nickname:
                return player
        return None

    def find_by_connection(self, connection: str) -> Optional[Player]:
        for player in self.state.seated_players:
            if player.connection == connection:
                return player
        return None

    def player_at(self, seat_index: int) -> Optional[Player]:
        players = self.state.seated_players
        if 0 <= seat_index < len(players):
            return players[seat_index]
        return None

    def current_player(self) -> Optional[Player]:
        if not self.state.is_hand_in_progress:
            return None
        return self.player_at(self.state.turn_index)

    def _tournament_started(self) -> bool:
        state = self.state
        return state.is_hand_in_progress or state.current_hand_index > 0 or bool(state.history)

    def _shuffle_seats(self) -> None:
        players = self.state.seated_players
        self.rng.shuffle(players)
        for idx, player in enumerate(players):
            player.seat_index = idx
        # Only the first full table is permuted; refills append at the end.
        self.state.seats_shuffled = True

    def _remove_player(self, player: Player) -> None:
        state = self.state
        state.seated_players.remove(player)
        for idx, seated in enumerate(state.seated_players):
            seated.seat_index = idx
        state.scores.pop(player.nickname, None)

    # Hand lifecycle --------------------------------------------------

    def is_tournament_over(self) -> bool:
        return self.state.current_hand_index >= len(HAND_SCHEDULE)

    def can_start_hand(self) -> bool:
        state = self.state
        return (
            len(state.seated_players) == TABLE_SIZE
            and not state.is_hand_in_progress
            and not self.is_tournament_over()
        )

    def hand_size(self) -> int:
        if self.is_tournament_over():
            return 0
        return hand_size(self.state.current_hand_index)

    def dealer_seat(self) -> int:
        return self.state.current_hand_index % TABLE_SIZE

    def opening_seat(self) -> int:
        return (self.dealer_seat() + 1) % TABLE_SIZE

    def trump_suit(self) -> Optional[str]:
        state = self.state
        if is_no_trump(state.current_hand_index) or state.trump_card is None:
            return None
        return state.trump_card.suit

    def start_hand(self) -> List[Event]:
        state = self.state
        if self.is_tournament_over():
            raise RejectedAction("TOURNAMENT_OVER", "All hands have been played")
        if state.is_hand_in_progress:
            raise RejectedAction("HAND_IN_PROGRESS", "Hand already in progress")
        if len(state.seated_players) < TABLE_SIZE:
            raise RejectedAction("NOT_ENOUGH_PLAYERS", f"Need {TABLE_SIZE} seated players to deal")

        count = self.hand_size()
        deck = build_deck(self.rng)
        for player in state.seated_players:
            player.hand = sort_hand(deal(deck, count))
        state.trump_card = None if is_no_trump(state.current_hand_index) else deck.pop()

        state.is_hand_in_progress = True
        state.bids = {}
        state.tricks_won = {player.nickname: 0 for player in state.seated_players}
        state.cards_on_table = []
        state.last_trick = None
        state.awaiting_clear = False
        state.turn_index = self.opening_seat()

        return [
            {
                "ev": "HAND_STARTED",
                "hand_index": state.current_hand_index,
                "hand_num": state.current_hand_index + 1,
                "hand_size": count,
                "phase": hand_phase(state.current_hand_index),
                "trump": state.trump_card.label if state.trump_card else None,
                "dealer": self.player_at(self.dealer_seat()).nickname,
                "next_player": self._next_player_name(),
            }
        ]

    # Bidding ---------------------------------------------------------

    def bidding_phase(self) -> BidPhase:
        if not self.state.is_hand_in_progress:
            return BidPhase.IDLE
        if len(self.state.bids) < TABLE_SIZE:
            return BidPhase.AWAITING_BID
        return BidPhase.BIDS_COMPLETE

    def forbidden_bid(self) -> Optional[int]:
        """The one bid the last bidder may not make, once four bids are in."""
        state = self.state
        if not state.is_hand_in_progress or len(state.bids) != TABLE_SIZE - 1:
            return None
        forbidden = self.hand_size() - sum(state.bids.values())
        if 0 <= forbidden <= self.hand_size():
            return forbidden
        return None

    def check_last_bid(self, bid: object) -> None:
        """Raise IllegalBid if ``bid`` is the forbidden last bid.

        submit_bid records whatever in-range value it is given; the table
        host calls this first so the restriction is enforced in one place.
        """
        forbidden = self.forbidden_bid()
        if forbidden is not None and bid == forbidden and not isinstance(bid, bool):
            raise IllegalBid("FORBIDDEN_BID", f"Last bidder cannot bid {forbidden}")

    def submit_bid(self, nickname: str, bid: int) -> List[Event]:
        state = self.state
        if not state.is_hand_in_progress:
            raise RejectedAction("NO_HAND", "No hand in progress")
        if len(state.bids) >= TABLE_SIZE:
            raise RejectedAction("BIDDING_CLOSED", "Bidding is closed for this hand")
        self._require_turn(nickname)

        count = self.hand_size()
        if isinstance(bid, bool) or not isinstance(bid, int) or not 0 <= bid <= count:
            raise IllegalBid("BID_OUT_OF_RANGE", f"Bid must be between 0 and {count}")

        state.bids[nickname] = bid
        if len(state.bids) == TABLE_SIZE:
            state.turn_index = self.opening_seat()
            return [{"ev": "BIDS_COMPLETE", "bids": dict(state.bids), "next_player": self._next_player_name()}]

        state.turn_index = (state.turn_index + 1) % TABLE_SIZE
        return [
            {
                "ev": "BID",
                "nickname": nickname,
                "bid": bid,
                "bids": dict(state.bids),
                "next_player": self._next_player_name(),
                "forbidden_bid": self.forbidden_bid(),
                "hand_size": count,
            }
        ]

    # Trick play ------------------------------------------------------

    def legal_cards(self, nickname: str) -> List[Card]:
        player = self.find_player(nickname)
        if player is None:
            return []
        return legal_plays(player.hand, self.state.cards_on_table)

    def play_card(self, nickname: str, card: Card) -> List[Event]:
        state = self.state
        if not state.is_hand_in_progress:
            raise RejectedAction("NO_HAND", "No hand in progress")
        if len(state.bids) < TABLE_SIZE:
            raise RejectedAction("BIDDING_OPEN", "Bidding is still open")
        if state.awaiting_clear:
            raise RejectedAction("TABLE_NOT_CLEARED", "Previous trick is still on the table")
        player = self._require_turn(nickname)
        if card not in player.hand:
            raise RejectedAction("CARD_NOT_IN_HAND", f"{card.label} is not in your hand")
        if state.cards_on_table:
            lead_suit = state.cards_on_table[0].card.suit
            if card.suit != lead_suit and any(held.suit == lead_suit for held in player.hand):
                raise RejectedAction("MUST_FOLLOW_SUIT", f"Must follow suit: play {SUIT_SYMBOLS[lead_suit]}")

        player.hand.remove(card)
        state.cards_on_table.append(TrickPlay(nickname=player.nickname, card=card, seat_index=player.seat_index))
        state.turn_index = (state.turn_index + 1) % TABLE_SIZE

        events: List[Event] = [
            {
                "ev": "CARD_PLAYED",
                "nickname": player.nickname,
                "seat": player.seat_index,
                "card": card.label,
                "next_player": self._next_player_name(),
            }
        ]
        if len(state.cards_on_table) == TABLE_SIZE:
            events.extend(self._resolve_trick())
        return events

    def _resolve_trick(self) -> List[Event]:
        state = self.state
        winner = trick_winner(state.cards_on_table, self.trump_suit())
        state.tricks_won[winner.nickname] = state.tricks_won.get(winner.nickname, 0) + 1
        state.last_trick = list(state.cards_on_table)
        state.turn_index = winner.seat_index
        state.awaiting_clear = True
        return [
            {
                "ev": "TRICK_WON",
                "winner": winner.nickname,
                "card": winner.card.label,
                "tricks_won": dict(state.tricks_won),
                "hand_finished": self.is_hand_complete(),
            }
        ]

    def clear_table(self) -> List[Event]:
        """Take a resolved trick off the table; scores the hand after its last trick."""
        state = self.state
        if not state.awaiting_clear:
            return []
        state.cards_on_table = []
        state.awaiting_clear = False
        finished = self.is_hand_complete()
        last_trick = state.last_trick or []
        events: List[Event] = [
            {
                "ev": "TABLE_CLEARED",
                "winner": trick_winner(last_trick, self.trump_suit()).nickname if last_trick else None,
                "next_player": self._next_player_name(),
                "tricks_won": dict(state.tricks_won),
                "last_trick": [play_to_dict(play) for play in last_trick],
                "hand_finished": finished,
            }
        ]
        if finished:
            events.extend(self._finish_hand())
        return events

    def is_hand_complete(self) -> bool:
        state = self.state
        if not state.is_hand_in_progress:
            return False
        return sum(state.tricks_won.values()) == self.hand_size()

    # Scoring ---------------------------------------------------------

    def _finish_hand(self) -> List[Event]:
        state = self.state
        results: Dict[str, HandResult] = {}
        for player in state.seated_players:
            bid = state.bids[player.nickname]
            won = state.tricks_won.get(player.nickname, 0)
            pts, falla = score_hand(bid, won)
            score = state.scores.setdefault(player.nickname, Score())
            score.points += pts
            if falla:
                score.fallas += 1
            results[player.nickname] = HandResult(pts=pts, total=score.points, bid=bid, won=won, falla=falla)

        record = HandRecord(hand_num=state.current_hand_index + 1, card_count=self.hand_size(), results=results)
        state.history.append(record)
        state.current_hand_index += 1
        state.is_hand_in_progress = False

        events: List[Event] = [
            {
                "ev": "HAND_FINISHED",
                "scores": self._scores_payload(),
                "current_hand_index": state.current_hand_index,
                "last_hand_result": record_to_dict(record),
            }
        ]
        if self.is_tournament_over():
            events.append({"ev": "TOURNAMENT_OVER", "standings": self.standings()})
        return events

    def standings(self) -> List[Dict[str, object]]:
        return rank_players(self.state.scores)

    # Snapshot / restore ----------------------------------------------

    def snapshot(self) -> GameState:
        return copy.deepcopy(self.state)

    def restore(self, state: GameState) -> None:
        validate_state(state)
        self.state = copy.deepcopy(state)

    # Public payloads -------------------------------------------------

    def table_state(self) -> Dict[str, object]:
        # Everything observers may see; hands are sent privately.
        state = self.state
        return {
            "players": [
                {
                    "nickname": player.nickname,
                    "seat": player.seat_index,
                    "connected": player.connected,
                    "cards_in_hand": len(player.hand),
                }
                for player in state.seated_players
            ],
            "current_hand_index": state.current_hand_index,
            "hand_size": self.hand_size(),
            "phase": hand_phase(state.current_hand_index) if not self.is_tournament_over() else None,
            "in_hand": state.is_hand_in_progress,
            "bid_phase": self.bidding_phase().value,
            "dealer": self._name_at(self.dealer_seat()),
            "next_player": self._next_player_name(),
            "bids": dict(state.bids),
            "forbidden_bid": self.forbidden_bid(),
            "tricks_won": dict(state.tricks_won),
            "cards_on_table": [play_to_dict(play) for play in state.cards_on_table],
            "last_trick": [play_to_dict(play) for play in state.last_trick] if state.last_trick else None,
            "trump": state.trump_card.label if state.trump_card else None,
            "scores": self._scores_payload(),
            "history": [record_to_dict(record) for record in state.history],
            "tournament_over": self.is_tournament_over(),
        }

    def hand_payload(self, nickname: str) -> Optional[Dict[str, object]]:
        player = self.find_player(nickname)
        if player is None:
            return None
        payload: Dict[str, object] = {
            "nickname": player.nickname,
            "seat": player.seat_index,
            "cards": [card.label for card in player.hand],
        }
        current = self.current_player()
        if current is player and self.bidding_phase() == BidPhase.BIDS_COMPLETE and not self.state.awaiting_clear:
            payload["legal"] = [card.label for card in self.legal_cards(nickname)]
        return payload

    def _scores_payload(self) -> Dict[str, Dict[str, int]]:
        return {nickname: score_to_dict(score) for nickname, score in self.state.scores.items()}

    def _require_turn(self, nickname: str) -> Player:
        player = self.current_player()
        if player is None or player.nickname != nickname:
            raise RejectedAction("OUT_OF_TURN", "Not your turn")
        return player

    def _name_at(self, seat_index: int) -> Optional[str]:
        player = self.player_at(seat_index)
        return player.nickname if player else None

    def _next_player_name(self) -> Optional[str]:
        if not self.state.is_hand_in_progress:
            return None
        return self._name_at(self.state.turn_index)
