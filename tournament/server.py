from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from core.cards import parse_label
from core.errors import RejectedAction
from core.game import GameEngine
from core.models import TableConfig
from core.persistence import StateStore, decode_state, encode_state

LOGGER = logging.getLogger("podrida_host")

# HostServer glues the Podrida engine to WebSocket clients. Every network,
# timing and storage concern lives here; the GameEngine stays pure.


@dataclass
class ClientSession:
    connection_id: str
    websocket: ServerConnection
    nickname: Optional[str] = None


@dataclass
class PendingClear:
    due: float
    timer_task: Optional[asyncio.Task] = None


def _process_request(connection, request):
    """Answer plain HTTP health checks; let WebSocket upgrades through."""
    if request.headers.get("Upgrade", "").lower() == "websocket":
        return None
    if request.path in {"/", "/health", "/healthz"}:
        return connection.respond(HTTPStatus.OK, "podrida table running\n")
    return connection.respond(HTTPStatus.NOT_FOUND, "not found\n")


class HostServer:
    def __init__(self, config: TableConfig, store: Optional[StateStore] = None) -> None:
        self.engine = GameEngine(config)
        self.store = store
        self.sessions: Dict[str, ClientSession] = {}
        self.pending_clear: Optional[PendingClear] = None
        self.lock = asyncio.Lock()

    def load_state(self) -> bool:
        """Adopt the stored snapshot, if any. A corrupt snapshot raises InvariantViolation."""
        if self.store is None:
            return False
        data = self.store.load()
        if data is None:
            return False
        self.engine.restore(decode_state(data))
        self.engine.release_connections()
        state = self.engine.state
        LOGGER.info(
            "Restored tournament from %s: hand index %s, %s players, in_hand=%s",
            self.store.path,
            state.current_hand_index,
            len(state.seated_players),
            state.is_hand_in_progress,
        )
        return True

    async def start(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        if self.engine.state.awaiting_clear:
            # Snapshot was taken during the post-trick pause.
            self._schedule_clear()
        async with serve(self._handle_connection, host, port, process_request=_process_request):
            LOGGER.info("Podrida table listening on %s:%s", host, port)
            await asyncio.Future()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        session = ClientSession(connection_id=uuid.uuid4().hex, websocket=websocket)
        self.sessions[session.connection_id] = session
        async with self.lock:
            table = self.engine.table_state()
        await self._send_json(websocket, "init_lobby", table)

        try:
            async for raw in websocket:
                await self._dispatch(session, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            self.sessions.pop(session.connection_id, None)
            await self._handle_disconnect(session)

    async def _dispatch(self, session: ClientSession, message: Dict[str, object]) -> None:
        handlers: Dict[str, Callable[[ClientSession, Dict[str, object]], Awaitable[None]]] = {
            "select_player": self._handle_select_player,
            "start_game": self._handle_start_game,
            "submit_bid": self._handle_bid,
            "play_card": self._handle_play,
            "chat": self._handle_chat,
        }
        handler = handlers.get(str(message.get("type")))
        if handler is None:
            await self._send_error(session.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
            return
        await handler(session, message)

    # Seating ---------------------------------------------------------

    async def _handle_select_player(self, session: ClientSession, message: Dict[str, object]) -> None:
        nickname = message.get("nickname")
        if not isinstance(nickname, str) or not nickname.strip():
            await self._send_error(session.websocket, code="BAD_SCHEMA", msg="nickname required")
            return
        if session.nickname is not None:
            await self._send_error(session.websocket, code="ALREADY_SEATED", msg=f"Already playing as {session.nickname}")
            return

        replaced: Optional[ClientSession] = None
        async with self.lock:
            player = self.engine.join(nickname, session.connection_id)
            if player is not None:
                replaced = self._bind_session_locked(session, player.nickname)
                self._persist_locked()

        if replaced is not None:
            await replaced.websocket.close(code=4000, reason="Replaced by new connection")
        if player is None:
            LOGGER.info("Join by %s ignored: table full or hand in progress", nickname.strip())
        else:
            LOGGER.info("Seat %s claimed by %s", player.seat_index, player.nickname)
        await self._publish_table()
        if player is not None:
            await self._send_hand(session)

    def _bind_session_locked(self, session: ClientSession, nickname: str) -> Optional[ClientSession]:
        previous = None
        for other in self.sessions.values():
            if other is not session and other.nickname == nickname:
                other.nickname = None
                previous = other
        session.nickname = nickname
        return previous

    async def _handle_disconnect(self, session: ClientSession) -> None:
        if session.nickname is None:
            return
        async with self.lock:
            player = self.engine.leave(session.connection_id)
            if player is not None:
                self._persist_locked()
        if player is None:
            return
        LOGGER.info("%s (seat %s) disconnected", player.nickname, player.seat_index)
        await self._publish_table()

    # Game actions ----------------------------------------------------

    async def _handle_start_game(self, session: ClientSession, message: Dict[str, object]) -> None:
        if session.nickname is None:
            await self._send_error(session.websocket, code="NOT_SEATED", msg="Select a player first")
            return
        await self._apply(session, "start_game", self.engine.start_hand)

    async def _handle_bid(self, session: ClientSession, message: Dict[str, object]) -> None:
        bid = message.get("bid")
        nickname = session.nickname or ""

        def transition() -> List[Dict[str, object]]:
            current = self.engine.current_player()
            if current is not None and current.nickname == nickname:
                self.engine.check_last_bid(bid)
            return self.engine.submit_bid(nickname, bid)  # type: ignore[arg-type]

        await self._apply(session, "submit_bid", transition)

    async def _handle_play(self, session: ClientSession, message: Dict[str, object]) -> None:
        try:
            card = parse_label(message.get("card"))  # type: ignore[arg-type]
        except ValueError:
            await self._send_error(session.websocket, code="BAD_CARD", msg="Unknown card")
            return
        await self._apply(session, "play_card", lambda: self.engine.play_card(session.nickname or "", card))

    async def _apply(
        self,
        session: ClientSession,
        action_name: str,
        transition: Callable[[], List[Dict[str, object]]],
    ) -> None:
        rejection: Optional[RejectedAction] = None
        async with self.lock:
            try:
                events = transition()
            except RejectedAction as exc:
                rejection = exc
            else:
                self._persist_locked()
                if self.engine.state.awaiting_clear:
                    self._schedule_clear()

        if rejection is not None:
            LOGGER.warning(
                "Rejected %s from %s: %s (%s)",
                action_name,
                session.nickname,
                rejection.code,
                rejection.msg,
            )
            await self._send_error(session.websocket, code=rejection.code, msg=rejection.msg)
            return

        LOGGER.debug("Applied %s from %s: %s", action_name, session.nickname, events)
        for event in events:
            if event["ev"] == "HAND_STARTED":
                LOGGER.info(
                    "Hand %s dealt (%s cards, trump=%s)",
                    event["hand_num"],
                    event["hand_size"],
                    event["trump"],
                )
        await self._broadcast_events(events)
        await self._push_hands()

    async def _handle_chat(self, session: ClientSession, message: Dict[str, object]) -> None:
        text = message.get("text")
        if not isinstance(text, str) or not text.strip():
            await self._send_error(session.websocket, code="BAD_SCHEMA", msg="text required")
            return
        await self._broadcast("chat", {"nickname": session.nickname, "text": text.strip()[:500]})

    # Post-trick pause ------------------------------------------------

    def _schedule_clear(self) -> None:
        if self.pending_clear and self.pending_clear.timer_task:
            self.pending_clear.timer_task.cancel()
        delay = max(self.engine.config.clear_delay_ms, 0) / 1000
        task = asyncio.create_task(self._clear_after(delay))
        self.pending_clear = PendingClear(due=time.monotonic() + delay, timer_task=task)

    async def _clear_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._clear_table()

    async def _clear_table(self) -> None:
        async with self.lock:
            self.pending_clear = None
            events = self.engine.clear_table()
            if not events:
                return
            self._persist_locked()

        await self._broadcast_events(events)
        await self._push_hands()
        for event in events:
            if event["ev"] == "HAND_FINISHED":
                LOGGER.info("Hand finished; scores=%s", event["scores"])
            elif event["ev"] == "TOURNAMENT_OVER":
                LOGGER.info("Tournament over: %s", event["standings"])

    # Persistence -----------------------------------------------------

    def _persist_locked(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(encode_state(self.engine.snapshot()))
        except OSError:
            LOGGER.exception("Could not write snapshot to %s", self.store.path)

    # Messaging -------------------------------------------------------

    async def _broadcast(self, msg_type: str, payload: Dict[str, object]) -> None:
        targets = [session.websocket for session in self.sessions.values()]
        if not targets:
            return
        message = self._envelope(msg_type, payload)
        await asyncio.gather(*(socket.send(message) for socket in targets), return_exceptions=True)

    async def _broadcast_events(self, events: List[Dict[str, object]]) -> None:
        for event in events:
            await self._broadcast("event", event)
        await self._publish_table()

    async def _publish_table(self) -> None:
        async with self.lock:
            table = self.engine.table_state()
        await self._broadcast("table", table)

    async def _push_hands(self) -> None:
        for session in list(self.sessions.values()):
            await self._send_hand(session)

    async def _send_hand(self, session: ClientSession) -> None:
        if session.nickname is None:
            return
        async with self.lock:
            payload = self.engine.hand_payload(session.nickname)
        if payload is not None:
            await self._send_json(session.websocket, "hand", payload)

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body, ensure_ascii=False)

    def _decode(self, raw: str) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return message if isinstance(message, dict) else {}
