#!/usr/bin/env python3
"""Simulate a full 21-hand tournament with randomly behaved bots.

This script spins up the tournament host in-process and connects five toy
bots over WebSockets. Each bot bids and plays at random (but legally) so you
can exercise the whole protocol, including the post-trick pause.

Example:
    python scripts/tourney_sim.py --clear-delay-ms 50 --seed 7
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import websockets

from core.models import TABLE_SIZE, TableConfig
from tournament.server import HostServer

LOGGER = logging.getLogger("tourney_sim")


@dataclass
class BotProfile:
    name: str
    rng: random.Random
    starts_hands: bool = False


def choose_bid(table: Dict[str, Any], rng: random.Random) -> int:
    options = list(range(int(table.get("hand_size") or 0) + 1))
    forbidden = table.get("forbidden_bid")
    if forbidden in options and len(options) > 1:
        options.remove(forbidden)
    return rng.choice(options)


def choose_card(hand: Dict[str, Any], rng: random.Random) -> Optional[str]:
    legal: List[str] = list(hand.get("legal") or [])
    return rng.choice(legal) if legal else None


async def run_bot(profile: BotProfile, url: str, stop_event: asyncio.Event) -> None:
    """Connect a single random bot to the host until the tournament ends."""

    try:
        async with websockets.connect(url) as ws:
            await ws.send(json.dumps({"type": "select_player", "v": 1, "nickname": profile.name}))

            bid_sent_for: Optional[int] = None
            played_at: Optional[int] = None
            while not stop_event.is_set():
                try:
                    raw = await asyncio.wait_for(ws.recv(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                except websockets.ConnectionClosed:
                    break

                message = json.loads(raw)
                msg_type = message.get("type")

                if msg_type == "table":
                    if message.get("tournament_over"):
                        stop_event.set()
                        break
                    ready = len(message.get("players", [])) == TABLE_SIZE
                    if profile.starts_hands and ready and not message.get("in_hand"):
                        await ws.send(json.dumps({"type": "start_game", "v": 1}))
                    hand_index = message.get("current_hand_index")
                    if (
                        message.get("bid_phase") == "AWAITING_BID"
                        and message.get("next_player") == profile.name
                        and bid_sent_for != hand_index
                    ):
                        bid = choose_bid(message, profile.rng)
                        await ws.send(json.dumps({"type": "submit_bid", "v": 1, "bid": bid}))
                        bid_sent_for = hand_index

                elif msg_type == "hand":
                    remaining = len(message.get("cards", []))
                    card = choose_card(message, profile.rng)
                    if card is not None and played_at != remaining:
                        await ws.send(json.dumps({"type": "play_card", "v": 1, "card": card}))
                        played_at = remaining
                    if remaining == 0:
                        played_at = None

                elif msg_type == "event" and message.get("ev") == "TOURNAMENT_OVER":
                    LOGGER.info("%s saw final standings: %s", profile.name, message.get("standings"))
                    stop_event.set()
                    break

                elif msg_type == "error":
                    LOGGER.debug("%s received error %s", profile.name, message)

    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Bot %s crashed: %s", profile.name, exc)


async def run_simulation(args: argparse.Namespace) -> None:
    config = TableConfig(clear_delay_ms=args.clear_delay_ms, seed=args.seed)
    host = HostServer(config)

    server_task = asyncio.create_task(host.start(args.host, args.port))
    await asyncio.sleep(0.5)  # give the socket time to bind

    stop_event = asyncio.Event()
    profiles = [
        BotProfile(name=f"SimBot{i}", rng=random.Random(args.seed + i), starts_hands=i == 0)
        for i in range(TABLE_SIZE)
    ]
    bot_tasks = [
        asyncio.create_task(run_bot(profile, f"ws://{args.host}:{args.port}/", stop_event))
        for profile in profiles
    ]

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=args.timeout)
    except asyncio.TimeoutError:
        LOGGER.warning("Simulation timed out at hand index %s", host.engine.state.current_hand_index)
    finally:
        stop_event.set()
        for task in bot_tasks:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.gather(*bot_tasks, return_exceptions=True)
        server_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await server_task

    for row in host.engine.standings():
        LOGGER.info("%s. %s  %s pts  %s fallas", row["place"], row["nickname"], row["points"], row["fallas"])


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a local Podrida tournament with random bots")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9001)
    parser.add_argument("--clear-delay-ms", type=int, default=50)
    parser.add_argument("--timeout", type=float, default=120.0, help="max seconds to run before stopping")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        asyncio.run(run_simulation(args))
    except KeyboardInterrupt:
        LOGGER.info("Simulation interrupted; shutting down")


if __name__ == "__main__":
    main()
