import argparse
import asyncio
import logging
import os

from core.models import LeavePolicy, SeatOrder, TableConfig
from core.persistence import StateStore
from .server import HostServer


def main() -> None:
    # CLI doubles as documentation for the table policies.
    parser = argparse.ArgumentParser(description="Podrida tournament host server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 3000)))
    parser.add_argument(
        "--state-file",
        default="podrida_state.json",
        help="Snapshot written after every accepted action and restored on start",
    )
    parser.add_argument("--fresh", action="store_true", help="Ignore any saved snapshot and start a new tournament")
    parser.add_argument(
        "--leave-policy",
        choices=[policy.value for policy in LeavePolicy],
        default=LeavePolicy.RETAIN.value,
        help="RETAIN keeps disconnected players seated; REMOVE frees their seat before the first deal",
    )
    parser.add_argument(
        "--seat-order",
        choices=[order.value for order in SeatOrder],
        default=SeatOrder.INSERTION.value,
        help="RANDOM shuffles the seats once when the fifth player sits down",
    )
    parser.add_argument(
        "--clear-delay-ms",
        type=int,
        default=2_500,
        help="How long a finished trick stays on the table before it is cleared",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for shuffles (testing only)")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = TableConfig(
        leave_policy=LeavePolicy(args.leave_policy),
        seat_order=SeatOrder(args.seat_order),
        clear_delay_ms=args.clear_delay_ms,
        seed=args.seed,
    )
    store = StateStore(args.state_file)
    if args.fresh:
        store.clear()

    server = HostServer(config, store=store)
    server.load_state()
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
