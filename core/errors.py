from __future__ import annotations


class EngineError(Exception):
    """Base class for everything the Podrida engine raises on purpose."""

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


class RejectedAction(EngineError, ValueError):
    """Out-of-turn, illegal or badly timed request. State is left untouched."""


class IllegalBid(RejectedAction):
    """Bid outside 0..hand size, or the value that would make the bids add up."""


class InvariantViolation(EngineError, RuntimeError):
    """A state that breaks the table invariants; never adopted."""

    def __init__(self, msg: str) -> None:
        super().__init__("INVARIANT_VIOLATION", msg)
