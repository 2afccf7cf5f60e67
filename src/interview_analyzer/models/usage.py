"""
Run-scoped API usage accounting.

The orchestrator opens a `metered()` scope for each run. External adapters call
`record_usage()` after each call; the counts land in the meter of whichever run
is active in the current asyncio context, so concurrent runs sharing one client
never mix their numbers.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

_current_meter: ContextVar["UsageMeter | None"] = ContextVar("usage_meter", default=None)


@dataclass
class UsageMeter:
    """Mutable call and token counters for one run."""

    api_calls: int = 0
    tokens: int = 0

    def record(self, calls: int = 1, tokens: int = 0) -> None:
        self.api_calls += calls
        self.tokens += tokens


@contextmanager
def metered() -> Iterator[UsageMeter]:
    """Bind a fresh meter to the current context for the duration of the block."""
    meter = UsageMeter()
    token = _current_meter.set(meter)
    try:
        yield meter
    finally:
        _current_meter.reset(token)


def record_usage(calls: int = 1, tokens: int = 0) -> None:
    """Add usage to the active meter; a no-op outside a metered scope."""
    meter = _current_meter.get()
    if meter is not None:
        meter.record(calls, tokens)


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token) for backends that report none."""
    return (len(text) + 3) // 4
