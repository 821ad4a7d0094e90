"""Shared helpers for the in-memory sliding-window counters.

The attempt tracker, the in-memory ban store and the request rate limiter all
keep a plain ``dict`` keyed by client identity and drop stale entries lazily
from inside their own operations. The purge loop lives here so the three
counters agree on what "stale" means.
"""
import time
from collections.abc import Callable, MutableMapping
from typing import TypeVar

Clock = Callable[[], int]

_V = TypeVar("_V")


def now_ms() -> int:
    return int(time.time() * 1000)


def purge_expired(
    records: MutableMapping[str, _V],
    is_expired: Callable[[_V], bool],
) -> int:
    """Remove every record for which ``is_expired`` is true; returns how many went."""
    stale = [key for key, record in records.items() if is_expired(record)]
    for key in stale:
        del records[key]
    return len(stale)
