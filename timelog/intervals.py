"""
Interval merging for the idle and sleep signals.

A signal is read from a time-ordered stream of entries through a selector:
``True`` means the signal is active at that entry, ``False`` inactive and
``None`` that the entry says nothing about the signal (it is skipped). Runs of
active entries collapse into half-open intervals.
"""

import datetime as dt
import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from . import config
from .models import Interval

logger = logging.getLogger(__name__)

Selector = Callable[[Any], Optional[bool]]


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def union_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort by start and merge intervals that touch or overlap; empty ones are dropped.

    The first interval of a merged run keeps its `entry`.
    """
    xs = sorted((iv for iv in intervals if iv.end > iv.start), key=lambda iv: iv.start)
    if not xs:
        return []
    out: List[Interval] = [xs[0]]
    for iv in xs[1:]:
        last = out[-1]
        if iv.start <= last.end:
            if iv.end > last.end:
                out[-1] = Interval(last.start, iv.end, last.entry)
        else:
            out.append(iv)
    return out


def merge_intervals(
    entries: Sequence[Any],
    selector: Selector,
    now: Optional[dt.datetime] = None,
    orphan_lookback: Optional[dt.timedelta] = None,
) -> List[Interval]:
    """
    Collapse a time-ordered entry stream into the intervals where `selector` is active.

    Args:
        entries: Objects with a `start` datetime, ordered by start.
        selector: Maps an entry to True/False/None (active, inactive, no signal).
        now: End for an interval still open after the last entry.
        orphan_lookback: When set, an inactive entry with nothing open produces
            `[stop - orphan_lookback, stop)` where `stop` is the entry's end (its
            start when it has none), clipped to the end of the previous interval.
            Used for sleep stops whose start was never logged.

    Returns:
        Disjoint intervals sorted by start.
    """
    now = now or _now()
    out: List[Interval] = []
    open_start: Optional[dt.datetime] = None
    open_entry: Any = None

    for entry in entries:
        active = selector(entry)
        if active is None:
            continue
        if active:
            if open_start is None:
                open_start, open_entry = entry.start, entry
            continue

        if open_start is not None:
            out.append(Interval(open_start, entry.start, open_entry))
            open_start, open_entry = None, None
        elif orphan_lookback is not None:
            # The synthesized interval runs to the end of the stop row itself
            stop = getattr(entry, "end", None) or entry.start
            start = stop - orphan_lookback
            if out and out[-1].end > start:
                start = out[-1].end
            logger.debug(f"Synthesizing interval for unmatched stop at {entry.start.isoformat()}")
            out.append(Interval(start, stop, entry))

    if open_start is not None:
        out.append(Interval(open_start, max(open_start, now), open_entry))

    return union_intervals(out)


def is_idle(entry: Any) -> Optional[bool]:
    return bool(entry.is_idle)


def is_asleep(entry: Any) -> Optional[bool]:
    """sleep_start opens, sleep_stop closes, rows without a sleep state are ignored."""
    if not entry.sleep_state:
        return None
    return entry.sleep_state == config.SLEEP_START
