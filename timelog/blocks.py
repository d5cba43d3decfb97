"""
Block builders: typed entries -> day-split CalendarBlocks.

One builder per log kind. Entries left open at the end of a log (no next row
yet) are capped so they never extend past "now".
"""

import datetime as dt
import logging
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from . import config
from .day_split import next_local_midnight, split_by_local_day
from .intervals import is_idle, merge_intervals
from .models import BlockKind, CalendarBlock, FocusedEntry, ProcessEntryBlock, SystemEntry, ViewRange
from .sleep import MarkerSleepDetector, SleepDetector
from .tz import resolve_tz

logger = logging.getLogger(__name__)

OPEN_ENTRY_CAP = dt.timedelta(days=config.OPEN_ENTRY_CAP_DAYS)

IDLE_LABEL = "Idle"
SLEEP_LABEL = "Sleep"


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def get_focused_blocks(
    entries: Sequence[FocusedEntry],
    view_range: ViewRange,
    now: Optional[dt.datetime] = None,
    tz: Optional[dt.tzinfo] = None,
) -> List[CalendarBlock]:
    """Focused-window blocks; the last, still open entry runs until now (at most one day past the view)."""
    now = now or _now()
    open_end = min(now, view_range.end + OPEN_ENTRY_CAP)

    blocks: List[CalendarBlock] = []
    for entry in entries:
        end = entry.end or open_end
        if end <= entry.start:
            continue
        blocks.append(CalendarBlock(BlockKind.FOCUSED, entry.start, end, entry.label(), entry))
    return split_by_local_day(blocks, tz or resolve_tz())


def get_process_blocks(
    entries: Sequence[ProcessEntryBlock],
    now: Optional[dt.datetime] = None,
    tz: Optional[dt.tzinfo] = None,
) -> List[CalendarBlock]:
    """Process blocks, one per consolidated run.

    A run spans its first to its last sample; a single-sample run has no
    extent and is dropped. A run without an end runs until now, at most one
    day past its last sample.
    """
    now = now or _now()
    blocks: List[CalendarBlock] = []
    for entry in entries:
        end = entry.end
        if end is None:
            end = min(now, entry.timestamps[-1] + OPEN_ENTRY_CAP)
        if end <= entry.start:
            logger.debug(f"Skipping single-sample run of {entry.name} ({entry.pid}) at {entry.start.isoformat()}")
            continue
        blocks.append(CalendarBlock(BlockKind.PROCESS, entry.start, end, entry.name or entry.pid, entry))
    return split_by_local_day(blocks, tz or resolve_tz())


def get_system_blocks(
    entries: Sequence[SystemEntry],
    now: Optional[dt.datetime] = None,
    tz: Optional[dt.tzinfo] = None,
    sleep_detector: Optional[SleepDetector] = None,
) -> List[CalendarBlock]:
    """Idle and Sleep blocks. The two may overlap; the renderer layers them."""
    now = now or _now()
    sleep_detector = sleep_detector or MarkerSleepDetector()

    blocks: List[CalendarBlock] = [
        CalendarBlock(BlockKind.SYSTEM, iv.start, iv.end, IDLE_LABEL, iv.entry)
        for iv in merge_intervals(entries, is_idle, now=now)
    ]
    blocks.extend(
        CalendarBlock(BlockKind.SYSTEM, iv.start, iv.end, SLEEP_LABEL, iv.entry)
        for iv in sleep_detector.sleep_intervals(entries, now=now)
    )
    return split_by_local_day(blocks, tz or resolve_tz())


def blocks_for_day(
    blocks: Iterable[CalendarBlock],
    day_start: dt.datetime,
    tz: Optional[dt.tzinfo] = None,
) -> List[CalendarBlock]:
    """Blocks starting within the local day that begins at `day_start`, sorted by start."""
    day_end = next_local_midnight(day_start, tz or resolve_tz())
    return sorted((b for b in blocks if day_start <= b.start < day_end), key=lambda b: b.start)


def summarize_blocks(blocks: Iterable[CalendarBlock]) -> pd.DataFrame:
    """Total minutes per (kind, label), longest first."""
    rows = [
        {"kind": b.kind.value, "label": b.label, "minutes": b.duration.total_seconds() / 60}
        for b in blocks
    ]
    if not rows:
        return pd.DataFrame(columns=["kind", "label", "minutes", "blocks"])
    df = pd.DataFrame(rows)
    summary = (
        df.groupby(["kind", "label"])
        .agg(minutes=("minutes", "sum"), blocks=("minutes", "size"))
        .reset_index()
        .sort_values("minutes", ascending=False)
        .reset_index(drop=True)
    )
    summary["minutes"] = summary["minutes"].round(1)
    return summary
