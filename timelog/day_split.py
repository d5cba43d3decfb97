"""
Local-day arithmetic and the day splitter.

Midnights are computed from the civil date in an IANA zone, so the UTC offset
is looked up per instant and days that are 23 or 25 hours long (DST changes)
are cut at the right moment. All returned instants are UTC.
"""

import datetime as dt
from dataclasses import replace
from typing import Iterable, List, Optional

from .models import CalendarBlock
from .tz import resolve_tz

# Sub-blocks end one millisecond before the midnight that starts the next one
SLICE_EPSILON = dt.timedelta(milliseconds=1)


def _midnight_of(day: dt.date, tz: dt.tzinfo) -> dt.datetime:
    return dt.datetime(day.year, day.month, day.day, tzinfo=tz).astimezone(dt.timezone.utc)


def local_date(ts: dt.datetime, tz: Optional[dt.tzinfo] = None) -> dt.date:
    return ts.astimezone(tz or resolve_tz()).date()


def local_midnight(ts: dt.datetime, tz: Optional[dt.tzinfo] = None) -> dt.datetime:
    """UTC instant of the local midnight starting the day that contains `ts`."""
    tz = tz or resolve_tz()
    return _midnight_of(ts.astimezone(tz).date(), tz)


def next_local_midnight(ts: dt.datetime, tz: Optional[dt.tzinfo] = None) -> dt.datetime:
    """UTC instant of the first local midnight strictly after `ts`."""
    tz = tz or resolve_tz()
    return _midnight_of(ts.astimezone(tz).date() + dt.timedelta(days=1), tz)


def split_by_local_day(blocks: Iterable[CalendarBlock], tz: Optional[dt.tzinfo] = None) -> List[CalendarBlock]:
    """
    Cut every block at each local midnight it spans.

    Each piece covers ``[piece_start, min(block.end, next_midnight - 1ms)]`` and the
    following piece starts at that midnight, so the pieces tile the block at
    millisecond resolution and never cross a day. Empty blocks are dropped;
    a block starting in the last millisecond of a day keeps a zero-length piece.
    """
    tz = tz or resolve_tz()
    out: List[CalendarBlock] = []
    for block in blocks:
        start, end = block.start, block.end
        while start < end:
            midnight = next_local_midnight(start, tz)
            # A start in the last millisecond of a day still gets its piece
            slice_end = max(start, min(end, midnight - SLICE_EPSILON))
            out.append(replace(block, start=start, end=slice_end))
            start = midnight
    return out


def start_of_week(ts: dt.datetime, tz: Optional[dt.tzinfo] = None) -> dt.datetime:
    """Monday 00:00 local of the week containing `ts`, as UTC."""
    tz = tz or resolve_tz()
    day = ts.astimezone(tz).date()
    return _midnight_of(day - dt.timedelta(days=day.weekday()), tz)


def week_days(week_start: dt.datetime, tz: Optional[dt.tzinfo] = None, count: int = 7) -> List[dt.datetime]:
    """Local midnights (UTC instants) of `count` consecutive days from `week_start`."""
    tz = tz or resolve_tz()
    first = week_start.astimezone(tz).date()
    return [_midnight_of(first + dt.timedelta(days=i), tz) for i in range(count)]


def format_day_label(day: dt.datetime, tz: Optional[dt.tzinfo] = None) -> str:
    """Column heading such as 'Mon 1 Jan'."""
    local = day.astimezone(tz or resolve_tz())
    return f"{local:%a} {local.day} {local:%b}"
