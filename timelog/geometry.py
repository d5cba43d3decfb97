"""
Calendar geometry: timestamps -> pixel positions in the weekly view.

The y axis is a linear scale from the visible time-of-day window onto
``[label_height, view_height - label_height]``; each day is a column of
`day_column_width` pixels. Blocks passed in must already be day-split, and
process blocks lane-assigned.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .models import BlockKind, CalendarBlock
from .tz import resolve_tz

# Renderers skip slivers of this height or less
MIN_BLOCK_HEIGHT = 1.0

# Horizontal share of a day column per track, as (start, end) fractions
TRACK_SPAN: Dict[BlockKind, Tuple[float, float]] = {
    BlockKind.SYSTEM: (0.0, 1.0),
    BlockKind.FOCUSED: (0.0, 0.5),
    BlockKind.PROCESS: (0.5, 1.0),
}


@dataclass
class CalendarAxis:
    days: List[dt.datetime]
    visible_start_hour: float = 0.0
    visible_end_hour: float = 24.0
    view_height: float = 800.0
    label_height: float = 30.0
    day_column_width: float = 140.0
    left_gutter: float = 50.0
    tz: dt.tzinfo = field(default_factory=resolve_tz)

    def __post_init__(self):
        if self.visible_end_hour <= self.visible_start_hour:
            raise ValueError("visible_end_hour must be after visible_start_hour")

    @property
    def day_dates(self) -> List[dt.date]:
        return [d.astimezone(self.tz).date() for d in self.days]

    @property
    def width(self) -> float:
        return self.left_gutter + self.day_column_width * len(self.days)


@dataclass(frozen=True)
class Rect:
    day_index: int
    x: float
    y: float
    width: float
    height: float
    block: CalendarBlock


def seconds_of_day(ts: dt.datetime, tz: dt.tzinfo) -> float:
    """Local wall-clock time of day in seconds."""
    local = ts.astimezone(tz)
    return local.hour * 3600 + local.minute * 60 + local.second + local.microsecond / 1e6


def hour_to_y(axis: CalendarAxis, hour: float) -> float:
    """Linear scale from the visible hours onto the drawable height."""
    top = axis.label_height
    bottom = axis.view_height - axis.label_height
    span = axis.visible_end_hour - axis.visible_start_hour
    return top + (hour - axis.visible_start_hour) / span * (bottom - top)


def time_to_y(axis: CalendarAxis, ts: dt.datetime) -> float:
    return hour_to_y(axis, seconds_of_day(ts, axis.tz) / 3600)


def _clamp_y(axis: CalendarAxis, y: float) -> float:
    return max(axis.label_height, min(axis.view_height - axis.label_height, y))


def block_height(axis: CalendarAxis, start: dt.datetime, end: dt.datetime) -> float:
    """Visible height of [start, end] on one day column.

    Across a repeated wall-clock hour (DST fall-back) the end may map above
    the start; the block is then drawn with its real duration instead.
    """
    y0 = time_to_y(axis, start)
    y1 = time_to_y(axis, end)
    if y1 < y0:
        hours = (end - start).total_seconds() / 3600
        y1 = y0 + hours / (axis.visible_end_hour - axis.visible_start_hour) * (axis.view_height - 2 * axis.label_height)
    return _clamp_y(axis, y1) - _clamp_y(axis, y0)


def day_index(axis: CalendarAxis, ts: dt.datetime) -> Optional[int]:
    """Column of the local day containing `ts`, or None when it is not shown."""
    day = ts.astimezone(axis.tz).date()
    try:
        return axis.day_dates.index(day)
    except ValueError:
        return None


def time_to_xy(axis: CalendarAxis, ts: dt.datetime) -> Optional[Tuple[float, float]]:
    """Left edge of the day column and y position of `ts`."""
    index = day_index(axis, ts)
    if index is None:
        return None
    return axis.left_gutter + index * axis.day_column_width, time_to_y(axis, ts)


def block_rect(
    axis: CalendarAxis,
    block: CalendarBlock,
    lane: Optional[int] = None,
    lanes: int = 1,
) -> Optional[Rect]:
    """
    Rectangle for one block, or None when it falls outside the shown days or
    the visible hours, or is too thin to draw.

    Process blocks are narrowed to `lane` out of `lanes` columns within the
    process track.
    """
    index = day_index(axis, block.start)
    if index is None:
        return None
    y = _clamp_y(axis, time_to_y(axis, block.start))
    height = block_height(axis, block.start, block.end)
    if height <= MIN_BLOCK_HEIGHT:
        return None

    span_start, span_end = TRACK_SPAN[block.kind]
    column_x = axis.left_gutter + index * axis.day_column_width
    x = column_x + span_start * axis.day_column_width
    width = (span_end - span_start) * axis.day_column_width
    if block.kind == BlockKind.PROCESS:
        lanes = max(1, lanes)
        lane = min(max(0, lane or 0), lanes - 1)
        width = width / lanes
        x += lane * width

    return Rect(index, x, y, width, height, block)
