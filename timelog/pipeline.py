"""One render pass: raw log frames -> blocks -> lanes -> rectangles.

Nothing here keeps state between calls; the whole week is rebuilt from the
entry set every time the view changes.
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .blocks import get_focused_blocks, get_process_blocks, get_system_blocks
from .day_split import week_days
from .entries import consolidate_process_entries, convert_focused_entries, convert_system_entries
from .geometry import CalendarAxis, Rect, block_rect
from .lanes import assign_lanes, lane_count, process_key
from .models import CalendarBlock, ViewRange
from .sleep import SleepDetector
from .tz import resolve_tz

logger = logging.getLogger(__name__)


@dataclass
class WeekLayout:
    view_range: ViewRange
    days: List[dt.datetime]
    focused: List[CalendarBlock] = field(default_factory=list)
    processes: List[CalendarBlock] = field(default_factory=list)
    system: List[CalendarBlock] = field(default_factory=list)
    lanes: Dict[str, int] = field(default_factory=dict)

    @property
    def all_blocks(self) -> List[CalendarBlock]:
        return self.system + self.focused + self.processes

    def rects(self, axis: CalendarAxis, tracks: Optional[Iterable[str]] = None) -> List[Rect]:
        """Rectangles for the chosen tracks ("system", "focused", "process"), system first."""
        wanted = set(tracks) if tracks is not None else {"system", "focused", "process"}
        rects: List[Rect] = []
        lanes_total = lane_count(self.lanes)
        if "system" in wanted:
            rects.extend(r for r in (block_rect(axis, b) for b in self.system) if r)
        if "focused" in wanted:
            rects.extend(r for r in (block_rect(axis, b) for b in self.focused) if r)
        if "process" in wanted:
            for block in self.processes:
                rect = block_rect(axis, block, lane=self.lanes.get(process_key(block), 0), lanes=lanes_total)
                if rect:
                    rects.append(rect)
        return rects


def build_week(
    focused_rows: pd.DataFrame,
    process_rows: pd.DataFrame,
    system_rows: pd.DataFrame,
    week_start: dt.datetime,
    now: Optional[dt.datetime] = None,
    tz: Optional[dt.tzinfo] = None,
    sleep_detector: Optional[SleepDetector] = None,
    day_count: int = 7,
) -> WeekLayout:
    """Build every block of the week starting at `week_start` (a local midnight)."""
    tz = tz or resolve_tz()
    days = week_days(week_start, tz, count=day_count)
    view_range = ViewRange.from_days(days)

    focused = get_focused_blocks(convert_focused_entries(focused_rows), view_range, now=now, tz=tz)
    processes = get_process_blocks(consolidate_process_entries(process_rows, tz=tz), now=now, tz=tz)
    system = get_system_blocks(convert_system_entries(system_rows), now=now, tz=tz, sleep_detector=sleep_detector)
    lanes = assign_lanes(processes)

    logger.debug(
        f"Week {days[0].date()} built: {len(focused)} focused, {len(processes)} process, {len(system)} system blocks"
    )
    return WeekLayout(view_range, days, focused, processes, system, lanes)
