"""Sleep detection strategies.

Sleep is not observed directly: the monitor logs a ``sleep_start``/``sleep_stop``
pair when two polls are further apart than expected. The detector turns those
markers into intervals. Another strategy (for example real OS power events)
can replace `MarkerSleepDetector` without touching the interval merger.
"""

import datetime as dt
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from . import config
from .intervals import is_asleep, merge_intervals
from .models import Interval, SystemEntry


class SleepDetector(ABC):
    """Produces sleep intervals from the system log."""

    @abstractmethod
    def sleep_intervals(self, entries: Sequence[SystemEntry], now: Optional[dt.datetime] = None) -> List[Interval]:
        raise NotImplementedError


class MarkerSleepDetector(SleepDetector):
    """Pairs sleep_start/sleep_stop markers.

    A stop with no matching start (the log began mid-sleep) yields a sleep of
    `lookback` before the stop. That bound is a guess, not a measurement:
    callers needing exact durations should clip it to their data window.
    """

    def __init__(self, lookback: dt.timedelta = dt.timedelta(days=config.SLEEP_LOOKBACK_DAYS)):
        self.lookback = lookback

    def sleep_intervals(self, entries: Sequence[SystemEntry], now: Optional[dt.datetime] = None) -> List[Interval]:
        return merge_intervals(entries, is_asleep, now=now, orphan_lookback=self.lookback)


def detect_sleep_gap(
    last_poll: Optional[dt.datetime],
    now: dt.datetime,
    poll_interval: dt.timedelta,
    factor: int = config.SLEEP_GAP_FACTOR,
) -> bool:
    """True when the time since the previous poll means the machine was suspended."""
    if last_poll is None:
        return False
    return now - last_poll > poll_interval * factor
