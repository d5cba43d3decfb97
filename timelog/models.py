"""Data models for change-log entries and calendar blocks"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional, Union


@dataclass(frozen=True)
class FocusedEntry:
    """Focused window between `start` and the next entry's start (open when end is None)"""
    start: datetime
    end: Optional[datetime]
    title: str
    process: str
    path: str
    url: Optional[str] = None

    def label(self) -> str:
        return self.title or self.process or self.path or self.url or ""


@dataclass(frozen=True)
class ProcessSample:
    """One change-log row for a watched process"""
    time: datetime
    pid: str
    name: str
    cpu: float
    memory: int
    started: Optional[datetime] = None
    status: str = ""
    unresponsive: bool = False


@dataclass
class ProcessEntryBlock:
    """Consecutive samples of one process instance on one local day"""
    pid: str
    name: str
    started: Optional[datetime]
    start: datetime
    end: Optional[datetime]
    timestamps: List[datetime] = field(default_factory=list)
    cpu: List[float] = field(default_factory=list)
    memory: List[int] = field(default_factory=list)

    @classmethod
    def from_sample(cls, sample: ProcessSample) -> "ProcessEntryBlock":
        return cls(
            pid=sample.pid,
            name=sample.name,
            started=sample.started,
            start=sample.time,
            end=sample.time,
            timestamps=[sample.time],
            cpu=[sample.cpu],
            memory=[sample.memory],
        )

    def add(self, sample: ProcessSample) -> None:
        self.timestamps.append(sample.time)
        self.cpu.append(sample.cpu)
        self.memory.append(sample.memory)
        self.end = sample.time


@dataclass(frozen=True)
class SystemEntry:
    """Idle and sleep signals multiplexed onto one row"""
    start: datetime
    end: Optional[datetime]
    is_idle: bool
    is_locked: bool = False
    sleep_state: Optional[str] = None  # 'sleep_start' | 'sleep_stop'


Entry = Union[FocusedEntry, ProcessEntryBlock, SystemEntry]


class BlockKind(str, Enum):
    FOCUSED = "focused"
    PROCESS = "process"
    SYSTEM = "system"


@dataclass(frozen=True)
class CalendarBlock:
    """A labelled, day-bounded time range ready for layout.

    `kind` tells the renderer which track the block belongs to; `entry` is the
    source entry (FocusedEntry, ProcessEntryBlock or SystemEntry).
    """
    kind: BlockKind
    start: datetime
    end: datetime
    label: str
    entry: Optional[Entry] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "CalendarBlock") -> bool:
        return self.start < other.end and self.end > other.start


@dataclass(frozen=True)
class Interval:
    """Half-open [start, end) range; `entry` is the row that opened it"""
    start: datetime
    end: datetime
    entry: Optional[Any] = None


@dataclass(frozen=True)
class ViewRange:
    """Visible calendar days: `start` is the first day's midnight, `end` the last day's midnight"""
    start: datetime
    end: datetime

    @classmethod
    def from_days(cls, days: List[datetime]) -> "ViewRange":
        if not days:
            raise ValueError("ViewRange needs at least one day")
        return cls(start=days[0], end=days[-1])

    @property
    def stop(self) -> datetime:
        """Exclusive end of the last visible day"""
        return self.end + timedelta(days=1)
