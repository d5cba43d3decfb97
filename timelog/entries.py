"""
Typed-entry constructors for the three change logs.

Raw rows come from the CSV loader as a pandas DataFrame (or anything
``pd.DataFrame`` accepts, e.g. a list of dicts). Malformed rows, such as an
unparseable timestamp or a non-numeric pid/cpu/memory, are dropped with a
warning instead of failing the whole batch.
"""

import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from . import config
from .day_split import local_date
from .models import FocusedEntry, ProcessEntryBlock, ProcessSample, SystemEntry
from .tz import resolve_tz

logger = logging.getLogger(__name__)

Rows = Union[pd.DataFrame, Iterable[Dict[str, Any]]]

_SLEEP_STATES = {config.SLEEP_START, config.SLEEP_STOP}


def _frame(rows: Rows, columns: List[str]) -> pd.DataFrame:
    df = rows.copy() if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df


def parse_timestamps(values: pd.Series) -> pd.Series:
    """Parse ISO 8601 strings (or datetimes) to UTC timestamps; bad values become NaT."""
    if pd.api.types.is_datetime64_any_dtype(values):
        if getattr(values.dt, "tz", None) is None:
            return values.dt.tz_localize("UTC")
        return values.dt.tz_convert("UTC")
    return pd.to_datetime(values, utc=True, errors="coerce", format="ISO8601")


def _drop_bad(df: pd.DataFrame, mask: pd.Series, kind: str, reason: str) -> pd.DataFrame:
    bad = int((~mask).sum())
    if bad:
        logger.warning(f"Skipping {bad} malformed {kind} row(s): {reason}")
    return df[mask].copy()


def _with_times(df: pd.DataFrame, kind: str) -> pd.DataFrame:
    """Parse `timestamp` into `start`, drop bad rows, sort, and synthesize `end` if missing."""
    df["start"] = parse_timestamps(df["timestamp"])
    df = _drop_bad(df, df["start"].notna(), kind, "unparseable timestamp")
    df = df.sort_values("start", kind="mergesort").reset_index(drop=True)
    if "end" in df.columns:
        df["end"] = parse_timestamps(df["end"])
    else:
        df["end"] = df["start"].shift(-1)
    return df


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None or pd.isna(value):
        return ""
    return str(value)


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return _text(value).strip().lower() == "true"


def _py(ts: Any) -> Optional[dt.datetime]:
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def convert_focused_entries(rows: Rows) -> List[FocusedEntry]:
    """Rows of `timestamp,title,process,path,url` -> FocusedEntry list; each end is the next start."""
    df = _frame(rows, config.FOCUSED_COLUMNS)
    if df.empty:
        return []
    df = _with_times(df, "focused")
    # End always follows the next row, never a stale 'end' column
    df["end"] = df["start"].shift(-1)

    entries: List[FocusedEntry] = []
    for rec in df.to_dict("records"):
        entries.append(FocusedEntry(
            start=_py(rec["start"]),
            end=_py(rec["end"]),
            title=_text(rec["title"]),
            process=_text(rec["process"]),
            path=_text(rec["path"]),
            url=_text(rec["url"]) or None,
        ))
    return entries


def convert_system_entries(rows: Rows) -> List[SystemEntry]:
    """Rows of `timestamp,isIdle,isLocked,sleepState` -> SystemEntry list."""
    df = _frame(rows, config.SYSTEM_COLUMNS)
    if df.empty:
        return []
    df = _with_times(df, "system")

    entries: List[SystemEntry] = []
    for rec in df.to_dict("records"):
        sleep_state = _text(rec["sleepState"]).strip()
        entries.append(SystemEntry(
            start=_py(rec["start"]),
            end=_py(rec["end"]),
            is_idle=_flag(rec["isIdle"]),
            is_locked=_flag(rec["isLocked"]),
            sleep_state=sleep_state if sleep_state in _SLEEP_STATES else None,
        ))
    return entries


def convert_process_samples(rows: Rows) -> List[ProcessSample]:
    """Rows of `timestamp,pid,name,cpu,memory,status,started,unresponsive` -> ProcessSample list."""
    df = _frame(rows, config.PROCESS_COLUMNS)
    if df.empty:
        return []
    df = _with_times(df, "process")

    df["pid"] = df["pid"].map(_text).str.strip()
    df = _drop_bad(df, df["pid"] != "", "process", "missing pid")
    for col in ("cpu", "memory"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df = _drop_bad(df, df["cpu"].notna() & df["memory"].notna(), "process", "non-numeric cpu/memory")
    df["started_ts"] = parse_timestamps(df["started"])

    samples: List[ProcessSample] = []
    for rec in df.to_dict("records"):
        samples.append(ProcessSample(
            time=_py(rec["start"]),
            pid=rec["pid"],
            name=_text(rec["name"]),
            cpu=float(rec["cpu"]),
            memory=int(rec["memory"]),
            started=_py(rec["started_ts"]),
            status=_text(rec["status"]),
            unresponsive=_flag(rec["unresponsive"]),
        ))
    return samples


def consolidate_process_entries(
    samples: Union[Rows, List[ProcessSample]],
    tz: Optional[dt.tzinfo] = None,
) -> List[ProcessEntryBlock]:
    """
    Group process samples into one block per (pid, process start time, local calendar date).

    Args:
        samples: ProcessSample objects, or raw process rows to convert first.
        tz: Zone used for the calendar date; defaults to the configured zone.

    Returns:
        ProcessEntryBlock list in first-seen order. `start`/`end` are the
        first/last sample time of each block.
    """
    if isinstance(samples, pd.DataFrame) or (
        isinstance(samples, list) and samples and not isinstance(samples[0], ProcessSample)
    ):
        samples = convert_process_samples(samples)
    tz = tz or resolve_tz()

    consolidated: Dict[Tuple[str, Optional[dt.datetime], dt.date], ProcessEntryBlock] = {}
    for sample in sorted(samples, key=lambda s: s.time):
        key = (sample.pid, sample.started, local_date(sample.time, tz))
        block = consolidated.get(key)
        if block:
            block.add(sample)
        else:
            consolidated[key] = ProcessEntryBlock.from_sample(sample)
    return list(consolidated.values())
