"""
Data Utilities for the Timelog Dashboard

This module loads and saves the per-kind change logs (focused, process,
system) used by the dashboard and written by the monitor agent.

Logs are CSV files in LOGS_DIR, or are fetched from a log server when
TIMELOG_LOG_URL is set. Every row's `end` is synthesized here as the next
row's timestamp before the rows reach the calendar code. Read failures are
logged and produce an empty frame so the dashboard shows an empty week
instead of crashing.
"""

import datetime as dt
import io
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd
import requests

from timelog import config
from timelog.entries import parse_timestamps
from timelog.models import ViewRange

logger = logging.getLogger(__name__)

# Define constants for file paths
LOGS_DIR = config.LOG_DIR

# Rows this long before the view are loaded so entries running into the first day keep their start
LEAD_IN = dt.timedelta(days=1)


def log_file_path(kind: str, log_dir: Optional[Path] = None) -> Path:
    return Path(log_dir or LOGS_DIR) / f"{kind}.csv"


def empty_log(kind: str) -> pd.DataFrame:
    return pd.DataFrame(columns=config.LOG_COLUMNS[kind] + ["end"])


def with_end_column(df: pd.DataFrame) -> pd.DataFrame:
    """Add `end` = next row's timestamp (empty for the last row)."""
    df = df.copy()
    df["end"] = df["timestamp"].shift(-1)
    return df


def _check_kind(kind: str) -> None:
    if kind not in config.LOG_COLUMNS:
        raise ValueError(f"Unknown log kind: {kind!r}")


def _filter_range(df: pd.DataFrame, start: Optional[dt.datetime], end: Optional[dt.datetime]) -> pd.DataFrame:
    if df.empty or (start is None and end is None):
        return df
    ts = parse_timestamps(df["timestamp"])
    mask = ts.notna()
    if start is not None:
        mask &= ts >= pd.Timestamp(start - LEAD_IN)
    if end is not None:
        mask &= ts <= pd.Timestamp(end)
    return df[mask].reset_index(drop=True)


def read_log_file(kind: str, log_dir: Optional[Path] = None) -> pd.DataFrame:
    """Read one local log file as strings; missing or unreadable files give an empty frame."""
    _check_kind(kind)
    file_path = log_file_path(kind, log_dir)
    if not file_path.exists():
        return empty_log(kind)
    try:
        return pd.read_csv(file_path, dtype=str, on_bad_lines="warn")
    except pd.errors.EmptyDataError:
        return empty_log(kind)
    except Exception as e:
        logger.error(f"Error reading log file {file_path.name}: {e}")
        return empty_log(kind)


def fetch_log(
    kind: str,
    start: Optional[dt.datetime],
    end: Optional[dt.datetime],
    base_url: str,
    timeout: float = config.FETCH_TIMEOUT_SECONDS,
) -> pd.DataFrame:
    """GET <base_url>/logs/<kind>?format=csv&start=..&end=.. and parse the CSV body."""
    _check_kind(kind)
    params: Dict[str, str] = {"format": "csv"}
    if start is not None:
        params["start"] = (start - LEAD_IN).isoformat()
    if end is not None:
        params["end"] = end.isoformat()
    try:
        response = requests.get(f"{base_url}/logs/{kind}", params=params, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error(f"Could not fetch {kind} log from {base_url}: {e}")
        return empty_log(kind)

    if not response.text.strip():
        return empty_log(kind)
    try:
        return pd.read_csv(io.StringIO(response.text), dtype=str, on_bad_lines="warn")
    except Exception as e:
        logger.error(f"Malformed {kind} log from {base_url}: {e}")
        return empty_log(kind)


def load_log(
    kind: str,
    view_range: Optional[ViewRange] = None,
    log_dir: Optional[Path] = None,
    base_url: Optional[str] = None,
) -> pd.DataFrame:
    """
    Load the rows of one log kind for a view range, with `end` synthesized.

    Args:
        kind: "focused", "process" or "system".
        view_range: Visible days; None loads everything.
        log_dir: Local log directory (defaults to LOGS_DIR).
        base_url: Log server URL; overrides the local files when given.

    Returns:
        DataFrame of string columns in log order plus `end`.
    """
    start = view_range.start if view_range else None
    end = view_range.stop if view_range else None
    url = base_url if base_url is not None else config.LOG_URL

    if url:
        df = fetch_log(kind, start, end, url)
    else:
        df = read_log_file(kind, log_dir)
    if df.empty:
        return empty_log(kind)

    for col in config.LOG_COLUMNS[kind]:
        if col not in df.columns:
            df[col] = None
    # End must come from the full log, before rows are cut to the range
    return _filter_range(with_end_column(df), start, end)


def load_week_logs(
    view_range: ViewRange,
    log_dir: Optional[Path] = None,
    base_url: Optional[str] = None,
) -> Dict[str, pd.DataFrame]:
    return {kind: load_log(kind, view_range, log_dir, base_url) for kind in config.LOG_KINDS}


def append_log_rows(kind: str, rows: Iterable[Dict[str, Any]], log_dir: Optional[Path] = None) -> int:
    """Append change rows to a log file, writing the header for a new file. Returns rows written."""
    _check_kind(kind)
    rows_list: List[Dict[str, Any]] = list(rows)
    if not rows_list:
        return 0
    file_path = log_file_path(kind, log_dir)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(rows_list, columns=config.LOG_COLUMNS[kind])
    write_header = not file_path.exists() or file_path.stat().st_size == 0
    df.to_csv(file_path, mode="a", header=write_header, index=False, encoding="utf-8")
    return len(rows_list)


def available_weeks(log_dir: Optional[Path] = None) -> List[dt.date]:
    """Dates (UTC) of the first and last focused rows, used to bound week navigation."""
    df = read_log_file("focused", log_dir)
    if df.empty:
        return []
    ts = parse_timestamps(df["timestamp"]).dropna()
    if ts.empty:
        return []
    return [ts.min().date(), ts.max().date()]


class RangeGuard:
    """Discards loads whose view range is no longer the one on screen.

    Loads are not cancelled; a result that arrives after the user moved to
    another week is simply dropped.
    """

    def __init__(self):
        self.current: Optional[ViewRange] = None

    def request(self, view_range: ViewRange) -> ViewRange:
        self.current = view_range
        return view_range

    def is_current(self, view_range: ViewRange) -> bool:
        return self.current == view_range

    def accept(self, view_range: ViewRange, data: Any) -> Optional[Any]:
        if not self.is_current(view_range):
            logger.info(f"Discarding stale load for week starting {view_range.start.isoformat()}")
            return None
        return data


def load_for_view(
    guard: RangeGuard,
    view_range: ViewRange,
    on_screen: Callable[[], ViewRange],
    loader: Callable[[ViewRange], Any] = load_week_logs,
) -> Optional[Any]:
    """
    Load data for `view_range`, keeping it only if that range is still on screen.

    Args:
        guard: The session's RangeGuard.
        view_range: Range the load is for.
        on_screen: Returns the range shown once the load has finished.
        loader: Fetches the data for a range.

    Returns:
        The loaded data, or None when the user moved on meanwhile.
    """
    requested = guard.request(view_range)
    data = loader(requested)
    shown = on_screen()
    if shown != requested:
        guard.request(shown)
    return guard.accept(requested, data)


def should_reload(last_loaded: Optional[dt.datetime], now: dt.datetime,
                  threshold_s: int = config.REFOCUS_RELOAD_SECONDS) -> bool:
    """True when data loaded at `last_loaded` is old enough to be fetched again."""
    if last_loaded is None:
        return True
    return (now - last_loaded).total_seconds() > threshold_s
