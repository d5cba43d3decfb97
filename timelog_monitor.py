#!/usr/bin/env python3
"""
Timelog Monitor Agent

This script polls the focused window, the idle time and the state of watched
processes on a fixed interval and appends a row to the matching change log
(focused.csv, process.csv, system.csv) only when something changed since the
previous poll.

Sleep is not observed directly: when two polls are further apart than
SLEEP_GAP_FACTOR intervals, the gap is logged as a sleep_start at the previous
poll and a sleep_stop at the current one.

Change detection is a pure function of (PollerState, Snapshot, now), so it can
be tested without touching the OS; only collect_snapshot() talks to the system.
"""

import argparse
import asyncio
import datetime
import logging
import sys
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import psutil

from dashboard.data_utils import append_log_rows
from timelog import config
from timelog.sleep import detect_sleep_gap

if sys.platform == "win32":
    from ctypes import Structure, byref, sizeof, windll, wintypes

    import pywintypes
    import win32gui
    import win32process

    class LASTINPUTINFO(Structure):
        _fields_ = [
            ("cbSize", wintypes.UINT),
            ("dwTime", wintypes.DWORD),
        ]

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(config.MONITOR_LOG, encoding="utf-8"),
        logging.StreamHandler(),  # Also print to console
    ],
)
logger = logging.getLogger("timelog_monitor")

Rows = Dict[str, List[Dict[str, Any]]]


# --- OS readers ---

def get_focused_window() -> Optional[Dict[str, Optional[str]]]:
    """Title, process name and executable path of the foreground window (Windows only)."""
    if sys.platform != "win32":
        return None
    hwnd = win32gui.GetForegroundWindow()
    if not hwnd:
        return None
    try:
        title = win32gui.GetWindowText(hwnd)
        _, pid = win32process.GetWindowThreadProcessId(hwnd)
    except pywintypes.error:
        return None
    try:
        proc = psutil.Process(pid)
        return {"title": title, "process": proc.name(), "path": proc.exe(), "url": None}
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def get_idle_seconds() -> float:
    """Seconds since the last keyboard/mouse input (Windows); 0 elsewhere."""
    if sys.platform != "win32":
        return 0.0
    lii = LASTINPUTINFO()
    lii.cbSize = sizeof(LASTINPUTINFO)
    try:
        ok = windll.user32.GetLastInputInfo(byref(lii))
    except OSError:
        return 0.0
    if not ok:
        return 0.0
    idle_ms = int(windll.kernel32.GetTickCount()) - int(lii.dwTime)
    return max(0, idle_ms) / 1000.0


def get_process_states(substrings: List[str]) -> Dict[str, Dict[str, Any]]:
    """State of every process whose name contains one of `substrings` (case-insensitive), keyed by pid."""
    if not substrings:
        return {}
    wanted = [s.lower() for s in substrings]
    states: Dict[str, Dict[str, Any]] = {}
    for proc in psutil.process_iter(["pid", "name", "cpu_percent", "memory_info", "status", "create_time"]):
        info = proc.info
        name = info.get("name") or ""
        if not any(sub in name.lower() for sub in wanted):
            continue
        memory_info = info.get("memory_info")
        create_time = info.get("create_time")
        states[str(info["pid"])] = {
            "name": name,
            "cpu": round(info.get("cpu_percent") or 0.0, 1),
            "memory": memory_info.rss if memory_info else 0,
            "status": info.get("status") or "",
            "started": (
                datetime.datetime.fromtimestamp(create_time, datetime.timezone.utc).isoformat()
                if create_time else ""
            ),
            "unresponsive": info.get("status") == psutil.STATUS_DISK_SLEEP,
        }
    return states


# --- Change detection ---

@dataclass(frozen=True)
class Snapshot:
    """Everything read from the OS in one poll"""
    focused: Optional[Dict[str, Optional[str]]]
    idle_seconds: float
    processes: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass(frozen=True)
class PollerState:
    """What the previous poll saw; passed into and returned from every poll"""
    last_poll: Optional[datetime.datetime] = None
    last_focused: Optional[Dict[str, Optional[str]]] = None
    last_idle: bool = False
    last_processes: Dict[str, Dict[str, Any]] = field(default_factory=dict)


def _ts(moment: datetime.datetime) -> str:
    return moment.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds")


def _bool(value: bool) -> str:
    return "true" if value else "false"


def _system_row(moment: datetime.datetime, is_idle: bool, sleep_state: str = "") -> Dict[str, Any]:
    return {"timestamp": _ts(moment), "isIdle": _bool(is_idle), "isLocked": "false", "sleepState": sleep_state}


def poll_once(
    state: PollerState,
    snapshot: Snapshot,
    now: datetime.datetime,
    poll_interval: datetime.timedelta,
    idle_threshold_s: float = config.IDLE_THRESHOLD_SECONDS,
) -> Tuple[PollerState, Rows]:
    """
    Compare one snapshot with the previous state.

    Args:
        state: State returned by the previous call (PollerState() on start).
        snapshot: Fresh readings from the OS readers.
        now: Time of this poll.
        poll_interval: Expected time between polls, for sleep-gap detection.
        idle_threshold_s: Idle seconds from which the user counts as idle.

    Returns:
        (new state, rows to append per log kind).
    """
    rows: Rows = {kind: [] for kind in config.LOG_KINDS}

    is_idle = snapshot.idle_seconds >= idle_threshold_s
    slept = detect_sleep_gap(state.last_poll, now, poll_interval)
    if slept:
        rows["system"].append(_system_row(state.last_poll, state.last_idle, config.SLEEP_START))
        # The stop row carries the idle state on wake, so it also records an idle change
        rows["system"].append(_system_row(now, is_idle, config.SLEEP_STOP))

    if is_idle != state.last_idle and not slept:
        # Idle began when input stopped, not when it was noticed
        changed_at = now - datetime.timedelta(seconds=snapshot.idle_seconds)
        rows["system"].append(_system_row(changed_at, is_idle))

    if snapshot.focused is not None and snapshot.focused != state.last_focused:
        focused = snapshot.focused
        rows["focused"].append({
            "timestamp": _ts(now),
            "title": focused.get("title") or "",
            "process": focused.get("process") or "",
            "path": focused.get("path") or "",
            "url": focused.get("url") or "",
        })

    for pid, current in snapshot.processes.items():
        if state.last_processes.get(pid) != current:
            rows["process"].append({
                "timestamp": _ts(now),
                "pid": pid,
                "name": current.get("name", ""),
                "cpu": current.get("cpu", 0.0),
                "memory": current.get("memory", 0),
                "status": current.get("status", ""),
                "started": current.get("started", ""),
                "unresponsive": _bool(current.get("unresponsive", False)),
            })

    new_state = replace(
        state,
        last_poll=now,
        last_focused=snapshot.focused,
        last_idle=is_idle,
        last_processes=dict(snapshot.processes),
    )
    return new_state, rows


class TimelogMonitorAgent:
    def __init__(
        self,
        output_dir: Optional[Path] = None,
        poll_interval_s: int = config.POLL_INTERVAL_SECONDS,
        idle_threshold_s: int = config.IDLE_THRESHOLD_SECONDS,
        process_substrings: Optional[List[str]] = None,
    ):
        self.output_dir = Path(output_dir) if output_dir else config.LOG_DIR
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.poll_interval = datetime.timedelta(seconds=poll_interval_s)
        self.idle_threshold_s = idle_threshold_s
        self.process_substrings = process_substrings if process_substrings is not None else config.PROCESS_SUBSTRINGS
        self.state = PollerState()

        logger.info(
            f"Initialized TimelogMonitorAgent. Output Dir: {self.output_dir}, "
            f"interval: {poll_interval_s}s, idle threshold: {idle_threshold_s}s, "
            f"watching: {', '.join(self.process_substrings) or 'no processes'}"
        )
        if sys.platform != "win32":
            logger.warning("Focused window and idle detection are only available on Windows.")

    def collect_snapshot(self) -> Snapshot:
        return Snapshot(
            focused=get_focused_window(),
            idle_seconds=get_idle_seconds(),
            processes=get_process_states(self.process_substrings),
        )

    def poll(self, now: Optional[datetime.datetime] = None) -> int:
        """Run one poll and write its rows. Returns the number of rows written."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        self.state, rows = poll_once(
            self.state, self.collect_snapshot(), now, self.poll_interval, self.idle_threshold_s
        )
        written = 0
        for kind, kind_rows in rows.items():
            written += append_log_rows(kind, kind_rows, self.output_dir)
        sleep_rows = [r for r in rows["system"] if r["sleepState"]]
        if sleep_rows:
            logger.info(f"Poll gap detected, logged sleep {sleep_rows[0]['timestamp']} -> {sleep_rows[-1]['timestamp']}")
        return written

    async def run_agent_loop(self):
        """The main agent loop: poll, write changes, sleep until the next interval."""
        interval_s = self.poll_interval.total_seconds()
        logger.info(f"Starting Timelog Monitor agent loop. Poll interval: {interval_s}s")
        while True:
            loop_iteration_start_time = time.time()
            try:
                written = self.poll()
                if written:
                    logger.debug(f"Logged {written} change row(s)")
                elapsed_this_iteration = time.time() - loop_iteration_start_time
                await asyncio.sleep(max(0.1, interval_s - elapsed_this_iteration))
            except KeyboardInterrupt:
                logger.info("KeyboardInterrupt received in agent loop. Exiting.")
                break
            except Exception as e_loop:
                logger.error(f"Unhandled error in agent loop: {e_loop}", exc_info=True)
                await asyncio.sleep(interval_s * 2)  # Wait longer after an error before retrying
        logger.info("Timelog Monitor agent stopped.")


async def main_async_entrypoint():
    """Parses arguments and starts the TimelogMonitorAgent."""
    parser = argparse.ArgumentParser(description="Timelog Monitor Agent (logs focused window, idle/sleep and process changes)")
    parser.add_argument("--output-dir", "-o", type=str, default=None,
                        help=f"Directory for the change logs (default: {config.LOG_DIR}).")
    parser.add_argument("--interval", "-i", type=int, default=config.POLL_INTERVAL_SECONDS,
                        help=f"Poll interval in seconds (default: {config.POLL_INTERVAL_SECONDS}s).")
    parser.add_argument("--idle-threshold", type=int, default=config.IDLE_THRESHOLD_SECONDS,
                        help=f"Seconds without input before the user counts as idle (default: {config.IDLE_THRESHOLD_SECONDS}s).")
    parser.add_argument("--process", "-p", action="append", default=None,
                        help="Substring of a process name to watch; repeatable (default: MONITOR_PROCESS_SUBSTRINGS).")
    args = parser.parse_args()

    output_directory_path = Path(args.output_dir) if args.output_dir else config.LOG_DIR
    try:
        output_directory_path.mkdir(parents=True, exist_ok=True)
    except OSError as e_mkdir:
        logger.critical(f"Failed to create output directory {output_directory_path}: {e_mkdir}")
        sys.exit(1)

    agent_instance = TimelogMonitorAgent(
        output_directory_path,
        poll_interval_s=args.interval,
        idle_threshold_s=args.idle_threshold,
        process_substrings=args.process,
    )
    try:
        await agent_instance.run_agent_loop()
    except asyncio.CancelledError:
        logger.info("Main agent loop task was cancelled.")


if __name__ == "__main__":
    try:
        asyncio.run(main_async_entrypoint())
    except KeyboardInterrupt:
        logger.info("Timelog Monitor Agent stopped by user (Ctrl+C in main).")
    except Exception as main_execution_err:
        logger.critical(f"Timelog Monitor Agent exited due to an unhandled error in main: {main_execution_err}", exc_info=True)
