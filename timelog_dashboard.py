import streamlit as st
st.session_state['streamlit_running'] = True
import datetime as dt
import logging
import subprocess
import sys
import time
from pathlib import Path

import pandas as pd
import psutil

from dashboard.charts import create_summary_chart, create_week_calendar
from dashboard.data_utils import (
    LOGS_DIR, RangeGuard, available_weeks, load_for_view, should_reload
)
from timelog import config
from timelog.blocks import blocks_for_day, summarize_blocks
from timelog.day_split import format_day_label, start_of_week, week_days
from timelog.geometry import CalendarAxis
from timelog.models import ViewRange
from timelog.pipeline import build_week
from timelog.tz import resolve_tz

logger = logging.getLogger("timelog_dashboard")
logging.getLogger("streamlit.runtime.scriptrunner_utils.script_run_context").setLevel(logging.ERROR)
logging.getLogger("streamlit.runtime.state.session_state_proxy").setLevel(logging.ERROR)

MONITOR_SCRIPT = "timelog_monitor.py"
TRACK_NAMES = {"system": "Idle / Sleep", "focused": "Focused window", "process": "Processes"}


# --- Tracker Control Functions ---
def is_tracker_running():
    pid = st.session_state.get("tracker_pid")
    if pid is None: return False
    try:
        return psutil.pid_exists(pid) and MONITOR_SCRIPT in " ".join(psutil.Process(pid).cmdline())
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def start_tracker():
    if is_tracker_running():
        st.info("Timelog monitor already running.")
        return
    script_path = Path(__file__).resolve().parent / MONITOR_SCRIPT
    if not script_path.exists():
        st.error(f"Monitor script not found at {script_path}")
        return
    try:
        process = subprocess.Popen([sys.executable, str(script_path), "--output-dir", str(LOGS_DIR)])
        st.session_state["tracker_pid"] = process.pid
        st.success(f"Timelog monitor started (PID: {process.pid})")
        time.sleep(1)  # Give it a moment to stabilize
    except OSError as e:
        st.error(f"Failed to start monitor: {e}")


def stop_tracker():
    pid = st.session_state.get("tracker_pid")
    if not pid or not is_tracker_running():
        st.info("Timelog monitor is not running or PID is stale.")
        st.session_state["tracker_pid"] = None
        return
    try:
        p = psutil.Process(pid)
        p.terminate()
        p.wait(timeout=5)
        st.success("Timelog monitor stop signal sent.")
    except psutil.NoSuchProcess:
        st.info("Monitor process not found (already stopped?).")
    except psutil.TimeoutExpired:
        st.warning("Monitor did not terminate gracefully, attempting to kill.")
        try:
            p.kill()
            p.wait(timeout=2)
            st.success("Timelog monitor killed.")
        except psutil.Error as e_kill:
            st.error(f"Failed to kill monitor: {e_kill}")
    finally:
        st.session_state["tracker_pid"] = None


# --- Week state ---
def init_session_state(tz):
    if "week_start" not in st.session_state:
        st.session_state.week_start = start_of_week(dt.datetime.now(dt.timezone.utc), tz)
    if "range_guard" not in st.session_state:
        st.session_state.range_guard = RangeGuard()
    if "loaded_at" not in st.session_state:
        st.session_state.loaded_at = None
    if "week_logs" not in st.session_state:
        st.session_state.week_logs = None


def shift_week(tz, weeks: int):
    current = st.session_state.week_start
    target_day = current + dt.timedelta(days=7 * weeks, hours=12)
    st.session_state.week_start = start_of_week(target_day, tz)
    st.session_state.week_logs = None


def get_week_logs(view_range, now, tz):
    """Logs for the week on screen, reloaded when stale or when the week changed."""
    guard: RangeGuard = st.session_state.range_guard
    cached = st.session_state.week_logs
    if cached is not None and guard.is_current(view_range) and not should_reload(st.session_state.loaded_at, now):
        return cached

    logs = load_for_view(
        guard, view_range, lambda: ViewRange.from_days(week_days(st.session_state.week_start, tz))
    )
    if logs is not None:
        st.session_state.week_logs = logs
        st.session_state.loaded_at = now
    return logs


def display_control_panel(tz):
    st.sidebar.title("Timelog Controls")

    st.sidebar.subheader("Monitor Status")
    if is_tracker_running():
        st.sidebar.success("✅ Timelog Monitor Running")
        if st.sidebar.button("Stop Monitor"):
            stop_tracker()
            st.rerun()
    else:
        st.sidebar.warning("❌ Timelog Monitor Not Running")
        if st.sidebar.button("Start Monitor"):
            start_tracker()
            st.rerun()

    st.sidebar.subheader("Week")
    col_prev, col_today, col_next = st.sidebar.columns(3)
    if col_prev.button("◀ Prev"):
        shift_week(tz, -1)
    if col_today.button("Today"):
        st.session_state.week_start = start_of_week(dt.datetime.now(dt.timezone.utc), tz)
        st.session_state.week_logs = None
    if col_next.button("Next ▶"):
        shift_week(tz, 1)

    st.sidebar.subheader("View")
    st.session_state.visible_hours = st.sidebar.slider(
        "Visible hours", 0, 24, st.session_state.get("visible_hours", config.DEFAULT_VISIBLE_HOURS)
    )
    st.session_state.tracks = [
        track for track, title in TRACK_NAMES.items()
        if st.sidebar.checkbox(title, value=True, key=f"track_{track}")
    ]
    if st.sidebar.button("Reload Data"):
        st.session_state.week_logs = None

    st.sidebar.subheader("Data Status")
    bounds = available_weeks()
    if bounds:
        st.sidebar.info(f"📊 Focus data from {bounds[0]} to {bounds[-1]}")
    else:
        st.sidebar.warning("No log data found")
    st.sidebar.subheader("Storage Locations")
    if config.LOG_URL:
        st.sidebar.info(f"Log Server: {config.LOG_URL}")
    else:
        st.sidebar.info(f"Logs Directory: {LOGS_DIR}")


def display_week(layout, tz):
    start_hour, end_hour = st.session_state.visible_hours
    if end_hour <= start_hour:
        st.warning("Pick at least one visible hour.")
        return
    axis = CalendarAxis(layout.days, visible_start_hour=start_hour, visible_end_hour=end_hour, tz=tz)
    rects = layout.rects(axis, tracks=st.session_state.tracks)
    if not rects:
        st.info("Nothing recorded in this week for the selected tracks.")
    fig = create_week_calendar(rects, axis)
    st.plotly_chart(fig, use_container_width=True)


def display_summary(layout):
    summary = summarize_blocks(b for b in layout.all_blocks if b.kind.value in st.session_state.tracks)
    if summary.empty:
        st.info("No blocks to summarize.")
        return
    d_col1, d_col2, d_col3 = st.columns(3)
    by_kind = summary.groupby("kind")["minutes"].sum()
    d_col1.metric("🖥 Focused", f"{int(by_kind.get('focused', 0))} min")
    d_col2.metric("⚙️ Processes", f"{int(by_kind.get('process', 0))} min")
    d_col3.metric("💤 Idle / Sleep", f"{int(by_kind.get('system', 0))} min")

    fig = create_summary_chart(summary)
    if fig:
        st.plotly_chart(fig, use_container_width=True)
    st.dataframe(summary, use_container_width=True)


def display_day_detail(layout, tz):
    labels = [format_day_label(day, tz) for day in layout.days]
    choice = st.selectbox("Day", range(len(labels)), format_func=lambda i: labels[i], key="detail_day")
    day_blocks = blocks_for_day(layout.all_blocks, layout.days[choice], tz)
    if not day_blocks:
        st.info("Nothing recorded on this day.")
        return
    st.dataframe(pd.DataFrame([
        {
            "kind": b.kind.value,
            "label": b.label,
            "start": b.start.astimezone(tz).strftime("%H:%M:%S"),
            "end": b.end.astimezone(tz).strftime("%H:%M:%S"),
            "minutes": round(b.duration.total_seconds() / 60, 1),
        }
        for b in day_blocks
    ]), use_container_width=True)


def main():
    st.set_page_config(page_title="Timelog", page_icon="🗓", layout="wide", initial_sidebar_state="expanded")
    try:
        tz = resolve_tz()
    except ValueError as e:
        st.error(f"{e}. Check TIMELOG_TZ.")
        st.stop()

    init_session_state(tz)
    display_control_panel(tz)

    now = dt.datetime.now(dt.timezone.utc)
    days = week_days(st.session_state.week_start, tz)
    st.title(f"🗓 Week of {format_day_label(days[0], tz)}")

    logs = get_week_logs(ViewRange.from_days(days), now, tz)
    if logs is None:
        st.stop()

    try:
        layout = build_week(logs["focused"], logs["process"], logs["system"], days[0], now=now, tz=tz)
    except ValueError as e:
        logger.error(f"Could not build week starting {days[0]}: {e}", exc_info=True)
        st.error(f"Could not build this week: {e}")
        st.stop()

    tabs = st.tabs(["🗓 Week", "📊 Summary", "📋 Day Detail"])
    with tabs[0]: display_week(layout, tz)
    with tabs[1]: display_summary(layout)
    with tabs[2]: display_day_detail(layout, tz)


if __name__ == "__main__":
    main()
