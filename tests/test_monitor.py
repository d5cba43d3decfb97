import datetime as dt
import sys
from unittest.mock import Mock, patch

import pandas as pd
import pytest

import timelog_monitor
from timelog.blocks import SLEEP_LABEL, get_system_blocks
from timelog.entries import convert_system_entries
from timelog_monitor import PollerState, Snapshot, TimelogMonitorAgent, get_process_states, poll_once

INTERVAL = dt.timedelta(seconds=60)

WINDOW = {"title": "main.py - Editor", "process": "editor.exe", "path": "C:/editor.exe", "url": None}
PROCESS = {"name": "worker.exe", "cpu": 1.5, "memory": 2048, "status": "running",
           "started": "2024-01-01T08:00:00+00:00", "unresponsive": False}


class TestPollOnce:
    def test_first_poll_logs_window_and_processes(self, at):
        # Given: a fresh state
        snapshot = Snapshot(focused=WINDOW, idle_seconds=0, processes={"42": PROCESS})

        # When
        state, rows = poll_once(PollerState(), snapshot, at(1, 9), INTERVAL)

        # Then
        assert rows["focused"] == [{
            "timestamp": "2024-01-01T09:00:00.000+00:00",
            "title": "main.py - Editor", "process": "editor.exe", "path": "C:/editor.exe", "url": "",
        }]
        assert [r["pid"] for r in rows["process"]] == ["42"]
        assert rows["process"][0]["unresponsive"] == "false"
        assert rows["system"] == []
        assert state.last_poll == at(1, 9)

    def test_unchanged_snapshot_logs_nothing(self, at):
        snapshot = Snapshot(focused=WINDOW, idle_seconds=0, processes={"42": PROCESS})
        state, _ = poll_once(PollerState(), snapshot, at(1, 9), INTERVAL)

        _, rows = poll_once(state, snapshot, at(1, 9, 1), INTERVAL)

        assert rows == {"focused": [], "process": [], "system": []}

    def test_changed_process_is_logged(self, at):
        state, _ = poll_once(PollerState(), Snapshot(None, 0, {"42": PROCESS}), at(1, 9), INTERVAL)
        busier = dict(PROCESS, cpu=55.0)

        _, rows = poll_once(state, Snapshot(None, 0, {"42": busier}), at(1, 9, 1), INTERVAL)

        assert [r["cpu"] for r in rows["process"]] == [55.0]

    def test_lost_focus_is_not_logged(self, at):
        state, _ = poll_once(PollerState(), Snapshot(WINDOW, 0), at(1, 9), INTERVAL)
        _, rows = poll_once(state, Snapshot(None, 0), at(1, 9, 1), INTERVAL)
        assert rows["focused"] == []

    def test_idle_start_is_back_dated(self, at):
        state, _ = poll_once(PollerState(), Snapshot(None, 0), at(1, 9), INTERVAL)

        # When: ten minutes without input, threshold five
        state, rows = poll_once(state, Snapshot(None, 600), at(1, 9, 1), INTERVAL, idle_threshold_s=300)

        # Then: idle began when input stopped
        assert rows["system"] == [{
            "timestamp": "2024-01-01T08:51:00.000+00:00", "isIdle": "true", "isLocked": "false", "sleepState": "",
        }]
        assert state.last_idle is True

    def test_poll_gap_is_logged_as_sleep(self, at):
        state, _ = poll_once(PollerState(), Snapshot(None, 0), at(1, 9), INTERVAL)

        # When: the next poll comes four hours later
        _, rows = poll_once(state, Snapshot(None, 0), at(1, 13), INTERVAL)

        # Then
        assert [(r["timestamp"], r["sleepState"]) for r in rows["system"]] == [
            ("2024-01-01T09:00:00.000+00:00", "sleep_start"),
            ("2024-01-01T13:00:00.000+00:00", "sleep_stop"),
        ]

    def test_waking_up_active_closes_idle(self, at, utc):
        # Given: the user goes idle, then the machine sleeps
        state, first = poll_once(PollerState(), Snapshot(None, 0), at(1, 9), INTERVAL)
        state, second = poll_once(state, Snapshot(None, 600), at(1, 9, 1), INTERVAL, idle_threshold_s=300)

        # When: the next poll comes after wake-up with fresh input
        state, third = poll_once(state, Snapshot(None, 0), at(1, 13), INTERVAL, idle_threshold_s=300)
        _, fourth = poll_once(state, Snapshot(None, 0), at(1, 13, 1), INTERVAL, idle_threshold_s=300)

        # Then: the stop row ends the idle stretch and nothing else is needed
        assert [(r["sleepState"], r["isIdle"]) for r in third["system"]] == [
            ("sleep_start", "true"), ("sleep_stop", "false"),
        ]
        assert fourth["system"] == []
        rows = first["system"] + second["system"] + third["system"]
        blocks = get_system_blocks(convert_system_entries(pd.DataFrame(rows)), now=at(1, 18), tz=utc)
        assert [(b.label, b.start, b.end) for b in blocks] == [
            ("Idle", at(1, 8, 51), at(1, 13)),
            (SLEEP_LABEL, at(1, 9, 1), at(1, 13)),
        ]

    def test_sleep_rows_become_a_sleep_block(self, at, utc):
        state, first = poll_once(PollerState(), Snapshot(None, 0), at(1, 9), INTERVAL)
        _, second = poll_once(state, Snapshot(None, 0), at(1, 13), INTERVAL)

        entries = convert_system_entries(pd.DataFrame(first["system"] + second["system"]))
        blocks = get_system_blocks(entries, now=at(1, 14), tz=utc)

        assert [(b.label, b.start, b.end) for b in blocks] == [(SLEEP_LABEL, at(1, 9), at(1, 13))]


class TestOsReaders:
    def test_process_states_filter_by_substring(self):
        worker = Mock()
        worker.info = {"pid": 42, "name": "Worker.exe", "cpu_percent": 12.34,
                       "memory_info": Mock(rss=4096), "status": "disk-sleep", "create_time": 1704096000.0}
        other = Mock()
        other.info = {"pid": 7, "name": "shell", "cpu_percent": 0.0,
                      "memory_info": Mock(rss=1), "status": "running", "create_time": None}

        with patch.object(timelog_monitor.psutil, "process_iter", return_value=[worker, other]):
            states = get_process_states(["worker"])

        assert list(states) == ["42"]
        assert states["42"]["cpu"] == 12.3
        assert states["42"]["memory"] == 4096
        assert states["42"]["started"] == "2024-01-01T08:00:00+00:00"
        assert states["42"]["unresponsive"] is True

    def test_no_substrings_watches_nothing(self):
        assert get_process_states([]) == {}

    @pytest.mark.skipif(sys.platform == "win32", reason="readers are live on Windows")
    def test_window_and_idle_readers_are_inert_off_windows(self):
        assert timelog_monitor.get_focused_window() is None
        assert timelog_monitor.get_idle_seconds() == 0.0


class TestAgent:
    def test_poll_appends_rows(self, tmp_path, at):
        agent = TimelogMonitorAgent(tmp_path, poll_interval_s=60, process_substrings=[])

        with patch.object(agent, "collect_snapshot", return_value=Snapshot(WINDOW, 0)):
            assert agent.poll(at(1, 9)) == 1
            assert agent.poll(at(1, 9, 1)) == 0

        assert (tmp_path / "focused.csv").exists()
        assert not (tmp_path / "system.csv").exists()
