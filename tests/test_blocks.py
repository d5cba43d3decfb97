import datetime as dt

import pandas as pd

from timelog.blocks import (
    IDLE_LABEL, SLEEP_LABEL, blocks_for_day, get_focused_blocks, get_process_blocks, get_system_blocks,
    summarize_blocks,
)
from timelog.day_split import SLICE_EPSILON, week_days
from timelog.entries import consolidate_process_entries, convert_focused_entries, convert_system_entries
from timelog.models import BlockKind, CalendarBlock, Interval, ViewRange
from timelog.sleep import SleepDetector


def focused_row(ts, title, process="app.exe"):
    return {"timestamp": ts.isoformat(), "title": title, "process": process, "path": "", "url": ""}


def system_row(ts, idle=False, sleep_state=""):
    return {"timestamp": ts.isoformat(), "isIdle": "true" if idle else "false", "isLocked": "false",
            "sleepState": sleep_state}


def process_row(ts, pid="100", name="worker.exe", cpu="1.5"):
    return {"timestamp": ts.isoformat(), "pid": pid, "name": name, "cpu": cpu, "memory": "1024",
            "status": "running", "started": "2024-01-01T00:00:00+00:00", "unresponsive": "false"}


def week(monday, utc):
    return ViewRange.from_days(week_days(monday, utc))


class TestFocusedBlocks:
    def test_last_entry_runs_until_now(self, at, utc, monday):
        # Given: A at 09:00, B at 09:30, A again at 17:00, viewed at 18:00
        entries = convert_focused_entries([
            focused_row(at(1, 9), "A"),
            focused_row(at(1, 9, 30), "B"),
            focused_row(at(1, 17), "A"),
        ])

        # When
        blocks = get_focused_blocks(entries, week(monday, utc), now=at(1, 18), tz=utc)

        # Then
        assert [(b.label, b.start, b.end) for b in blocks] == [
            ("A", at(1, 9), at(1, 9, 30)),
            ("B", at(1, 9, 30), at(1, 17)),
            ("A", at(1, 17), at(1, 18)),
        ]
        assert all(b.kind == BlockKind.FOCUSED for b in blocks)

    def test_open_entry_is_capped_after_the_view(self, at, utc, monday):
        entries = convert_focused_entries([focused_row(at(7, 20), "late")])
        view = week(monday, utc)

        blocks = get_focused_blocks(entries, view, now=at(20, 12), tz=utc)

        # Capped one day past the last visible midnight
        assert len(blocks) == 1
        assert blocks[0].start == at(7, 20)
        assert blocks[0].end == view.end + dt.timedelta(days=1) - SLICE_EPSILON

    def test_label_falls_back_to_process(self, at, utc, monday):
        entries = convert_focused_entries([focused_row(at(1, 9), "", process="code.exe")])
        blocks = get_focused_blocks(entries, week(monday, utc), now=at(1, 10), tz=utc)
        assert blocks[0].label == "code.exe"

    def test_overnight_entry_is_day_split(self, at, utc, monday):
        entries = convert_focused_entries([focused_row(at(1, 23), "A"), focused_row(at(2, 1), "B")])

        blocks = get_focused_blocks(entries, week(monday, utc), now=at(2, 2), tz=utc)

        assert [(b.label, b.start, b.end) for b in blocks] == [
            ("A", at(1, 23), at(2, 0) - SLICE_EPSILON),
            ("A", at(2, 0), at(2, 1)),
            ("B", at(2, 1), at(2, 2)),
        ]


class TestProcessBlocks:
    def test_consolidated_run_spans_first_to_last_sample(self, at, utc):
        entries = consolidate_process_entries(pd.DataFrame([
            process_row(at(1, 9)),
            process_row(at(1, 10), cpu="3.0"),
            process_row(at(1, 11), cpu="0.5"),
        ]), tz=utc)

        blocks = get_process_blocks(entries, now=at(1, 12), tz=utc)

        assert [(b.start, b.end, b.label) for b in blocks] == [(at(1, 9), at(1, 11), "worker.exe")]
        assert blocks[0].entry.cpu == [1.5, 3.0, 0.5]

    def test_single_sample_run_is_dropped(self, at, utc):
        entries = consolidate_process_entries([process_row(at(1, 9))], tz=utc)
        assert get_process_blocks(entries, now=at(1, 12), tz=utc) == []

    def test_late_sample_does_not_spill_into_next_day(self, at, utc):
        # Given: one sample late on 1 Jan, then a run on 2 Jan
        entries = consolidate_process_entries([
            process_row(at(1, 23), pid="1"),
            process_row(at(2, 1), pid="1"),
            process_row(at(2, 5), pid="1"),
        ], tz=utc)

        # When
        blocks = get_process_blocks(entries, now=at(3, 12), tz=utc)

        # Then: only the observed 2 Jan run is drawn
        assert [(b.start, b.end) for b in blocks] == [(at(2, 1), at(2, 5))]
        assert summarize_blocks(blocks)["minutes"].sum() == 240.0

    def test_run_without_end_is_capped(self, at, utc):
        entry = consolidate_process_entries([process_row(at(1, 9))], tz=utc)[0]
        entry.end = None

        blocks = get_process_blocks([entry], now=at(10, 12), tz=utc)

        assert blocks[0].start == at(1, 9)
        assert blocks[-1].end == at(2, 9)


class TestSystemBlocks:
    def test_sleep_between_markers(self, at, utc):
        # Given: sleep_start at 10:00, a plain row at 10:00, then sleep_stop at 14:00
        entries = convert_system_entries([
            system_row(at(1, 10), sleep_state="sleep_start"),
            system_row(at(1, 10)),
            system_row(at(1, 14), sleep_state="sleep_stop"),
        ])

        # When
        blocks = get_system_blocks(entries, now=at(1, 20), tz=utc)

        # Then: one Sleep block, no Idle
        assert [(b.label, b.start, b.end) for b in blocks] == [(SLEEP_LABEL, at(1, 10), at(1, 14))]

    def test_lone_stop_gives_seven_days_of_sleep(self, at, utc):
        entries = convert_system_entries([system_row(at(8, 8), sleep_state="sleep_stop")])

        blocks = get_system_blocks(entries, now=at(8, 9), tz=utc)

        assert all(b.label == SLEEP_LABEL for b in blocks)
        assert blocks[0].start == at(1, 8)
        assert blocks[-1].end == at(8, 8)
        assert len(blocks) == 8

    def test_idle_and_sleep_may_overlap(self, at, utc):
        entries = convert_system_entries([
            system_row(at(1, 9), idle=True),
            system_row(at(1, 9, 30), idle=True, sleep_state="sleep_start"),
            system_row(at(1, 11), idle=True, sleep_state="sleep_stop"),
            system_row(at(1, 12), idle=False),
        ])

        blocks = get_system_blocks(entries, now=at(1, 13), tz=utc)

        assert [(b.label, b.start, b.end) for b in blocks] == [
            (IDLE_LABEL, at(1, 9), at(1, 12)),
            (SLEEP_LABEL, at(1, 9, 30), at(1, 11)),
        ]

    def test_custom_sleep_detector(self, at, utc):
        class FixedSleep(SleepDetector):
            def sleep_intervals(self, entries, now=None):
                return [Interval(at(1, 1), at(1, 6))]

        blocks = get_system_blocks([], now=at(1, 12), tz=utc, sleep_detector=FixedSleep())

        assert [(b.label, b.start, b.end) for b in blocks] == [(SLEEP_LABEL, at(1, 1), at(1, 6))]


class TestDayHelpers:
    def test_blocks_for_day(self, at, utc):
        blocks = [
            CalendarBlock(BlockKind.FOCUSED, at(2, 10), at(2, 11), "B"),
            CalendarBlock(BlockKind.FOCUSED, at(1, 10), at(1, 11), "A"),
            CalendarBlock(BlockKind.FOCUSED, at(2, 8), at(2, 9), "C"),
        ]
        assert [b.label for b in blocks_for_day(blocks, at(2, 0), utc)] == ["C", "B"]

    def test_summarize_blocks(self, at):
        blocks = [
            CalendarBlock(BlockKind.FOCUSED, at(1, 9), at(1, 9, 30), "A"),
            CalendarBlock(BlockKind.FOCUSED, at(1, 9, 30), at(1, 9, 45), "B"),
            CalendarBlock(BlockKind.FOCUSED, at(1, 10), at(1, 11), "A"),
        ]

        summary = summarize_blocks(blocks)

        assert list(summary["label"]) == ["A", "B"]
        assert list(summary["minutes"]) == [90.0, 15.0]
        assert list(summary["blocks"]) == [2, 1]

    def test_summarize_nothing(self):
        summary = summarize_blocks([])
        assert summary.empty
        assert list(summary.columns) == ["kind", "label", "minutes", "blocks"]
