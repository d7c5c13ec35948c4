#!/usr/bin/env python3
"""
Test tailing the daily MMDVMHost log into the traffic service
"""
import asyncio
from datetime import datetime, timezone

import pytest

from wpsd_dash.monitor import (
    CHANGED, CREATED, FileChange, LogDirectoryWatcher, LogTailIngestor, log_file_for,
)
from wpsd_dash.state import TrafficService

TODAY = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

HEADER = "M: 2024-01-01 12:00:00.000 DMR Slot 2, received RF voice header from K6JM to TG 91\n"
END = ("M: 2024-01-01 12:00:07.600 DMR Slot 2, received RF end of voice transmission from K6JM "
       "to TG 91, 7.6 seconds, BER: 0.0%, RSSI: -43/-43/-43 dBm\n")
NOISE = "M: 2024-01-01 12:00:08.000 Mode set to Idle\n"


def clock():
    return TODAY


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path


@pytest.fixture
def traffic(log_dir):
    return TrafficService(lambda: log_dir, clock=clock)


@pytest.fixture
def ingestor(traffic, log_dir):
    return LogTailIngestor(traffic, lambda: log_dir, poll_interval=0.01, clock=clock)


def append(path, text):
    with open(path, 'a') as f:
        f.write(text)


def test_log_file_for(tmp_path):
    assert log_file_for(tmp_path, TODAY) == tmp_path / "MMDVM-2024-01-01.log"


@pytest.mark.asyncio
async def test_initial_read_of_todays_log(ingestor, traffic, log_dir):
    path = log_dir / "MMDVM-2024-01-01.log"
    append(path, HEADER + NOISE + END)

    assert await ingestor.start() is True
    events = traffic.recent(10)
    assert len(events) == 2
    assert events[0].duration == 7.6
    assert ingestor.offsets[path] == path.stat().st_size


@pytest.mark.asyncio
async def test_start_without_todays_log(ingestor, traffic):
    assert await ingestor.start() is True
    assert len(traffic.buffer) == 0


@pytest.mark.asyncio
async def test_appended_lines_are_not_duplicated(ingestor, traffic, log_dir):
    path = log_dir / "MMDVM-2024-01-01.log"
    append(path, HEADER)
    await ingestor.start()
    assert len(traffic.buffer) == 1

    # a notification with nothing new reads nothing
    assert await ingestor.handle_change(FileChange(CHANGED, path)) == 0

    append(path, END)
    assert await ingestor.handle_change(FileChange(CHANGED, path)) == 1
    assert len(traffic.buffer) == 2


@pytest.mark.asyncio
async def test_partial_line_waits_for_newline(ingestor, traffic, log_dir):
    path = log_dir / "MMDVM-2024-01-01.log"
    append(path, HEADER + END[:40])

    assert await ingestor.read_new_lines(path) == 1
    assert await ingestor.read_new_lines(path) == 0

    append(path, END[40:])
    assert await ingestor.read_new_lines(path) == 1
    assert traffic.recent(1)[0].duration == 7.6


@pytest.mark.asyncio
async def test_missing_log_dir(traffic, tmp_path):
    missing = tmp_path / "missing"
    ingestor = LogTailIngestor(traffic, lambda: missing, clock=clock)

    assert await ingestor.start() is False
    assert ingestor.log_dir_missing is True

    # run() gives up without a watcher
    await ingestor.run()
    assert ingestor.watcher is None


@pytest.mark.asyncio
async def test_previous_days_log_is_ignored(ingestor, traffic, log_dir):
    old = log_dir / "MMDVM-2023-12-31.log"
    append(old, HEADER)

    assert await ingestor.handle_change(FileChange(CREATED, old)) == 0
    assert len(traffic.buffer) == 0
    assert old not in ingestor.offsets


@pytest.mark.asyncio
async def test_new_days_log_is_read(ingestor, traffic, log_dir):
    tomorrow = log_dir / "MMDVM-2024-01-02.log"
    append(tomorrow, HEADER)
    assert await ingestor.handle_change(FileChange(CREATED, tomorrow)) == 1


@pytest.mark.asyncio
async def test_truncated_log_is_reread(ingestor, traffic, log_dir):
    path = log_dir / "MMDVM-2024-01-01.log"
    append(path, HEADER + NOISE * 4)
    await ingestor.read_new_lines(path)

    path.write_text(END)
    assert await ingestor.read_new_lines(path) == 1
    assert ingestor.offsets[path] == len(END)


def test_watcher_reports_created_and_changed(tmp_path):
    watcher = LogDirectoryWatcher(tmp_path)
    first = tmp_path / "MMDVM-2024-01-01.log"
    first.write_text(HEADER)
    (tmp_path / "other.txt").write_text("x")

    assert watcher.scan() == [FileChange(CREATED, first)]
    assert watcher.scan() == []

    append(first, END)
    second = tmp_path / "MMDVM-2024-01-02.log"
    second.write_text("")
    assert watcher.scan() == [FileChange(CHANGED, first), FileChange(CREATED, second)]


def test_watcher_missing_directory(tmp_path):
    watcher = LogDirectoryWatcher(tmp_path / "missing")
    assert watcher.scan() == []


@pytest.mark.asyncio
async def test_run_follows_appends(ingestor, traffic, log_dir):
    path = log_dir / "MMDVM-2024-01-01.log"
    append(path, HEADER)

    task = asyncio.create_task(ingestor.run())
    for _ in range(100):
        if ingestor.watcher is not None and len(traffic.buffer) == 1:
            break
        await asyncio.sleep(0.01)
    assert len(traffic.buffer) == 1

    append(path, END)
    for _ in range(200):
        if len(traffic.buffer) == 2:
            break
        await asyncio.sleep(0.01)

    ingestor.stop()
    await asyncio.wait_for(task, timeout=2)

    # the watcher's first scan replays today's file; offsets keep it from doubling
    assert len(traffic.buffer) == 2
