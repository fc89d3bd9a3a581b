"""Tests for the BLE activity watchdog."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tp358.scanner.broadcast import STATUS_EVENT
from tp358.scanner.liveness import LivenessMonitor, build_status

START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
THRESHOLD = timedelta(minutes=5)


@pytest.fixture
def monitor(dispatcher, intervals, broadcaster, clock):
    return LivenessMonitor(dispatcher, intervals, broadcaster, check_interval=0.01, clock=clock)


def test_status_ok_when_both_timestamps_fresh():
    status = build_status(START, START, START - timedelta(seconds=10), THRESHOLD)
    assert not status.warning
    assert status.message == ""


def test_status_warns_when_nothing_seen():
    status = build_status(START, None, None, THRESHOLD)

    assert status.warning
    assert status.message.startswith("BLE WARNING: ")
    assert "no BLE signal received for 5 min (last: never)" in status.message
    assert "no BLE signal processed for 5 min (last: never)" in status.message
    assert " | " in status.message


def test_status_names_only_the_stale_timestamp():
    status = build_status(START, START, START - timedelta(minutes=6), THRESHOLD)

    assert status.warning
    assert "received" not in status.message
    assert "no BLE signal processed for 5 min" in status.message
    assert "never" not in status.message


def test_status_at_threshold_is_still_ok():
    status = build_status(START, START - THRESHOLD, START - THRESHOLD, THRESHOLD)
    assert not status.warning


def test_status_minutes_never_below_one():
    status = build_status(START, None, None, timedelta(seconds=30))
    assert "for 1 min" in status.message


def test_status_to_dict():
    data = build_status(START, START, None, THRESHOLD).to_dict()

    assert data["warning"] is True
    assert data["last_received_at"] == START.isoformat()
    assert data["last_processed_at"] is None


@pytest.mark.asyncio
async def test_warning_is_broadcast_once_then_cleared(monitor, dispatcher, broadcaster, clock, make_frame):
    await dispatcher.process_frame(make_frame())
    broadcaster.events.clear()

    clock.advance(10)
    assert await monitor.check() is None

    clock.advance(300)
    status = await monitor.check()
    assert status is not None and status.warning
    assert monitor.warning_active

    # Same condition on later ticks: nothing new
    clock.advance(30)
    assert await monitor.check() is None
    clock.advance(30)
    assert await monitor.check() is None

    clock.advance(30)
    await dispatcher.process_frame(make_frame())
    recovered = await monitor.check()
    assert recovered is not None and not recovered.warning
    assert not monitor.warning_active

    events = broadcaster.of(STATUS_EVENT)
    assert [e["warning"] for e in events] == [True, False]
    assert events[1]["message"] == ""


@pytest.mark.asyncio
async def test_warning_on_startup_without_any_frames(monitor, broadcaster):
    status = await monitor.check()

    assert status.warning
    assert "never" in status.message
    assert len(broadcaster.of(STATUS_EVENT)) == 1
    assert await monitor.check() is None


@pytest.mark.asyncio
async def test_message_change_is_broadcast(monitor, dispatcher, broadcaster, clock, make_frame):
    await monitor.check()
    # Frames arrive but none can be decoded
    await dispatcher.process_frame(make_frame(payload=bytes(6)))
    status = await monitor.check()

    assert status.warning
    assert "received" not in status.message
    assert len(broadcaster.of(STATUS_EVENT)) == 2


@pytest.mark.asyncio
async def test_threshold_change_applies_to_next_check(monitor, dispatcher, intervals, clock, make_frame):
    await dispatcher.process_frame(make_frame())
    clock.advance(120)
    assert await monitor.check() is None

    intervals.update(warning_threshold_seconds=60)
    status = await monitor.check()
    assert status.warning
    assert "for 1 min" in status.message


@pytest.mark.asyncio
async def test_broadcast_failure_does_not_raise(monitor, broadcaster):
    broadcaster.fail = True

    status = await monitor.check()

    assert status.warning
    assert monitor.warning_active


@pytest.mark.asyncio
async def test_run_checks_until_cancelled(monitor, broadcaster):
    task = asyncio.create_task(monitor.run())
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(broadcaster.of(STATUS_EVENT)) == 1


def test_current_status_does_not_change_state(monitor):
    status = monitor.current_status()
    assert status.warning
    assert not monitor.warning_active


@pytest.mark.asyncio
async def test_slow_status_broadcast_is_bounded(dispatcher, intervals, clock):
    class SlowBroadcaster:
        async def broadcast(self, event, payload):
            await asyncio.sleep(10)

    monitor = LivenessMonitor(dispatcher, intervals, SlowBroadcaster(), sink_timeout=0.01, clock=clock)

    status = await asyncio.wait_for(monitor.check(), timeout=2)

    assert status.warning
    assert monitor.warning_active
