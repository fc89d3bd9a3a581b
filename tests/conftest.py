"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tp358.scanner.broadcast import Broadcaster
from tp358.scanner.dispatcher import ReadingDispatcher
from tp358.scanner.intervals import IntervalSettingsStore
from tp358.shared.models import AdvertisementFrame
from tp358.sources.base import AdvertisementSource

START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

# Real capture from a TP358S: 16.9 °C, 40 %, battery OK
TP358S_PAYLOAD = bytes([0x00, 0x28, 0x22, 0x1B, 0x01])
TP358S_COMPANY_ID = 0xA9C2
SENSOR_ADDRESS = "FB:B9:30:BB:5E:55"


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class RecordingBroadcaster(Broadcaster):
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def broadcast(self, event, payload):
        if self.fail:
            raise ConnectionError("broker down")
        self.events.append((event, payload))

    def of(self, event: str) -> list:
        return [payload for name, payload in self.events if name == event]


class RecordingStorage:
    """Stands in for MeasurementStorage."""

    def __init__(self, fail: bool = False):
        self.rows = []
        self.fail = fail

    def insert_measurement(self, device_mac, temperature_c, humidity_percent, measured_at):
        if self.fail:
            raise RuntimeError("database down")
        self.rows.append((device_mac, temperature_c, humidity_percent, measured_at))
        return True


class ListSource(AdvertisementSource):
    """Yields a fixed list of frames, then optionally raises."""

    name = "list"

    def __init__(self, frames=None, error: Exception = None):
        self.frames = list(frames or [])
        self.error = error
        self.closed = False

    async def watch(self):
        try:
            for frame in self.frames:
                yield frame
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


def build_frame(
    payload: bytes = TP358S_PAYLOAD,
    company_id: int = TP358S_COMPANY_ID,
    address: str = SENSOR_ADDRESS,
    rssi: int = -60,
    timestamp: datetime = START,
) -> AdvertisementFrame:
    return AdvertisementFrame(
        timestamp=timestamp,
        device_address=address,
        rssi=rssi,
        manufacturer_payload=bytes(payload),
        company_id=company_id,
    )


@pytest.fixture
def make_frame():
    return build_frame


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def storage():
    return RecordingStorage()


@pytest.fixture
def intervals():
    return IntervalSettingsStore(
        broadcast_seconds=30,
        storage_seconds=60,
        warning_threshold_seconds=300,
    )


@pytest.fixture
def dispatcher(clock, broadcaster, storage, intervals):
    return ReadingDispatcher(
        source=ListSource(),
        broadcaster=broadcaster,
        intervals=intervals,
        storage=storage,
        clock=clock,
    )


@pytest.fixture
def list_source():
    return ListSource
