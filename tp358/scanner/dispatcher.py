"""Per-device throttled dispatch of decoded TP358 readings."""

import asyncio
import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

from tp358.core.parser import DecodeError, decode, device_type, is_supported_length
from tp358.shared.database import MeasurementStorage
from tp358.shared.models import AdvertisementFrame, ReadingEvent
from tp358.sources.base import AdvertisementSource
from .broadcast import READING_EVENT, Broadcaster
from .intervals import IntervalSettingsStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadingDispatcher:
    """Consumes advertisement frames and forwards decoded readings.

    Each device is throttled independently per sink: a reading goes out to
    the broadcaster at most once per broadcast interval and to storage at
    most once per storage interval. The first valid reading of a device
    always goes to both. The latest reading of every device is kept in a
    snapshot regardless of throttling.

    Only the dispatch loop mutates state; other tasks just read it.
    """

    def __init__(
        self,
        source: AdvertisementSource,
        broadcaster: Broadcaster,
        intervals: IntervalSettingsStore,
        storage: Optional[MeasurementStorage] = None,
        sink_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the dispatcher.

        Args:
            source: Where frames come from.
            broadcaster: Live sink for 'reading' events.
            intervals: Shared interval settings, read on every frame.
            storage: Measurement storage, or None to disable persistence.
            sink_timeout: Seconds to wait for a sink before giving up.
            clock: Returns the current aware UTC time.
        """
        self.source = source
        self.broadcaster = broadcaster
        self.intervals = intervals
        self.storage = storage
        self.sink_timeout = sink_timeout
        self.clock = clock

        self._last_broadcast_at: Dict[str, datetime] = {}
        self._last_persisted_at: Dict[str, datetime] = {}
        self._latest_readings: Dict[str, ReadingEvent] = {}

        self.last_received_at: Optional[datetime] = None
        self.last_processed_at: Optional[datetime] = None

    @property
    def latest_readings(self) -> Mapping[str, ReadingEvent]:
        """Read-only view of the latest reading per device address."""
        return MappingProxyType(self._latest_readings)

    async def run(self):
        """Process frames in arrival order until the source ends or the
        task is cancelled. Source errors propagate."""
        logger.info(f"Dispatcher started (source: {self.source.name})")
        async for frame in self.source.watch():
            await self.process_frame(frame)
        logger.warning("Advertisement source ended")

    async def process_frame(self, frame: AdvertisementFrame) -> Optional[ReadingEvent]:
        """Decode one frame and dispatch it to the sinks that are due.

        Returns:
            The decoded event, or None if the frame was skipped.
        """
        now = self.clock()
        self.last_received_at = now

        payload = frame.manufacturer_payload
        if not is_supported_length(payload):
            logger.debug(
                f"Skipping {frame.device_address}: unsupported payload length {len(payload)}"
            )
            return None

        try:
            reading = decode(payload, frame.company_id)
        except DecodeError as e:
            logger.warning(f"Failed to decode payload from {frame.device_address}: {e}")
            return None

        self.last_processed_at = now
        event = ReadingEvent.from_frame(frame, reading)

        if frame.device_address not in self._latest_readings:
            logger.info(f"Sensor detected: {frame.device_address} ({device_type(payload)})")

        settings = self.intervals.get()

        if self._is_due(self._last_broadcast_at, frame.device_address, now, settings.broadcast_interval):
            self._last_broadcast_at[frame.device_address] = now
            await self._broadcast(event)

        if self.storage is not None and self._is_due(
            self._last_persisted_at, frame.device_address, now, settings.storage_interval
        ):
            self._last_persisted_at[frame.device_address] = now
            await self._persist(event)

        self._latest_readings[frame.device_address] = event
        return event

    @staticmethod
    def _is_due(last_sent: Dict[str, datetime], address: str, now: datetime, interval) -> bool:
        last = last_sent.get(address)
        return last is None or now - last >= interval

    async def _broadcast(self, event: ReadingEvent):
        try:
            await asyncio.wait_for(
                self.broadcaster.broadcast(READING_EVENT, event.to_dict()),
                timeout=self.sink_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Broadcast of {event.device_address} timed out")
        except Exception as e:
            logger.warning(f"Broadcast of {event.device_address} failed: {e}")

    async def _persist(self, event: ReadingEvent):
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    self.storage.insert_measurement,
                    event.device_address,
                    event.temperature_c,
                    event.humidity_percent,
                    event.timestamp,
                ),
                timeout=self.sink_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Storing measurement of {event.device_address} timed out")
        except Exception as e:
            logger.warning(f"Storing measurement of {event.device_address} failed: {e}")
