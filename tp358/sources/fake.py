"""Simulated TP358S advertisements for machines without Bluetooth."""

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional, Tuple

from tp358.core.parser import FAKE_BATTERY_MARKER, VENDOR_MARKER
from tp358.shared.models import AdvertisementFrame
from .base import AdvertisementSource

logger = logging.getLogger(__name__)

# (address, temperature bias, humidity bias)
DEFAULT_SENSORS: List[Tuple[str, float, float]] = [
    ("FB:B9:30:BB:5E:55", 1.0, 0.5),
    ("F4:B8:2A:C1:37:AF", 0.0, 0.0),
    ("FA:C2:7D:1A:C3:EA", -0.6, 1.0),
]


def build_fake_frame(
    address: str,
    temperature_c: float,
    humidity_percent: float,
    rssi: int,
    timestamp: Optional[datetime] = None,
) -> AdvertisementFrame:
    """Encode simulated values the way a TP358S advertises them.

    The payload keeps the legacy layout (humidity and a temperature word as
    little-endian /256 values) and marks byte 4 with 0xFF so dashboards show
    an impossible battery value for simulated data. The temperature also goes
    into the company id high byte, which is what the decoder actually reads.

    Args:
        address: Device MAC address.
        temperature_c: Simulated temperature.
        humidity_percent: Simulated relative humidity.
        rssi: Simulated signal strength.
        timestamp: Frame timestamp (defaults to now, UTC).

    Returns:
        A 5-byte TP358S frame.
    """
    raw_rh = round(humidity_percent * 256.0) & 0xFFFF
    raw_temp = round(temperature_c * 256.0 + 1200) & 0xFFFF

    payload = bytes([
        raw_rh & 0xFF,
        raw_rh >> 8,
        raw_temp & 0xFF,
        raw_temp >> 8,
        FAKE_BATTERY_MARKER,
    ])
    company_id = VENDOR_MARKER | ((int(temperature_c * 10) & 0xFF) << 8)

    return AdvertisementFrame(
        timestamp=timestamp or datetime.now(timezone.utc),
        device_address=address,
        rssi=rssi,
        manufacturer_payload=payload,
        company_id=company_id,
    )


class FakeAdvertisementSource(AdvertisementSource):
    """Emits plausible, clearly marked TP358S frames on a fixed cadence."""

    name = "fake"

    def __init__(
        self,
        interval: float = 1.0,
        sensors: Optional[List[Tuple[str, float, float]]] = None,
        seed: Optional[int] = 1,
    ):
        """Initialize the simulated source.

        Args:
            interval: Seconds between rounds of advertisements.
            sensors: (address, temperature bias, humidity bias) per sensor.
            seed: Random seed, None for a non-deterministic sequence.
        """
        self.interval = interval
        self.sensors = sensors if sensors is not None else DEFAULT_SENSORS
        self._random = random.Random(seed)
        # Keep last values to avoid wild jumps
        self.last_values: Dict[str, float] = {}

    def _get_value(self, key: str, base_value: float, variation: float) -> float:
        """Generate a somewhat realistic varying value"""
        if key not in self.last_values:
            self.last_values[key] = base_value

        # Random walk with mean reversion
        new_value = self.last_values[key] + self._random.uniform(-variation, variation)
        new_value = new_value * 0.9 + base_value * 0.1

        self.last_values[key] = new_value
        return new_value

    def next_round(self) -> List[AdvertisementFrame]:
        """Produce one frame per simulated sensor."""
        frames = []
        for address, temp_bias, rh_bias in self.sensors:
            temperature = self._get_value(f"temp_{address}", 22.5 + temp_bias, 0.3)
            humidity = self._get_value(f"rh_{address}", 42.0 + rh_bias, 0.5)
            rssi = -55 - self._random.randint(0, 7)
            frames.append(build_fake_frame(address, temperature, humidity, rssi))
        return frames

    async def watch(self) -> AsyncIterator[AdvertisementFrame]:
        logger.info(f"Simulating {len(self.sensors)} TP358S sensors")
        while True:
            for frame in self.next_round():
                yield frame
            await asyncio.sleep(self.interval)
