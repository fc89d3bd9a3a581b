"""Bleak-backed BLE advertisement source.

Bleak picks the native backend for the host (BlueZ over D-Bus on Linux,
WinRT on Windows, CoreBluetooth on macOS), so one source covers every
platform with real Bluetooth hardware.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from tp358.core.parser import looks_like_thermopro
from tp358.shared.models import AdvertisementFrame, canonical_address
from .base import AdvertisementSource

logger = logging.getLogger(__name__)


class BleakAdvertisementSource(AdvertisementSource):
    """Passively listens for ThermoPro advertisements with BleakScanner."""

    name = "ble"

    def __init__(self, scanning_mode: str = "active", queue_size: int = 1000):
        """Initialize the source.

        Args:
            scanning_mode: 'active' or 'passive' scanning.
            queue_size: Maximum frames buffered between callback and consumer.
        """
        self.scanning_mode = scanning_mode
        self.queue_size = queue_size
        self._queue: Optional[asyncio.Queue] = None

    def _on_advertisement(self, device: BLEDevice, adv_data: AdvertisementData):
        """Detection callback: turn manufacturer data into frames."""
        if not adv_data.manufacturer_data or self._queue is None:
            return

        timestamp = datetime.now(timezone.utc)
        address = canonical_address(device.address)

        for company_id, payload in adv_data.manufacturer_data.items():
            if not looks_like_thermopro(company_id):
                continue

            frame = AdvertisementFrame(
                timestamp=timestamp,
                device_address=address,
                rssi=adv_data.rssi,
                manufacturer_payload=bytes(payload),
                company_id=company_id,
            )
            try:
                self._queue.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning(f"Frame queue full, dropping advertisement from {address}")

    async def watch(self) -> AsyncIterator[AdvertisementFrame]:
        """Scan until cancelled, yielding ThermoPro frames as they arrive.

        Raises:
            BleakError: If no Bluetooth adapter is available.
        """
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        scanner = BleakScanner(
            detection_callback=self._on_advertisement,
            scanning_mode=self.scanning_mode,
        )

        logger.info(f"Starting BLE scan ({self.scanning_mode})")
        await scanner.start()
        try:
            while True:
                yield await self._queue.get()
        finally:
            try:
                await scanner.stop()
                logger.info("BLE scan stopped")
            except Exception as e:
                logger.warning(f"Error stopping BLE scanner: {e}")
            self._queue = None
