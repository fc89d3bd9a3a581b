"""Advertisement sources and platform-based selection."""

import logging
import os
import sys

from .base import AdvertisementSource
from .ble import BleakAdvertisementSource
from .fake import FakeAdvertisementSource
from .fallback import FallbackAdvertisementSource

logger = logging.getLogger(__name__)

SOURCE_MODES = ("auto", "ble", "fake")
LINUX_BLUETOOTH_SYSFS = "/sys/class/bluetooth"


def select_source(
    mode: str = "auto",
    scanning_mode: str = "active",
    fake_interval: float = 1.0,
    platform: str = sys.platform,
) -> AdvertisementSource:
    """Pick the advertisement source for this host.

    Args:
        mode: 'auto' (real scanner with simulated fallback), 'ble' (real
            scanner only) or 'fake' (simulated only).
        scanning_mode: Bleak scanning mode for the real scanner.
        fake_interval: Seconds between simulated advertisement rounds.
        platform: Platform string, defaults to sys.platform.

    Returns:
        The configured source.

    Raises:
        ValueError: If mode is unknown.
    """
    if mode not in SOURCE_MODES:
        raise ValueError(f"Unknown source mode '{mode}', expected one of {SOURCE_MODES}")

    if mode == "fake":
        logger.info("Using simulated advertisement source")
        return FakeAdvertisementSource(interval=fake_interval)

    if mode == "ble":
        logger.info("Using BLE advertisement source")
        return BleakAdvertisementSource(scanning_mode=scanning_mode)

    if platform.startswith("linux") and not os.path.isdir(LINUX_BLUETOOTH_SYSFS):
        logger.warning(
            f"No Bluetooth support found ({LINUX_BLUETOOTH_SYSFS} missing), "
            "using simulated advertisement source"
        )
        return FakeAdvertisementSource(interval=fake_interval)

    logger.info("Using BLE advertisement source with simulated fallback")
    return FallbackAdvertisementSource(
        primary=BleakAdvertisementSource(scanning_mode=scanning_mode),
        fallback=FakeAdvertisementSource(interval=fake_interval),
    )


__all__ = [
    "AdvertisementSource",
    "BleakAdvertisementSource",
    "FakeAdvertisementSource",
    "FallbackAdvertisementSource",
    "SOURCE_MODES",
    "select_source",
]
