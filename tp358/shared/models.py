"""Core data models for advertisements and sensor readings."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


def canonical_address(address: str) -> str:
    """Normalize a MAC address to upper-case, colon-separated form.

    Args:
        address: Address as reported by a backend ("fb-b9-30-bb-5e-55",
            "fbb930bb5e55", "FB:B9:30:BB:5E:55", ...).

    Returns:
        Canonical address, or the stripped upper-cased input if it is not
        a 48-bit MAC (macOS reports opaque UUIDs instead).
    """
    cleaned = address.strip().upper()
    hex_digits = cleaned.replace(":", "").replace("-", "")
    if len(hex_digits) == 12 and all(c in "0123456789ABCDEF" for c in hex_digits):
        return ":".join(hex_digits[i:i + 2] for i in range(0, 12, 2))
    return cleaned


def format_payload_hex(payload: bytes) -> str:
    """Format payload bytes like '00-28-22-1B-01'."""
    return bytes(payload).hex("-").upper()


@dataclass(frozen=True)
class AdvertisementFrame:
    """A single captured BLE advertisement, reduced to what the decoder needs."""
    timestamp: datetime
    device_address: str
    rssi: int
    manufacturer_payload: bytes
    company_id: int


@dataclass(frozen=True)
class Reading:
    """Decoded sensor values.

    Any field may be None when the payload variant does not expose it.
    """
    temperature_c: Optional[float] = None
    humidity_percent: Optional[int] = None
    battery_percent: Optional[int] = None

    def __str__(self) -> str:
        temp = f"{self.temperature_c:.1f}" if self.temperature_c is not None else "n/a"
        rh = self.humidity_percent if self.humidity_percent is not None else "n/a"
        bat = self.battery_percent if self.battery_percent is not None else "n/a"
        return f"Temp={temp} °C, RH={rh} %, Bat={bat} %"


@dataclass(frozen=True)
class ReadingEvent:
    """A decoded reading as it leaves the pipeline towards the sinks."""
    timestamp: datetime
    device_address: str
    rssi: int
    temperature_c: Optional[float]
    humidity_percent: Optional[int]
    battery_percent: Optional[int]
    raw_payload_hex: str

    @classmethod
    def from_frame(cls, frame: AdvertisementFrame, reading: Reading) -> "ReadingEvent":
        """Combine a frame and its decoded reading."""
        return cls(
            timestamp=frame.timestamp,
            device_address=frame.device_address,
            rssi=frame.rssi,
            temperature_c=reading.temperature_c,
            humidity_percent=reading.humidity_percent,
            battery_percent=reading.battery_percent,
            raw_payload_hex=format_payload_hex(frame.manufacturer_payload),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/MQTT."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "device_address": self.device_address,
            "rssi": self.rssi,
            "temperature_c": self.temperature_c,
            "humidity_percent": self.humidity_percent,
            "battery_percent": self.battery_percent,
            "raw_payload_hex": self.raw_payload_hex,
        }
