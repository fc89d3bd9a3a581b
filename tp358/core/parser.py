"""Decoder for ThermoPro TP358 / TP358S manufacturer advertisement data.

The payload is the manufacturer-specific data AFTER the 16-bit company id.
The vendor abuses the company id: its high byte carries the temperature in
tenths of a degree, its low byte is a fixed 0xC2 marker.

Two firmware variants exist and are told apart only by payload length:

TP358 (4 bytes)
    byte | content
    =====================================================
    0    | unknown, ignored
    1    | relative humidity in %, unscaled
    2    | status: 0x02 bit -> battery OK, 0x01 -> half, 0x00 -> low
    3    | unknown, ignored

TP358S (5 bytes)
    byte | content
    =====================================================
    0    | unknown, ignored
    1    | relative humidity in %, unscaled
    2-3  | unknown constants, ignored
    4    | status: 0x01 -> battery OK, 0xFF -> simulated data marker

The battery mappings were reverse-engineered from observed traffic and are
kept exactly as observed.
"""

from typing import Optional

from tp358.shared.models import Reading, format_payload_hex

TP358_PAYLOAD_LENGTH = 4
TP358S_PAYLOAD_LENGTH = 5
SUPPORTED_LENGTHS = (TP358_PAYLOAD_LENGTH, TP358S_PAYLOAD_LENGTH)

VENDOR_MARKER = 0xC2
FAKE_BATTERY_MARKER = 0xFF
FAKE_BATTERY_PERCENT = 255


class DecodeError(Exception):
    """Raised when a manufacturer payload cannot be decoded."""

    pass


class UnsupportedLengthError(DecodeError):
    """Raised when a payload is neither 4 nor 5 bytes long."""

    def __init__(self, length: int):
        super().__init__(f"Unsupported TP358 payload length: {length}")
        self.length = length


def looks_like_thermopro(company_id: int) -> bool:
    """Check whether a company id carries the ThermoPro 0xC2 marker."""
    return (company_id & 0x00FF) == VENDOR_MARKER or (company_id & 0xFF00) == VENDOR_MARKER << 8


def is_supported_length(payload: bytes) -> bool:
    """Check whether a payload has one of the known variant lengths."""
    return len(payload) in SUPPORTED_LENGTHS


def device_type(payload: bytes) -> str:
    """Sensor model name for a payload ('TP358' or 'TP358S')."""
    return "TP358S" if len(payload) == TP358S_PAYLOAD_LENGTH else "TP358"


def decode(payload: bytes, company_id: int) -> Reading:
    """Decode a TP358/TP358S manufacturer payload.

    Args:
        payload: Manufacturer data bytes following the company id.
        company_id: 16-bit company id the payload was advertised under.

    Returns:
        The decoded reading.

    Raises:
        UnsupportedLengthError: If the payload is not 4 or 5 bytes.
        DecodeError: If the company id is not a 16-bit value.
    """
    payload = bytes(payload)
    if len(payload) not in SUPPORTED_LENGTHS:
        raise UnsupportedLengthError(len(payload))
    if not 0 <= company_id <= 0xFFFF:
        raise DecodeError(f"Company id out of range: {company_id}")

    if len(payload) == TP358_PAYLOAD_LENGTH:
        battery = _decode_battery_tp358(payload[2])
    else:
        battery = _decode_battery_tp358s(payload[4])

    return Reading(
        temperature_c=_decode_temperature(company_id),
        humidity_percent=payload[1],
        battery_percent=battery,
    )


def _decode_temperature(company_id: int) -> float:
    # 0xA9C2 -> 0xA9 = 169 -> 16.9 °C
    return (company_id >> 8) / 10.0


def _decode_battery_tp358(status: int) -> Optional[int]:
    if status & 0x02:
        return 100
    if status == 0x01:
        return 50
    if status == 0x00:
        return 0
    return None


def _decode_battery_tp358s(status: int) -> Optional[int]:
    if status == 0x01:
        return 100
    if status == FAKE_BATTERY_MARKER:
        return FAKE_BATTERY_PERCENT
    return None
