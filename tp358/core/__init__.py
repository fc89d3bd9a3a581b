"""ThermoPro advertisement decoding."""

from .parser import (
    DecodeError,
    UnsupportedLengthError,
    decode,
    device_type,
    format_payload_hex,
    is_supported_length,
    looks_like_thermopro,
)

__all__ = [
    "DecodeError",
    "UnsupportedLengthError",
    "decode",
    "device_type",
    "format_payload_hex",
    "is_supported_length",
    "looks_like_thermopro",
]
