"""ThermoPro TP358/TP358S BLE advertisement monitor."""

__version__ = "0.1.0"
