"""TP358 scanner - decodes ThermoPro advertisements and pushes them to
live subscribers, MQTT and MySQL."""

from .dispatcher import ReadingDispatcher
from .liveness import LivenessMonitor
from .service import ScannerService


def main():
    """Entry point for the scanner service."""
    from .service import run_scanner
    run_scanner()


__all__ = ["ReadingDispatcher", "LivenessMonitor", "ScannerService", "main"]
