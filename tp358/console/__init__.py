"""Console scanner: live terminal view of decoded TP358 advertisements."""

from .viewer import ConsoleViewer


def main():
    """Entry point for the console scanner."""
    import asyncio
    import sys

    from rich.console import Console

    from tp358.scanner.config import load_config
    from tp358.shared.logging import setup_logging
    from tp358.sources import select_source

    try:
        config = load_config()
        source_mode, scan_mode, fake_interval = config.source, config.ble.scan_mode, config.ble.fake_interval
        device_names, log_level = config.device_names, config.log_level
    except FileNotFoundError:
        # The console works without a config file
        source_mode, scan_mode, fake_interval = "auto", "active", 1.0
        device_names, log_level = {}, "WARNING"

    if "--fake" in sys.argv[1:]:
        source_mode = "fake"

    console = Console()
    setup_logging(log_level, console=console)

    viewer = ConsoleViewer(
        select_source(source_mode, scanning_mode=scan_mode, fake_interval=fake_interval),
        device_names=device_names,
        console=console,
    )

    try:
        asyncio.run(viewer.run())
    except KeyboardInterrupt:
        pass


__all__ = ["ConsoleViewer", "main"]
