"""
Console Scanner for TP358 Sensors
Live terminal table of decoded advertisements using Rich.
Works without MQTT or a database, for checking what the radio sees.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from tp358.core.parser import DecodeError, decode, device_type, format_payload_hex
from tp358.shared.models import AdvertisementFrame, Reading
from tp358.sources.base import AdvertisementSource

logger = logging.getLogger(__name__)


class SensorRow:
    """Latest state of one sensor as shown in the table"""

    def __init__(self, frame: AdvertisementFrame, reading: Optional[Reading], error: Optional[str] = None):
        self.frame = frame
        self.reading = reading
        self.error = error
        self.frames_seen = 1


class ConsoleViewer:
    """Renders the latest advertisement per device as a live table"""

    def __init__(
        self,
        source: AdvertisementSource,
        device_names: Optional[Dict[str, str]] = None,
        console: Optional[Console] = None,
    ):
        self.source = source
        self.device_names = device_names or {}
        self.console = console or Console()
        self.rows: Dict[str, SensorRow] = {}

    def record(self, frame: AdvertisementFrame) -> SensorRow:
        """Decode a frame and remember it as the device's latest state"""
        try:
            reading = decode(frame.manufacturer_payload, frame.company_id)
            error = None
        except DecodeError as e:
            reading, error = None, str(e)

        previous = self.rows.get(frame.device_address)
        row = SensorRow(frame, reading, error)
        if previous:
            row.frames_seen = previous.frames_seen + 1
        self.rows[frame.device_address] = row
        return row

    def render(self) -> Table:
        """Build the table for the current state"""
        table = Table(
            title=f"TP358 / TP358S advertisements - {datetime.now():%H:%M:%S}",
            header_style="bold cyan",
        )
        table.add_column("Device")
        table.add_column("Type")
        table.add_column("RSSI", justify="right")
        table.add_column("Temp °C", justify="right")
        table.add_column("RH %", justify="right")
        table.add_column("Battery", justify="right")
        table.add_column("Company ID")
        table.add_column("Payload")
        table.add_column("Frames", justify="right")
        table.add_column("Last seen")

        for address, row in sorted(self.rows.items()):
            name = self.device_names.get(address)
            label = f"{name} ({address})" if name else address
            payload = row.frame.manufacturer_payload

            if row.reading is None:
                values = [Text(row.error or "decode failed", style="red"), Text(""), Text("")]
            else:
                values = [
                    Text(_fmt(row.reading.temperature_c, ".1f")),
                    Text(_fmt(row.reading.humidity_percent)),
                    _battery_text(row.reading.battery_percent),
                ]

            table.add_row(
                label,
                device_type(payload),
                str(row.frame.rssi),
                *values,
                f"0x{row.frame.company_id:04X}",
                format_payload_hex(payload),
                str(row.frames_seen),
                row.frame.timestamp.astimezone().strftime("%H:%M:%S"),
            )

        if not self.rows:
            table.caption = "Waiting for advertisements..."
        return table

    async def run(self):
        """Watch the source and refresh the table until cancelled"""
        with Live(self.render(), console=self.console, refresh_per_second=4) as live:
            async for frame in self.source.watch():
                row = self.record(frame)
                if row.reading is not None:
                    logger.debug(f"{frame.device_address} {device_type(frame.manufacturer_payload)}: {row.reading}")
                live.update(self.render())


def _fmt(value, spec: str = "") -> str:
    return "n/a" if value is None else format(value, spec)


def _battery_text(battery: Optional[int]) -> Text:
    if battery is None:
        return Text("n/a", style="dim")
    if battery == 255:
        # Simulated data marker
        return Text("FAKE", style="bold magenta")
    if battery <= 0:
        return Text("LOW", style="bold red")
    return Text(f"{battery} %", style="green" if battery >= 100 else "yellow")
