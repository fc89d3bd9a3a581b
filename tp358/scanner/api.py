"""HTTP and WebSocket endpoints of the scanner service."""

import asyncio
import functools
import logging
from typing import Callable, Dict, Optional

from aiohttp import web

from .broadcast import WebSocketHub
from .dispatcher import ReadingDispatcher
from .intervals import IntervalSettingsStore
from .liveness import LivenessMonitor

logger = logging.getLogger(__name__)

DISPATCHER_KEY = web.AppKey("dispatcher", ReadingDispatcher)
MONITOR_KEY = web.AppKey("monitor", LivenessMonitor)
INTERVALS_KEY = web.AppKey("intervals", IntervalSettingsStore)
DEVICE_NAMES_KEY = web.AppKey("device_names", dict)
SHUTDOWN_KEY = web.AppKey("shutdown", object)

INTERVAL_FIELDS = ("broadcast_seconds", "storage_seconds", "warning_threshold_seconds")

routes = web.RouteTableDef()


@routes.get("/")
async def index(request: web.Request) -> web.Response:
    return web.Response(
        text=(
            "TP358 scanner is running. Endpoints: /health, /status, /live/data, "
            "/live/readings, /config/devices, /config/intervals, WebSocket: /live\n"
        )
    )


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


@routes.get("/status")
async def status(request: web.Request) -> web.Response:
    monitor = request.app[MONITOR_KEY]
    return web.json_response(monitor.current_status().to_dict())


@routes.get("/live/data")
async def live_data(request: web.Request) -> web.Response:
    """Plain-text overview of the latest reading per sensor."""
    readings = request.app[DISPATCHER_KEY].latest_readings
    if not readings:
        return web.Response(text="No sensor data received yet.\n")

    def fmt(value, spec: str = "") -> str:
        return "n/a" if value is None else format(value, spec)

    lines = []
    for address, event in sorted(readings.items()):
        lines.extend([
            f"Sensor: {address}",
            f"  Temperature: {fmt(event.temperature_c, '.1f')} °C",
            f"  Humidity: {fmt(event.humidity_percent)} %",
            f"  Battery: {fmt(event.battery_percent)} %",
            f"  Signal strength: {event.rssi} dBm",
            f"  Last update: {event.timestamp.astimezone():%H:%M:%S}",
            "",
        ])
    return web.Response(text="\n".join(lines) + "\n")


@routes.get("/live/readings")
async def live_readings(request: web.Request) -> web.Response:
    readings = request.app[DISPATCHER_KEY].latest_readings
    return web.json_response([readings[address].to_dict() for address in sorted(readings)])


@routes.get("/config/devices")
async def config_devices(request: web.Request) -> web.Response:
    return web.json_response(request.app[DEVICE_NAMES_KEY])


@routes.get("/config/intervals")
async def get_intervals(request: web.Request) -> web.Response:
    return web.json_response(request.app[INTERVALS_KEY].get().to_dict())


def parse_interval_update(data) -> Dict[str, int]:
    """Validate an interval update body.

    Raises:
        ValueError: If the body is not an object or a value is not an integer.
    """
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")

    values = {}
    for key in INTERVAL_FIELDS:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"'{key}' must be an integer number of seconds")
        values[key] = value
    return values


@routes.post("/config/intervals")
async def update_intervals(request: web.Request) -> web.Response:
    try:
        values = parse_interval_update(await request.json())
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        raise web.HTTPBadRequest(text=str(e))

    store = request.app[INTERVALS_KEY]
    loop = asyncio.get_running_loop()
    settings = await loop.run_in_executor(None, functools.partial(store.update, **values))
    return web.json_response(settings.to_dict())


@routes.post("/shutdown")
async def shutdown(request: web.Request) -> web.Response:
    logger.warning("Shutdown requested via /shutdown")
    request.app[SHUTDOWN_KEY]()
    return web.json_response({"ok": True})


def create_app(
    dispatcher: ReadingDispatcher,
    monitor: LivenessMonitor,
    intervals: IntervalSettingsStore,
    hub: WebSocketHub,
    device_names: Optional[Dict[str, str]] = None,
    on_shutdown: Optional[Callable[[], None]] = None,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        dispatcher: Provides the latest readings snapshot.
        monitor: Provides the BLE activity status.
        intervals: Interval settings to expose and update.
        hub: WebSocket hub served at /live.
        device_names: MAC address to display name mapping.
        on_shutdown: Called when POST /shutdown is received.

    Returns:
        The application, ready to be run.
    """
    app = web.Application()
    app[DISPATCHER_KEY] = dispatcher
    app[MONITOR_KEY] = monitor
    app[INTERVALS_KEY] = intervals
    app[DEVICE_NAMES_KEY] = dict(device_names or {})
    app[SHUTDOWN_KEY] = on_shutdown or (lambda: None)

    app.add_routes(routes)
    app.router.add_get("/live", hub.handle)
    return app
